import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from contribledger.api.auth import require_cron_secret
from contribledger.api.deps import AdapterBuilder, get_adapter_builder, get_gateway, get_pricing
from contribledger.api.schemas.claims import ClaimBody, ClaimResponse
from contribledger.domain.chains import resolve_chain
from contribledger.domain.enums import ClaimCode
from contribledger.domain.models.ledger import VerificationResult
from contribledger.engine.pricing import PricingService
from contribledger.engine.verification import VerificationEngine
from contribledger.ledger.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["claims"], dependencies=[Depends(require_cron_secret)])

# Informative only; callers branch on the code
STATUS_BY_CODE: dict[ClaimCode, int] = {
    ClaimCode.INSERTED: 200,
    ClaimCode.DUPLICATE: 200,
    ClaimCode.NOT_PROJECT_WALLET: 200,
    ClaimCode.TX_NOT_FOUND: 200,
    ClaimCode.TX_PENDING: 202,
    ClaimCode.INVALID_PAYLOAD: 400,
    ClaimCode.UNSUPPORTED_CHAIN: 400,
    ClaimCode.UNAUTHORIZED: 401,
    ClaimCode.RPC_ERROR: 502,
    ClaimCode.DB_ERROR: 500,
}

GatewayDep = Annotated[PersistenceGateway, Depends(get_gateway)]
PricingDep = Annotated[PricingService, Depends(get_pricing)]
BuilderDep = Annotated[AdapterBuilder, Depends(get_adapter_builder)]


def claim_response(result: VerificationResult) -> JSONResponse:
    body = ClaimResponse(ok=result.ok, code=result.code.value, message=result.message, data=result.data)
    return JSONResponse(status_code=STATUS_BY_CODE[result.code], content=body.model_dump(exclude_none=True))


async def _read_body(request: Request) -> ClaimBody | None:
    """Parse the JSON body leniently: absent or unparsable JSON counts as empty."""
    raw = await request.body()
    payload: object = {}
    if raw:
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
    if not isinstance(payload, dict):
        payload = {}
    try:
        return ClaimBody.model_validate(payload)
    except ValidationError:
        return None


async def _verify(
    chain: str,
    request: Request,
    tx_query: str | None,
    gateway: PersistenceGateway,
    pricing: PricingService,
    build: AdapterBuilder,
) -> JSONResponse:
    spec = resolve_chain(chain)
    body = await _read_body(request)
    if body is None:
        return claim_response(VerificationResult.of(ClaimCode.INVALID_PAYLOAD, {"chain": spec.slug}))

    engine = VerificationEngine(build(spec), gateway, pricing)
    result = await engine.verify(body.tx or tx_query, body.note)
    logger.info("Claim %s %s -> %s", spec.slug, (body.tx or tx_query or "")[:80], result.code.value)
    return claim_response(result)


@router.post("/claim-ingest/{chain}")
async def claim_ingest(
    chain: str,
    request: Request,
    gateway: GatewayDep,
    pricing: PricingDep,
    build: BuilderDep,
    tx: str | None = Query(None),
) -> JSONResponse:
    """Verify one submitted transaction on a chain and record it if it paid a project wallet."""
    return await _verify(chain, request, tx, gateway, pricing, build)


@router.post("/claim")
async def claim(
    request: Request,
    gateway: GatewayDep,
    pricing: PricingDep,
    build: BuilderDep,
    tx: str | None = Query(None),
) -> JSONResponse:
    """Unified entry: the chain travels in the body."""
    body = await _read_body(request)
    chain = body.chain if body is not None else None
    return await _verify(chain or "", request, tx, gateway, pricing, build)
