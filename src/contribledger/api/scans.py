import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import ValidationError
from starlette.requests import Request

from contribledger.api.auth import require_cron_secret
from contribledger.api.deps import AdapterBuilder, get_adapter_builder, get_gateway, get_pricing, get_settings
from contribledger.api.schemas.scans import CursorResponse, CursorUpdate, ScanQueued, ScanRequest, ScanResponse
from contribledger.config import Settings
from contribledger.domain.chains import resolve_chain
from contribledger.engine.pricing import PricingService
from contribledger.engine.scanner import ScannerEngine, ScanOptions
from contribledger.exceptions import InvalidPayload
from contribledger.ledger.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ingest", tags=["ingest"], dependencies=[Depends(require_cron_secret)])

GatewayDep = Annotated[PersistenceGateway, Depends(get_gateway)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


async def _scan_request(request: Request) -> ScanRequest:
    """Options come from the query string, overridden by a JSON body when one is sent."""
    payload: dict = dict(request.query_params)
    if await request.body():
        try:
            body = await request.json()
        except ValueError:
            raise InvalidPayload("Request body is not valid JSON.") from None
        if isinstance(body, dict):
            payload.update(body)
    try:
        return ScanRequest.model_validate(payload)
    except ValidationError as e:
        raise InvalidPayload("Invalid scan options.") from e


@router.post("/{chain}", response_model=ScanResponse, response_model_by_alias=True)
async def trigger_scan(
    chain: str,
    request: Request,
    gateway: GatewayDep,
    settings: SettingsDep,
    pricing: Annotated[PricingService, Depends(get_pricing)],
    build: Annotated[AdapterBuilder, Depends(get_adapter_builder)],
) -> ScanResponse:
    """Scan the next safe window for one chain. Safe to call repeatedly; overlapping runs are skipped."""
    spec = resolve_chain(chain)
    options = await _scan_request(request)

    scanner = ScannerEngine(
        build(spec, min_confirmations=options.min_conf),
        gateway,
        pricing=pricing,
        max_blocks=settings.scan_max_blocks,
        checkpoint_every=settings.scan_checkpoint_every,
        budget_seconds=settings.scan_budget_seconds,
        lease_ttl=settings.scan_lease_ttl,
        default_lookback=settings.scan_default_lookback,
    )
    result = await scanner.run(ScanOptions(**options.model_dump()))
    return ScanResponse.from_result(result)


@router.put("/{chain}/cursor", response_model=CursorResponse)
async def set_cursor(chain: str, body: CursorUpdate, gateway: GatewayDep) -> CursorResponse:
    """Operator override. Without force the cursor only moves forward."""
    spec = resolve_chain(chain)
    stored = await gateway.set_cursor(spec.chain, body.height, force=body.force)
    logger.warning("Cursor for %s set to %d (requested %d, force=%s)", spec.slug, stored, body.height, body.force)
    return CursorResponse(chain=spec.slug, height=stored, updated=stored == body.height)


@router.post("/{chain}/enqueue", status_code=202, response_model=ScanQueued)
async def enqueue_scan(chain: str, request: Request) -> ScanQueued:
    """Hand the run to a Celery worker instead of scanning inside the request."""
    from contribledger.workers.tasks import scan_chain_task

    spec = resolve_chain(chain)
    options = await _scan_request(request)
    task = scan_chain_task.delay(spec.slug, options.model_dump(exclude_none=True))
    logger.info("Queued scan of %s as task %s", spec.slug, task.id)
    return ScanQueued(chain=spec.slug, task_id=task.id)
