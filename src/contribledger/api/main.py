import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from contribledger.api.claims import router as claims_router
from contribledger.api.scans import router as scans_router
from contribledger.container import Container
from contribledger.domain.chains import CHAIN_SPECS
from contribledger.domain.enums import ClaimCode
from contribledger.domain.models.ledger import MESSAGES
from contribledger.exceptions import (
    ExternalServiceError,
    InvalidPayload,
    PersistenceError,
    Unauthorized,
    UnsupportedChain,
)
from contribledger.infra.blockchain.factory import build_adapter

logger = logging.getLogger("contribledger.api")


async def _probe_endpoints(container: Container) -> None:
    """Check each chain's configured auth once at startup so a bad key shows up in the logs, not per call."""
    settings = container.settings()
    for spec in CHAIN_SPECS.values():
        adapter = build_adapter(spec, settings, container.http_client(), redis_client=container.redis_client())
        try:
            results = await adapter.probe()
        except Exception:
            logger.exception("Probe of %s endpoints crashed", spec.slug)
            continue
        for label, ok in results.items():
            if ok:
                logger.info("Endpoint %s for %s is reachable", label, spec.slug)
            else:
                logger.warning("Endpoint %s for %s failed its probe", label, spec.slug)


@asynccontextmanager
async def lifespan(app: FastAPI):
    container = Container()
    app.state.container = container
    settings = container.settings()
    logging.basicConfig(level=settings.log_level)
    if settings.probe_endpoints_on_startup:
        await _probe_endpoints(container)
    yield
    await container.pricing().drain()
    await container.http_client().close()
    await container.redis_client().aclose()
    engine = container.engine()
    await engine.dispose()


app = FastAPI(title="ContribLedger", version="0.1.0", lifespan=lifespan)


def _error(status_code: int, code: ClaimCode, message: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "code": code.value, "message": message or MESSAGES[code]},
    )


@app.exception_handler(Unauthorized)
async def unauthorized_handler(request: Request, exc: Unauthorized):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return _error(401, ClaimCode.UNAUTHORIZED)


@app.exception_handler(UnsupportedChain)
async def unsupported_chain_handler(request: Request, exc: UnsupportedChain):
    return _error(400, ClaimCode.UNSUPPORTED_CHAIN)


@app.exception_handler(InvalidPayload)
async def invalid_payload_handler(request: Request, exc: InvalidPayload):
    return _error(400, ClaimCode.INVALID_PAYLOAD, str(exc))


@app.exception_handler(ExternalServiceError)
async def external_service_handler(request: Request, exc: ExternalServiceError):
    logger.error("Upstream failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(502, ClaimCode.RPC_ERROR)


@app.exception_handler(PersistenceError)
async def persistence_handler(request: Request, exc: PersistenceError):
    logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, ClaimCode.DB_ERROR)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled error on %s %s:\n%s", request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"ok": False, "detail": "Internal server error"})


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(claims_router)
app.include_router(scans_router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}
