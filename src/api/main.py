"""
FILE: src/api/main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api import observability
from src.api.persistence_profile import validate_persistence_profile_guardrails
from src.api.routers import contracts_support_routes  # noqa: F401  registers support routes
from src.api.routers.contracts import router as contract_lifecycle_router


@asynccontextmanager
async def _app_lifespan(_app: FastAPI):
    validate_persistence_profile_guardrails()
    yield


app = FastAPI(
    title="Construction Contract Escrow API",
    version="0.1.0",
    description=(
        "Contract lifecycle and milestone escrow service.\n\n"
        "A bid moves through `BID`, a five-level `APPROVAL` ladder and `SETTLEMENT`, "
        "where milestone disbursements are recorded, verified or disputed against the "
        "payment schedule."
    ),
    openapi_tags=[
        {
            "name": "Contract Lifecycle",
            "description": "Bid submission, approval ladder, settlement ledger and support.",
        },
        {
            "name": "Health",
            "description": "Liveness endpoint.",
        },
    ],
    lifespan=_app_lifespan,
)

observability.setup_observability(app)
logger = logging.getLogger(__name__)

app.include_router(contract_lifecycle_router)


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )


@app.get("/health", tags=["Health"], summary="Health Check")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/health/live", tags=["Health"], summary="Liveness Check")
def health_live() -> dict[str, str]:
    return {"status": "live"}


@app.get("/health/ready", tags=["Health"], summary="Readiness Check")
def health_ready() -> dict[str, str]:
    return {"status": "ready"}
