import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from app.core import database
from app.core.cache import build_calculation_cache
from app.core.capabilities import TaxCapabilities
from app.core.config import settings
from app.routers import customers, voip_taxes
from app.services.tax_engine.federal import UsfRateProvider
from app.services.tax_rate_sources import validate_rate_sources

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "Customers", "description": "Billing clients that hold tax exemptions."},
    {
        "name": "VoIP Taxes",
        "description": "Calculate VoIP taxes and manage the tax rate catalog.",
    },
]

# Unknown rate sources fail at import time, not on the first sync.
validate_rate_sources(settings.tax_rate_sources)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    if settings.TAX_PROBE_SCHEMA_ON_STARTUP:
        app.state.tax_capabilities = TaxCapabilities.probe(database.engine, settings)
        logger.info("Tax capabilities from schema: %s", app.state.tax_capabilities)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Jurisdictional VoIP tax engine. Calculates federal, state and local "
        "telecom taxes with exemptions, and manages the tax rate catalog."
    ),
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
)

app.state.tax_cache = build_calculation_cache(settings)
app.state.usf_provider = UsfRateProvider()
app.state.tax_capabilities = TaxCapabilities.from_settings(settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)


@app.middleware("http")
async def options_handler(request: Request, call_next):  # type: ignore[no-untyped-def]
    if request.method == "OPTIONS":
        origin = request.headers.get("origin", "*")
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Max-Age": "86400",
            },
        )
    return await call_next(request)


app.include_router(customers.router, prefix="/v1/customers", tags=["Customers"])
app.include_router(voip_taxes.router, prefix="/v1/voip_taxes", tags=["VoIP Taxes"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "status": "running",
    }
