"""
FastAPI main application for the OpenStays Property Catalog API.
"""

import secrets
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis import asyncio as aioredis
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.auth import (
    CredentialVerifier, authorize, enforce_rate_limit, get_rate_limit_headers,
)
from api.config import config as api_config
from api.models import (
    ErrorResponse, HealthResponse, PropertyListResponse, PropertyResponse,
    ReadinessResponse,
)
from catalog.database import create_engine
from catalog.exceptions import AuthenticationError, CatalogError, RateLimitExceededError
from catalog.filters import DEFAULT_MASK_PRECISION, FilterNormalizer
from catalog.service import CatalogService
from catalog.store import PostgresPropertyStore
from ratelimit.limiter import RateLimiter
from ratelimit.store import RedisCounterStore
from utilities.config import config
from utilities.logger import bind_request_context, clear_request_context, setup_logging

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "AUTHENTICATION_REQUIRED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug,
    )
    logger.info("Starting OpenStays catalog API")

    engine = create_engine(
        config.database_url,
        pool_size=config.database_pool_size,
        pool_timeout=config.database_pool_timeout,
    )
    redis = aioredis.from_url(
        config.redis_url,
        socket_timeout=config.redis_socket_timeout,
        decode_responses=True,
    )

    app.state.engine = engine
    app.state.redis = redis
    app.state.catalog = CatalogService(PostgresPropertyStore(engine))
    app.state.credentials = CredentialVerifier(engine, api_config.api_key_prefix)
    app.state.rate_limiter = RateLimiter(
        RedisCounterStore(redis, api_config.rate_limit_window_ms),
        api_config.rate_limit_max_requests,
    )

    yield

    logger.info("Shutting down OpenStays catalog API")
    await redis.aclose()
    await engine.dispose()


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or request.headers.get(REQUEST_ID_HEADER)


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    errors=None,
    headers=None,
) -> JSONResponse:
    """Structured error body carrying the request correlation id."""
    body = ErrorResponse(code=code, message=message, request_id=_request_id(request), errors=errors)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True), headers=headers)


def internal_error_response(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception", error=str(exc), path=request.url.path, exc_info=exc)
    message = str(exc) if api_config.debug else "An unexpected error occurred"
    return error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", message)


router = APIRouter(prefix="/v1", dependencies=[Depends(authorize), Depends(enforce_rate_limit)])


@router.get("/properties", response_model=PropertyListResponse, tags=["Properties"])
async def list_properties(
    request: Request,
    region_id: Optional[str] = None,
    bbox: Optional[str] = None,
    near: Optional[str] = None,
    amenities: Optional[str] = None,
    accessibility: Optional[str] = None,
    bed_types: Optional[str] = None,
    pets_allowed: Optional[bool] = None,
    max_pets: Optional[int] = None,
    guests: Optional[int] = None,
    instant_book: Optional[bool] = None,
    cancellation_tier: Optional[str] = None,
    sort: Optional[str] = None,
    seed: Optional[int] = None,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
    address_masking: bool = False,
    mask_precision: int = DEFAULT_MASK_PRECISION,
):
    """
    List active properties with filtering, sorting and cursor pagination.

    - **bbox**: minLon,minLat,maxLon,maxLat
    - **near**: lat,lon,radiusMeters
    - **amenities** / **accessibility**: comma lists, all must match
    - **bed_types**: comma list, any may match
    - **sort**: price_asc, price_desc, rating_desc, distance_asc, random; anything else uses newest first
    - **seed**: seed for random sort, carried forward in next_cursor
    - **limit**: page size (1-200, default 50)
    - **cursor**: next_cursor from the previous page, with the same filters and sort
    - **address_masking** / **mask_precision**: coarse address and rounded coordinates
    """
    normalizer: FilterNormalizer = request.app.state.normalizer
    params = normalizer.build_params(
        region_id=region_id,
        bbox=bbox,
        near=near,
        amenities=amenities,
        accessibility=accessibility,
        bed_types=bed_types,
        pets_allowed=pets_allowed,
        max_pets=max_pets,
        guests=guests,
        instant_book=instant_book,
        cancellation_tier=cancellation_tier,
        sort=sort,
        seed=seed,
        limit=limit,
        cursor=cursor,
        address_masking=address_masking,
        mask_precision=mask_precision,
    )
    filters = normalizer.normalize(params)

    result = await request.app.state.catalog.list_properties(filters)

    return JSONResponse(content=result.to_dict(), headers=get_rate_limit_headers(request))


@router.get("/properties/{property_id}", response_model=PropertyResponse, tags=["Properties"])
async def get_property(
    request: Request,
    property_id: str,
    address_masking: bool = False,
    mask_precision: int = DEFAULT_MASK_PRECISION,
):
    """
    Get a single active property by id.

    - **property_id**: Property identifier
    """
    params = request.app.state.normalizer.build_params(
        address_masking=address_masking, mask_precision=mask_precision
    )
    prop = await request.app.state.catalog.get_property(
        property_id, params.address_masking, params.mask_precision
    )
    return JSONResponse(content=prop, headers=get_rate_limit_headers(request))


def create_app() -> FastAPI:
    """Build the FastAPI application; store handles are attached in the lifespan."""
    app = FastAPI(
        title=api_config.api_title,
        description="""
    Read-only catalog of rentable properties.

    ## Features

    * **Filtering**: region, occupancy, pets, instant book, cancellation tier, amenities, bounding box and radius
    * **Sorting**: newest, rating, distance, seeded random
    * **Cursor pagination**: stable pages via `next_cursor`
    * **Address masking**: coarse address and rounded coordinates on request
    * **Rate limiting**: per API key, OAuth client or source address

    ## Authentication

    Send an API key in `X-API-Key` or an OAuth access token as `Authorization: Bearer <token>`.
    Anonymous requests are rate limited by source address.
    """,
        version=api_config.api_version,
        lifespan=lifespan,
    )
    app.state.normalizer = FilterNormalizer(api_config.default_page_limit, api_config.max_page_limit)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.cors_origins,
        allow_credentials=api_config.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        """Assign a correlation id and turn unhandled errors into INTERNAL_ERROR."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or (
            f"req_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"
        )
        request.state.request_id = request_id
        bind_request_context(request_id, path=request.url.path)
        try:
            response = await call_next(request)
        except Exception as e:
            response = internal_error_response(request, e)
        finally:
            clear_request_context()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.exception_handler(CatalogError)
    async def catalog_exception_handler(request: Request, exc: CatalogError):
        """Render caller, auth and quota errors; hide store detail on 5xx."""
        if exc.status_code >= 500:
            return internal_error_response(request, exc)

        headers = {}
        if isinstance(exc, RateLimitExceededError):
            headers = get_rate_limit_headers(request) or {"Retry-After": str(exc.retry_after)}
        elif isinstance(exc, AuthenticationError):
            headers = {"WWW-Authenticate": "Bearer"}

        return error_response(
            request,
            exc.status_code,
            exc.code,
            exc.message,
            errors=getattr(exc, "errors", None),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            f"{'.'.join(str(loc) for loc in err['loc'])} {err['msg']}"
            for err in exc.errors()
        ]
        return error_response(
            request, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", "Request validation failed", errors=errors
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        code = _STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
        message = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
        return error_response(request, exc.status_code, code, message, headers=getattr(exc, "headers", None))

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Liveness check; does not touch the stores."""
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(timezone.utc),
            version=api_config.api_version,
        )

    @app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
    async def readiness_check(request: Request):
        """Readiness check against the database and Redis."""
        database_ok = False
        redis_ok = False
        try:
            database_ok = await request.app.state.catalog.store.ping()
        except Exception as e:
            logger.error("Database readiness check failed", error=str(e))
        try:
            redis_ok = bool(await request.app.state.redis.ping())
        except Exception as e:
            logger.error("Redis readiness check failed", error=str(e))

        ready = database_ok and redis_ok
        body = ReadinessResponse(
            status="ready" if ready else "not ready",
            services={
                "database": "ok" if database_ok else "error",
                "redis": "ok" if redis_ok else "error",
            },
            timestamp=datetime.now(timezone.utc),
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(mode="json"),
        )

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_level="info"
    )
