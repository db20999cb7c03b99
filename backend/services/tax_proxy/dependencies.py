"""
Shared dependencies for the tax gateway routes.

Provides the request-scoped pieces every listing needs: settings, the
caller's bearer token, validated list filters, an Accurate client and the
batch orchestrator.
"""

from datetime import date
from typing import AsyncIterator, Optional

import httpx
import structlog
from fastapi import Depends, Header, Query, Request

from backend.core.config import Settings, get_settings
from backend.core.errors import AuthError, ValidationError
from backend.services.tax_proxy.accurate_client import (
    AccurateClient,
    AccurateClientConfig,
    ListFilters,
)
from backend.services.tax_proxy.normalizers import to_dmy
from backend.services.tax_proxy.orchestrator import TaxListingOrchestrator

logger = structlog.get_logger(__name__)


def get_app_settings(request: Request) -> Settings:
    """Settings the service was built with"""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_request_id(request: Request) -> str:
    """Get the request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_request_logger(request_id: str = Depends(get_request_id)) -> structlog.BoundLogger:
    """Get a logger bound with request context"""
    return logger.bind(request_id=request_id)


def get_access_token(authorization: Optional[str] = Header(None)) -> str:
    """Extract the caller's Accurate access token from ``Authorization: Bearer``"""
    if not authorization:
        raise AuthError("Access token not found in Authorization header")

    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise AuthError("Authorization header must be 'Bearer <token>'")
    return token


def _parse_iso(name: str, value: str) -> date:
    if to_dmy(value) is None:
        raise ValidationError(
            f"{name} must be a date in YYYY-MM-DD format",
            {"field": name, "value": value},
        )
    return date.fromisoformat(value.strip())


def get_list_filters(
    start_date: Optional[str] = Query(None, description="Start date, YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="End date, YYYY-MM-DD"),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1, description="Page size, capped by MAX_PAGE_SIZE"),
    settings: Settings = Depends(get_app_settings),
) -> ListFilters:
    """Validate listing query parameters"""
    if bool(start_date) != bool(end_date):
        raise ValidationError("start_date and end_date must be given together")

    if start_date and end_date:
        start = _parse_iso("start_date", start_date)
        end = _parse_iso("end_date", end_date)
        if start > end:
            raise ValidationError(
                "start_date must not be after end_date",
                {"start_date": start_date, "end_date": end_date},
            )
        start_date, end_date = start.isoformat(), end.isoformat()

    size = per_page or settings.batch.default_page_size
    size = min(size, settings.batch.max_page_size)

    return ListFilters(start_date=start_date, end_date=end_date, page=page, per_page=size)


def get_client_config(settings: Settings = Depends(get_app_settings)) -> AccurateClientConfig:
    """Connection settings; raises ConfigError when Accurate is not configured"""
    return AccurateClientConfig.from_settings(settings)


def get_upstream_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Transport for upstream calls; None uses httpx's network transport"""
    return None


async def get_accurate_client(
    access_token: str = Depends(get_access_token),
    config: AccurateClientConfig = Depends(get_client_config),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_upstream_transport),
) -> AsyncIterator[AccurateClient]:
    """Request-scoped Accurate client, closed when the response is done"""
    async with AccurateClient(config, access_token, transport=transport) as client:
        yield client


def get_orchestrator(
    client: AccurateClient = Depends(get_accurate_client),
    settings: Settings = Depends(get_app_settings),
) -> TaxListingOrchestrator:
    return TaxListingOrchestrator.from_settings(client, settings)
