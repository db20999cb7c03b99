"""
Async client for the Accurate sales-invoice and sales-receipt APIs.

Wraps httpx.AsyncClient with the two headers every Accurate call needs
(client bearer token and server session id), normalizes the two list
response shapes into ListPage, and retries detail calls with a fixed delay.

Usage:
    >>> config = AccurateClientConfig.from_settings(get_settings())
    >>> async with AccurateClient(config, access_token) as client:
    ...     page = await client.list_sales_invoices(ListFilters(per_page=50))
    ...     detail = await client.fetch_detail(page.rows[0]["id"])
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

import httpx
import structlog

from backend.core.config import Settings
from backend.core.errors import ConfigError, DetailFetchError, UpstreamFetchError
from backend.services.tax_proxy.normalizers import to_dmy
from backend.services.tax_proxy.tax_resolver import (
    DEFAULT_STATUTORY_RATE,
    FETCH_FAILED_RESOLUTION,
    RawRecord,
    TaxResolution,
    resolve_tax,
)

logger = structlog.get_logger(__name__)

INVOICE_LIST_FIELDS = (
    "id,number,transDate,customer,description,statusName,statusOutstanding,"
    "age,totalAmount,tax1,tax1.description"
)
RECEIPT_LIST_FIELDS = (
    "id,number,transDate,chequeDate,customer,bank,description,useCredit,totalPayment"
)


class UpstreamPayloadError(ValueError):
    """Upstream answered, but not with a usable payload"""
    pass


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration for detail calls"""
    max_attempts: int = 3
    delay: float = 0.4


@dataclass(frozen=True)
class AccurateClientConfig:
    """Connection settings for one gateway process"""
    host: str
    session_id: str
    timeout: float = 10.0
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AccurateClientConfig":
        """Build from settings, failing with ConfigError when host or session is missing"""
        accurate = settings.accurate
        missing = [
            name for name, value in (
                ("ACCURATE_HOST", accurate.accurate_host),
                ("ACCURATE_SESSION_ID", accurate.accurate_session_id),
            )
            if not value
        ]
        if missing:
            raise ConfigError(
                "Accurate connection is not configured",
                {"missing": missing},
            )

        return cls(
            host=accurate.accurate_host,
            session_id=accurate.accurate_session_id,
            timeout=accurate.accurate_timeout_seconds,
            retry=RetryConfig(
                max_attempts=accurate.accurate_retry_attempts,
                delay=accurate.accurate_retry_delay_seconds,
            ),
        )


@dataclass(frozen=True)
class ListFilters:
    """Inbound listing filters; dates are ISO strings already validated"""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    page: Optional[int] = None
    per_page: Optional[int] = None

    def to_params(self) -> Dict[str, Any]:
        """Accurate query parameters for these filters"""
        params: Dict[str, Any] = {"sp.sort": "transDate|desc"}

        if self.start_date and self.end_date:
            params["filter.transDate.op"] = "BETWEEN"
            params["filter.transDate.val[0]"] = to_dmy(self.start_date)
            params["filter.transDate.val[1]"] = to_dmy(self.end_date)

        if self.page:
            params["sp.page"] = self.page
        if self.per_page:
            params["sp.pageSize"] = self.per_page

        return params


@dataclass(frozen=True)
class ListPage:
    """
    One page of list results.

    Accurate answers list calls either with a bare array under ``d`` or with
    a paged object ``{"d": {"list": [...], "totalItems": n}}``.
    ``kind`` records which shape was received; callers only read ``rows``
    and ``total_items``.
    """
    kind: str
    rows: Tuple[RawRecord, ...]
    total_items: Optional[int] = None

    BARE = "bare"
    PAGED = "paged"

    @classmethod
    def from_payload(cls, payload: Any) -> "ListPage":
        data = payload.get("d") if isinstance(payload, Mapping) else None

        if isinstance(data, list):
            paging = payload.get("sp")
            total_items = _as_int(paging.get("rowCount")) if isinstance(paging, Mapping) else None
            return cls(
                kind=cls.BARE,
                rows=tuple(row for row in data if isinstance(row, Mapping)),
                total_items=total_items,
            )

        if isinstance(data, Mapping) and isinstance(data.get("list"), list):
            return cls(
                kind=cls.PAGED,
                rows=tuple(row for row in data["list"] if isinstance(row, Mapping)),
                total_items=_as_int(data.get("totalItems")),
            )

        raise UpstreamFetchError("Unexpected list response from Accurate", upstream_body=payload)


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class AccurateClient:
    """Accurate API client bound to one caller's bearer token"""

    INVOICE_LIST_PATH = "/accurate/api/sales-invoice/list.do"
    INVOICE_DETAIL_PATH = "/accurate/api/sales-invoice/detail.do"
    RECEIPT_LIST_PATH = "/accurate/api/sales-receipt/list.do"

    def __init__(
        self,
        config: AccurateClientConfig,
        access_token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=config.host,
            headers={
                "Authorization": f"Bearer {access_token}",
                "X-Session-ID": config.session_id,
            },
            timeout=httpx.Timeout(config.timeout),
            transport=transport,
        )
        self._logger = logger.bind(host=config.host)

    async def __aenter__(self) -> "AccurateClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _list(self, path: str, fields: str, filters: ListFilters) -> ListPage:
        params = {"fields": fields, **filters.to_params()}
        self._logger.info("list_request", path=path, params=params)

        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            body = _response_body(e.response)
            self._logger.error(
                "list_request_failed",
                path=path,
                status_code=e.response.status_code,
                upstream=body,
            )
            raise UpstreamFetchError(
                "Accurate list request failed",
                upstream_status=e.response.status_code,
                upstream_body=body,
            ) from e
        except httpx.HTTPError as e:
            self._logger.error("list_request_error", path=path, error=str(e))
            raise UpstreamFetchError(f"Accurate list request failed: {e}") from e
        except ValueError as e:
            self._logger.error("list_response_invalid", path=path, error=str(e))
            raise UpstreamFetchError("Accurate list response is not valid JSON") from e

        if isinstance(payload, Mapping) and payload.get("s") is False:
            raise UpstreamFetchError(
                "Accurate rejected the list request",
                upstream_status=response.status_code,
                upstream_body=payload.get("d", payload),
            )

        page = ListPage.from_payload(payload)
        self._logger.info("list_received", path=path, kind=page.kind, rows=len(page.rows))
        return page

    async def list_sales_invoices(self, filters: ListFilters) -> ListPage:
        """Fetch one page of sales invoices"""
        return await self._list(self.INVOICE_LIST_PATH, INVOICE_LIST_FIELDS, filters)

    async def list_sales_receipts(self, filters: ListFilters) -> ListPage:
        """Fetch one page of sales receipts"""
        return await self._list(self.RECEIPT_LIST_PATH, RECEIPT_LIST_FIELDS, filters)

    async def _get_detail_once(self, record_id: Any) -> RawRecord:
        response = await asyncio.wait_for(
            self._client.get(self.INVOICE_DETAIL_PATH, params={"id": record_id}),
            timeout=self.config.timeout,
        )
        response.raise_for_status()
        payload = response.json()

        if not isinstance(payload, Mapping) or payload.get("s") is False:
            raise UpstreamPayloadError("detail request was rejected")
        detail = payload.get("d")
        if not isinstance(detail, Mapping):
            raise UpstreamPayloadError("detail response has no 'd' object")
        return detail

    async def fetch_detail(self, record_id: Any) -> RawRecord:
        """
        Fetch one invoice's detail record.

        Makes up to ``retry.max_attempts`` attempts with a fixed
        ``retry.delay`` between them, each bounded by the client timeout.

        Raises:
            DetailFetchError: every attempt failed
        """
        retry = self.config.retry
        last_error: Optional[BaseException] = None

        for attempt in range(1, retry.max_attempts + 1):
            try:
                return await self._get_detail_once(record_id)
            except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as e:
                last_error = e
                self._logger.warning(
                    "detail_attempt_failed",
                    record_id=record_id,
                    attempt=attempt,
                    max_attempts=retry.max_attempts,
                    error=str(e) or type(e).__name__,
                )

            if attempt < retry.max_attempts:
                await self._sleep(retry.delay)

        self._logger.error(
            "detail_fetch_exhausted",
            record_id=record_id,
            attempts=retry.max_attempts,
        )
        raise DetailFetchError(record_id, retry.max_attempts, last_error)

    async def fetch_tax_resolution(
        self,
        record_id: Any,
        statutory_rate: Decimal = DEFAULT_STATUTORY_RATE,
    ) -> TaxResolution:
        """Resolve a record's taxes from its detail, or the FETCH_FAILED sentinel"""
        try:
            detail = await self.fetch_detail(record_id)
        except DetailFetchError:
            return FETCH_FAILED_RESOLUTION
        return resolve_tax(detail, statutory_rate)
