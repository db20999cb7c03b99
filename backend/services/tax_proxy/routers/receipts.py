"""
Sales receipt listing routes.

Receipts carry no tax detail; their categories are derived from the receipt
description, so the hotel/resto variants need no detail calls. A receipt
whose description mentions both a hotel and a restaurant appears in both
variants.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends

from backend.services.tax_proxy.accurate_client import AccurateClient, ListFilters
from backend.services.tax_proxy.category_filter import filter_by_category
from backend.services.tax_proxy.dependencies import (
    get_accurate_client,
    get_list_filters,
    get_request_logger,
)
from backend.services.tax_proxy.models import ReceiptsResponse, SalesReceiptRecord
from backend.services.tax_proxy.tax_resolver import TaxCategory

router = APIRouter(prefix="/sales-receipt", tags=["sales-receipt"])


def _receipt_categories(record: SalesReceiptRecord):
    return record.tax_categories


async def build_receipt_listing(
    client: AccurateClient,
    filters: ListFilters,
    category: Optional[TaxCategory],
    logger: structlog.BoundLogger,
) -> ReceiptsResponse:
    page = await client.list_sales_receipts(filters)
    records = [SalesReceiptRecord.from_row(row) for row in page.rows]
    if category:
        records = filter_by_category(records, category, key=_receipt_categories)

    logger.info("receipt_listing_built", rows=len(page.rows), returned=len(records))

    return ReceiptsResponse(
        orders=records,
        count=len(records),
        total_data=page.total_items,
        page=filters.page,
        per_page=filters.per_page,
    )


@router.get("/list", response_model=ReceiptsResponse, summary="Sales receipts")
async def list_receipts(
    client: AccurateClient = Depends(get_accurate_client),
    filters: ListFilters = Depends(get_list_filters),
    logger: structlog.BoundLogger = Depends(get_request_logger),
):
    return await build_receipt_listing(client, filters, None, logger)


@router.get("/list/hotel", response_model=ReceiptsResponse, summary="Hotel sales receipts")
async def list_hotel_receipts(
    client: AccurateClient = Depends(get_accurate_client),
    filters: ListFilters = Depends(get_list_filters),
    logger: structlog.BoundLogger = Depends(get_request_logger),
):
    return await build_receipt_listing(client, filters, TaxCategory.LODGING_TAX, logger)


@router.get("/list/resto", response_model=ReceiptsResponse, summary="Restaurant sales receipts")
async def list_resto_receipts(
    client: AccurateClient = Depends(get_accurate_client),
    filters: ListFilters = Depends(get_list_filters),
    logger: structlog.BoundLogger = Depends(get_request_logger),
):
    return await build_receipt_listing(client, filters, TaxCategory.FOOD_SERVICE_TAX, logger)
