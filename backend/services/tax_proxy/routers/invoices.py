"""
Sales invoice tax listing routes.

Each listing fetches one page of invoices, resolves every invoice's taxes
from its detail record in paced batches, and optionally narrows the result
to a tax category.
"""

from typing import Optional, Sequence

import structlog
from fastapi import APIRouter, Depends, Query

from backend.services.tax_proxy.accurate_client import ListFilters
from backend.services.tax_proxy.category_filter import filter_by_category
from backend.services.tax_proxy.dependencies import (
    get_list_filters,
    get_orchestrator,
    get_request_logger,
)
from backend.services.tax_proxy.models import OrdersResponse
from backend.services.tax_proxy.orchestrator import TaxListingOrchestrator
from backend.services.tax_proxy.tax_resolver import TaxCategory

router = APIRouter(prefix="/sales-invoice", tags=["sales-invoice"])


async def build_tax_listing(
    orchestrator: TaxListingOrchestrator,
    filters: ListFilters,
    categories: Sequence[TaxCategory],
    logger: structlog.BoundLogger,
) -> OrdersResponse:
    page = await orchestrator.client.list_sales_invoices(filters)
    records = await orchestrator.build_listing(page.rows)
    resolved = len(records)

    if categories:
        records = filter_by_category(records, *categories)

    failed = sum(1 for record in records if record.tax_category == TaxCategory.FETCH_FAILED)
    logger.info(
        "tax_listing_built",
        rows=len(page.rows),
        resolved=resolved,
        returned=len(records),
        fetch_failed=failed,
        categories=[category.value for category in categories],
    )

    return OrdersResponse(
        orders=records,
        count=len(records),
        total_data=page.total_items,
        page=filters.page,
        per_page=filters.per_page,
    )


@router.get(
    "/tax-list",
    response_model=OrdersResponse,
    summary="Sales invoices with resolved taxes",
)
async def list_invoice_taxes(
    category: Optional[TaxCategory] = Query(None, description="Only return this tax category"),
    orchestrator: TaxListingOrchestrator = Depends(get_orchestrator),
    filters: ListFilters = Depends(get_list_filters),
    logger: structlog.BoundLogger = Depends(get_request_logger),
):
    """
    List sales invoices with their tax category, taxable base (DPP) and tax
    amount. Invoices whose detail could not be fetched are returned with
    category FETCH_FAILED and zero amounts.
    """
    categories = [category] if category else []
    return await build_tax_listing(orchestrator, filters, categories, logger)


@router.get(
    "/tax-list/hotel",
    response_model=OrdersResponse,
    summary="Sales invoices subject to lodging tax",
)
async def list_lodging_taxes(
    orchestrator: TaxListingOrchestrator = Depends(get_orchestrator),
    filters: ListFilters = Depends(get_list_filters),
    logger: structlog.BoundLogger = Depends(get_request_logger),
):
    return await build_tax_listing(orchestrator, filters, [TaxCategory.LODGING_TAX], logger)


@router.get(
    "/tax-list/resto",
    response_model=OrdersResponse,
    summary="Sales invoices subject to food-service tax",
)
async def list_food_service_taxes(
    orchestrator: TaxListingOrchestrator = Depends(get_orchestrator),
    filters: ListFilters = Depends(get_list_filters),
    logger: structlog.BoundLogger = Depends(get_request_logger),
):
    return await build_tax_listing(orchestrator, filters, [TaxCategory.FOOD_SERVICE_TAX], logger)
