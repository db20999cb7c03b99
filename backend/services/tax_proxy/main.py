"""
Accurate Tax Gateway service.

Proxies the Accurate sales-invoice and sales-receipt APIs for the front-end,
resolving each invoice's tax category, taxable base and tax amount.

Service Endpoints:
- GET /api/v1/sales-invoice/tax-list - invoices with resolved taxes
- GET /api/v1/sales-invoice/tax-list/hotel - lodging-tax invoices only
- GET /api/v1/sales-invoice/tax-list/resto - food-service-tax invoices only
- GET /api/v1/sales-receipt/list[/hotel|/resto] - sales receipts
- GET /health, GET /info - service status
"""

from datetime import datetime, timezone
from typing import Optional

from backend.core.base_service import BaseService, create_service
from backend.core.config import Settings, get_settings
from backend.services.tax_proxy import SERVICE_NAME, SERVICE_VERSION
from backend.services.tax_proxy.routers import invoices, receipts


def create_app(settings: Optional[Settings] = None) -> BaseService:
    """Build the gateway service with its routes and health checks"""
    settings = settings or get_settings()

    service = create_service(
        name=SERVICE_NAME,
        version=SERVICE_VERSION,
        description="Sales invoice and receipt listings with resolved taxes from Accurate",
        settings=settings,
    )
    service.app.state.settings = settings

    service.add_dependency_check(
        "accurate_config",
        lambda: bool(settings.accurate.accurate_host and settings.accurate.accurate_session_id),
    )

    service.include_router(invoices.router)
    service.include_router(receipts.router)

    @service.app.get("/", tags=["Info"])
    async def root():
        """Gateway root endpoint"""
        return {
            "service": service.name,
            "version": service.version,
            "status": "operational",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "documentation": "/docs",
            "health": "/health",
        }

    return service


service = create_app()
app = service.app


if __name__ == "__main__":
    service.run(reload=False)
