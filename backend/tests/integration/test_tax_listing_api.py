"""
Integration tests for the gateway HTTP surface.

The whole FastAPI app is exercised through TestClient; Accurate is replaced
with an httpx.MockTransport injected through the upstream transport
dependency.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from backend.services.tax_proxy.dependencies import get_upstream_transport
from backend.services.tax_proxy.main import create_app

AUTH = {"Authorization": "Bearer token-abc"}

INVOICES = [
    {"id": 1, "number": "SI-001", "transDate": "05/03/2024", "customer": {"name": "PT Mawar"},
     "description": "Kamar 101", "statusName": "Lunas", "totalAmount": 550000},
    {"id": 2, "number": "SI-002", "transDate": "04/03/2024", "customer": {"name": "CV Melati"},
     "totalAmount": 110000},
    {"id": 3, "number": "SI-003", "transDate": "03/03/2024", "customer": None,
     "totalAmount": "220000"},
]

DETAILS = {
    1: {"id": 1, "tax1": {"description": "PAJAK HOTEL"}, "dppAmount": 500000, "tax1Amount": 50000},
    3: {"id": 3, "detailTax": [{"tax": {"description": "PAJAK RESTORAN"}, "taxableAmount": 200000}]},
}

RECEIPTS = [
    {"id": 10, "number": "SR-10", "transDate": "01/03/2024", "description": "Pelunasan hotel",
     "totalPayment": 550000, "bank": {"name": "BCA"}},
    {"id": 11, "number": "SR-11", "transDate": "02/03/2024", "description": "Resto lantai 2",
     "totalPayment": 75000},
    {"id": 12, "number": "SR-12", "transDate": "03/03/2024", "description": "Resto Hotel Mawar",
     "totalPayment": 120000},
]


class FakeAccurate:
    """Routes Accurate API paths to canned responses and records requests"""

    def __init__(self, list_response=None):
        self.requests = []
        self.list_response = list_response or httpx.Response(
            200, json={"s": True, "d": INVOICES, "sp": {"rowCount": 42}}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/sales-invoice/list.do"):
            return self.list_response
        if path.endswith("/sales-invoice/detail.do"):
            detail = DETAILS.get(int(request.url.params["id"]))
            if detail is None:
                return httpx.Response(500, json={"s": False, "d": ["Internal error"]})
            return httpx.Response(200, json={"s": True, "d": detail})
        if path.endswith("/sales-receipt/list.do"):
            return httpx.Response(200, json={"d": {"list": RECEIPTS, "totalItems": 3, "totalPage": 1}})
        return httpx.Response(404)

    def detail_calls(self, record_id):
        return [
            r for r in self.requests
            if r.url.path.endswith("detail.do") and r.url.params["id"] == str(record_id)
        ]


def make_client(settings, upstream):
    app = create_app(settings).app
    app.dependency_overrides[get_upstream_transport] = lambda: httpx.MockTransport(upstream)
    return TestClient(app)


@pytest.fixture
def upstream():
    return FakeAccurate()


@pytest.fixture
def client(settings, upstream):
    return make_client(settings, upstream)


class TestTaxListing:
    """GET /api/v1/sales-invoice/tax-list"""

    def test_failed_detail_does_not_fail_the_listing(self, client, upstream):
        response = client.get("/api/v1/sales-invoice/tax-list", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 3
        assert data["total_data"] == 42
        assert [o["number"] for o in data["orders"]] == ["SI-001", "SI-002", "SI-003"]

        hotel, failed, resto = data["orders"]
        assert hotel["tax_category"] == "LODGING_TAX"
        assert hotel["taxable_base"] == 500000
        assert hotel["tax_amount"] == 50000
        assert hotel["trans_date"] == "2024-03-05"
        assert hotel["customer_name"] == "PT Mawar"

        assert failed["tax_category"] == "FETCH_FAILED"
        assert failed["taxable_base"] == 0
        assert failed["tax_amount"] == 0

        assert resto["tax_category"] == "FOOD_SERVICE_TAX"
        assert resto["taxable_base"] == 200000
        assert resto["tax_amount"] == 20000
        assert resto["customer_name"] == "-"

        assert len(upstream.detail_calls(2)) == 3
        assert len(upstream.detail_calls(1)) == 1

    def test_upstream_headers_and_filters(self, client, upstream):
        client.get(
            "/api/v1/sales-invoice/tax-list",
            params={"start_date": "2024-03-01", "end_date": "2024-03-31", "per_page": 20},
            headers=AUTH,
        )
        list_request = upstream.requests[0]
        assert list_request.headers["Authorization"] == "Bearer token-abc"
        assert list_request.headers["X-Session-ID"] == "session-123"
        assert list_request.url.params["filter.transDate.val[0]"] == "01/03/2024"
        assert list_request.url.params["filter.transDate.val[1]"] == "31/03/2024"
        assert list_request.url.params["sp.pageSize"] == "20"

    def test_per_page_is_capped(self, client, upstream):
        response = client.get("/api/v1/sales-invoice/tax-list", params={"per_page": 5000}, headers=AUTH)
        assert response.json()["per_page"] == 1000
        assert upstream.requests[0].url.params["sp.pageSize"] == "1000"

    def test_category_query(self, client):
        response = client.get("/api/v1/sales-invoice/tax-list", params={"category": "FETCH_FAILED"},
                              headers=AUTH)
        assert [o["number"] for o in response.json()["orders"]] == ["SI-002"]

    def test_unknown_category_is_bad_request(self, client):
        response = client.get("/api/v1/sales-invoice/tax-list", params={"category": "HOTEL"},
                              headers=AUTH)
        assert response.status_code == 400

    def test_hotel_variant(self, client):
        data = client.get("/api/v1/sales-invoice/tax-list/hotel", headers=AUTH).json()
        assert data["count"] == 1
        assert data["orders"][0]["number"] == "SI-001"
        assert data["total_data"] == 42

    def test_resto_variant(self, client):
        data = client.get("/api/v1/sales-invoice/tax-list/resto", headers=AUTH).json()
        assert [o["number"] for o in data["orders"]] == ["SI-003"]

    def test_paged_list_shape(self, settings):
        upstream = FakeAccurate(httpx.Response(
            200, json={"d": {"list": INVOICES[:1], "totalItems": 1, "totalPage": 1}}
        ))
        data = make_client(settings, upstream).get("/api/v1/sales-invoice/tax-list", headers=AUTH).json()
        assert data["count"] == 1
        assert data["total_data"] == 1

    def test_empty_list(self, settings):
        upstream = FakeAccurate(httpx.Response(200, json={"s": True, "d": []}))
        data = make_client(settings, upstream).get("/api/v1/sales-invoice/tax-list", headers=AUTH).json()
        assert data["orders"] == []
        assert data["count"] == 0


class TestErrors:
    """Status codes of the listing endpoints"""

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Token abc"}, {"Authorization": "Bearer"}])
    def test_unauthorized(self, client, upstream, headers):
        response = client.get("/api/v1/sales-invoice/tax-list", headers=headers)
        assert response.status_code == 401
        assert response.json()["error"] == "auth_error"
        assert upstream.requests == []

    @pytest.mark.parametrize("params", [
        {"start_date": "2024-13-01", "end_date": "2024-12-31"},
        {"start_date": "01-03-2024", "end_date": "2024-03-31"},
        {"start_date": "2024-03-31", "end_date": "2024-03-01"},
        {"start_date": "2024-03-01"},
        {"end_date": "2024-03-01"},
        {"per_page": 0},
        {"page": "first"},
    ])
    def test_bad_filters(self, client, upstream, params):
        response = client.get("/api/v1/sales-invoice/tax-list", params=params, headers=AUTH)
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
        assert upstream.requests == []

    @pytest.mark.parametrize("path", [
        "/api/v1/sales-invoice/tax-list",
        "/api/v1/sales-invoice/tax-list/hotel",
        "/api/v1/sales-receipt/list",
    ])
    def test_method_not_allowed(self, client, path):
        response = client.post(path, headers=AUTH)
        assert response.status_code == 405

    def test_list_failure_returns_upstream_body(self, settings):
        upstream = FakeAccurate(httpx.Response(500, json={"s": False, "d": ["Database locked"]}))
        response = make_client(settings, upstream).get("/api/v1/sales-invoice/tax-list", headers=AUTH)

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "upstream_error"
        assert data["details"]["upstream"] == {"s": False, "d": ["Database locked"]}
        assert data["details"]["upstream_status"] == 500

    def test_missing_configuration(self, make_settings, upstream):
        settings = make_settings(accurate_host=None)
        response = make_client(settings, upstream).get("/api/v1/sales-invoice/tax-list", headers=AUTH)

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "config_error"
        assert data["details"] == {"missing": ["ACCURATE_HOST"]}
        assert upstream.requests == []

    def test_health_reports_missing_configuration(self, make_settings, upstream):
        settings = make_settings(accurate_session_id=None)
        data = make_client(settings, upstream).get("/health").json()
        assert data["status"] == "unhealthy"
        assert data["dependencies"]["accurate_config"] == "unhealthy"


class TestReceipts:
    """GET /api/v1/sales-receipt/list"""

    def test_list(self, client, upstream):
        data = client.get("/api/v1/sales-receipt/list", headers=AUTH).json()

        assert data["count"] == 3
        assert data["total_data"] == 3
        first = data["orders"][0]
        assert first["number"] == "SR-10"
        assert first["bank_name"] == "BCA"
        assert first["total_payment"] == 550000
        assert first["tax_category"] == "LODGING_TAX"
        assert not any(r.url.path.endswith("detail.do") for r in upstream.requests)

    def test_hotel(self, client):
        data = client.get("/api/v1/sales-receipt/list/hotel", headers=AUTH).json()
        assert [o["number"] for o in data["orders"]] == ["SR-10", "SR-12"]

    def test_resto(self, client):
        data = client.get("/api/v1/sales-receipt/list/resto", headers=AUTH).json()
        assert [o["number"] for o in data["orders"]] == ["SR-11", "SR-12"]


def test_root(client):
    data = client.get("/").json()
    assert data["service"] == "accurate-tax-gateway"
    assert data["status"] == "operational"
