"""End-to-end API tests through the FastAPI app."""

import pytest
from fastapi.testclient import TestClient

from conftest import EMPLOYEE_ID, auth_headers_for


class TestHealth:
    def test_health(self, client: TestClient):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"


def _setup_restaurant(client: TestClient, headers: dict) -> dict:
    floor = client.post("/api/v1/departments/", json={"name": "Floor", "department_type": "COLLECTOR"}, headers=headers)
    assert floor.status_code == 201, floor.text
    support = client.post("/api/v1/departments/", json={"name": "Support", "department_type": "RECEIVER"}, headers=headers)
    assert support.status_code == 201, support.text
    ids = {"floor": floor.json()["id"], "support": support.json()["id"]}
    for key, dept in [("server", "floor"), ("busser", "support"), ("host", "support")]:
        resp = client.post(
            "/api/v1/categories/",
            json={"department_id": ids[dept], "name": key.title()},
            headers=headers,
        )
        assert resp.status_code == 201, resp.text
        ids[key] = resp.json()["id"]
    return ids


class TestTipFlow:
    def test_collect_aggregate_allocate(self, client, manager_headers, employee_headers):
        ids = _setup_restaurant(client, manager_headers)

        resp = client.put(
            f"/api/v1/departments/{ids['support']}/distribution",
            json={"distribution": {str(ids["busser"]): 60, str(ids["host"]): 40}},
            headers=manager_headers,
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["distribution"] == {str(ids["busser"]): "60.00", str(ids["host"]): "40.00"}

        for day, amount in [("2024-01-03", "100.00"), ("2024-01-17", "50.00")]:
            resp = client.post(
                "/api/v1/tips/",
                json={"category_id": ids["server"], "service_date": day, "gross_tips": amount},
                headers=employee_headers,
            )
            assert resp.status_code == 201, resp.text
            assert resp.json()["user_id"] == EMPLOYEE_ID

        resp = client.post(
            "/api/v1/pools/aggregate",
            json={"period_start": "2024-01-01", "period_end": "2024-01-31"},
            headers=manager_headers,
        )
        assert resp.status_code == 201, resp.text
        pool = resp.json()
        assert pool["total_amount"] == "150.00"
        assert pool["status"] == "finalized"

        resp = client.post(f"/api/v1/pools/{pool['id']}/allocate", headers=manager_headers)
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["created"] is True
        assert body["allocated_amount"] == body["total_amount"]
        assert {a["category_name"]: a["amount"] for a in body["allocations"]} == {
            "Busser": "90.00",
            "Host": "60.00",
        }

        again = client.post(f"/api/v1/pools/{pool['id']}/allocate", headers=manager_headers).json()
        assert again["created"] is False
        assert again["allocations"] == body["allocations"]

        resp = client.get(f"/api/v1/pools/{pool['id']}", headers=manager_headers)
        assert resp.status_code == 200
        assert [a["amount"] for a in resp.json()["allocations"]] == ["90.00", "60.00"]

        resp = client.get(f"/api/v1/pools/{pool['id']}/entries", headers=manager_headers)
        assert resp.json()["total"] == 2

        resp = client.get("/api/v1/pools/", headers=manager_headers)
        assert resp.json()["total"] == 1
        assert resp.json()["items"][0]["status"] == "allocated"

        resp = client.get(
            "/api/v1/reports/department-summary",
            params={"departmentId": ids["support"], "startDate": "2024-01-01", "endDate": "2024-01-31"},
            headers=manager_headers,
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["total_amount"] == "150.00"

        resp = client.get(
            f"/api/v1/tips/collector/{EMPLOYEE_ID}",
            params={"startDate": "2024-01-01", "endDate": "2024-01-31"},
            headers=employee_headers,
        )
        assert resp.status_code == 200
        assert [i["service_date"] for i in resp.json()["items"]] == ["2024-01-17", "2024-01-03"]
        assert resp.json()["total_gross"] == "150.00"


class TestErrorResponses:
    def test_distribution_must_equal_100(self, client, manager_headers):
        ids = _setup_restaurant(client, manager_headers)
        resp = client.put(
            f"/api/v1/departments/{ids['support']}/distribution",
            json={"distribution": {str(ids["busser"]): 50, str(ids["host"]): 49}},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.json() == {
            "error": "DISTRIBUTION_MUST_EQUAL_100",
            "detail": "Distribution percentages must sum to 100, got 99",
            "details": {"total": "99"},
            "retryable": False,
        }

    def test_date_range_required(self, client, employee_headers):
        resp = client.get(f"/api/v1/tips/collector/{EMPLOYEE_ID}", headers=employee_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "DATE_RANGE_REQUIRED"

    def test_missing_body_fields(self, client, employee_headers):
        resp = client.post("/api/v1/tips/", json={"gross_tips": "10.00"}, headers=employee_headers)
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "FIELDS_REQUIRED"
        assert "body.category_id" in body["details"]["fields"]

    def test_department_name_and_type_required(self, client, manager_headers):
        resp = client.post("/api/v1/departments/", json={"name": "Bar"}, headers=manager_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "DEPARTMENT_NAME_AND_TYPE_REQUIRED"

    def test_pool_not_found(self, client, manager_headers):
        resp = client.get("/api/v1/pools/999", headers=manager_headers)
        assert resp.status_code == 404
        assert resp.json()["error"] == "NOT_FOUND"

    def test_no_receiver_configured(self, client, manager_headers):
        _setup_restaurant(client, manager_headers)
        pool = client.post(
            "/api/v1/pools/aggregate",
            json={"period_start": "2024-01-01", "period_end": "2024-01-31"},
            headers=manager_headers,
        ).json()
        resp = client.post(f"/api/v1/pools/{pool['id']}/allocate", headers=manager_headers)
        assert resp.status_code == 409
        assert resp.json()["error"] == "NO_RECEIVER_CONFIGURED"

    def test_update_rejects_unknown_fields(self, client, manager_headers):
        ids = _setup_restaurant(client, manager_headers)
        resp = client.put(
            f"/api/v1/departments/{ids['floor']}",
            json={"name": "Dining", "company_id": 99},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "FIELDS_REQUIRED"

    def test_delete_department_with_categories(self, client, manager_headers):
        ids = _setup_restaurant(client, manager_headers)
        resp = client.delete(f"/api/v1/departments/{ids['floor']}", headers=manager_headers)
        assert resp.status_code == 409
        assert resp.json()["error"] == "DEPARTMENT_HAS_CATEGORIES"

    def test_company_isolation(self, client, manager_headers):
        ids = _setup_restaurant(client, manager_headers)
        other = auth_headers_for("manager", 300, company_id=2)
        resp = client.get(f"/api/v1/departments/{ids['floor']}", headers=other)
        assert resp.status_code == 404
        assert client.get("/api/v1/departments/", headers=other).json()["total"] == 0
