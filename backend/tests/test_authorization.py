"""Authorization tests.

Employees cannot change configuration, aggregate or allocate; tokens without
a company or with an unknown role are rejected.
"""

import pytest
from datetime import timedelta
from fastapi.testclient import TestClient

from tippool.core.security import create_access_token

from conftest import EMPLOYEE_ID, MANAGER_ID


def _token(role: str, user_id: int = 1, company_id=1) -> dict:
    """Generate auth headers for a given role."""
    claims = {"sub": str(user_id), "role": role}
    if company_id is not None:
        claims["company_id"] = company_id
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


class TestEmployeeCannotMutate:
    """Employee role should be denied manager-level operations."""

    def test_employee_cannot_create_department(self, client):
        resp = client.post(
            "/api/v1/departments/",
            json={"name": "Bar", "department_type": "COLLECTOR"},
            headers=_token("employee"),
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "UNAUTHORIZED"

    def test_employee_cannot_set_distribution(self, client):
        resp = client.put(
            "/api/v1/departments/1/distribution",
            json={"distribution": {"1": 100}},
            headers=_token("employee"),
        )
        assert resp.status_code == 403

    def test_employee_cannot_aggregate(self, client):
        resp = client.post(
            "/api/v1/pools/aggregate",
            json={"period_start": "2024-01-01", "period_end": "2024-01-31"},
            headers=_token("employee"),
        )
        assert resp.status_code == 403

    def test_employee_cannot_allocate(self, client):
        resp = client.post("/api/v1/pools/1/allocate", headers=_token("employee"))
        assert resp.status_code == 403

    def test_employee_cannot_list_pools(self, client):
        resp = client.get("/api/v1/pools/", headers=_token("employee"))
        assert resp.status_code == 403

    def test_employee_cannot_read_others_tips(self, client):
        resp = client.get(
            f"/api/v1/tips/collector/{MANAGER_ID}",
            params={"startDate": "2024-01-01", "endDate": "2024-01-31"},
            headers=_token("employee", user_id=EMPLOYEE_ID),
        )
        assert resp.status_code == 403

    def test_employee_can_read_departments(self, client):
        resp = client.get("/api/v1/departments/", headers=_token("employee"))
        assert resp.status_code == 200


class TestManagerAllowed:
    def test_manager_can_create_department(self, client):
        resp = client.post(
            "/api/v1/departments/",
            json={"name": "Bar", "department_type": "COLLECTOR"},
            headers=_token("manager"),
        )
        assert resp.status_code == 201


class TestUnauthenticatedDenied:
    """No token should be rejected on protected endpoints."""

    def test_no_token_on_get(self, client):
        resp = client.get("/api/v1/departments/")
        assert resp.status_code == 401

    def test_no_token_on_post(self, client):
        resp = client.post("/api/v1/tips/", json={})
        assert resp.status_code == 401

    def test_no_token_on_delete(self, client):
        resp = client.delete("/api/v1/categories/1")
        assert resp.status_code == 401


class TestInvalidToken:
    """Invalid/tampered tokens should be rejected."""

    def test_tampered_token(self, client):
        headers = {"Authorization": "Bearer invalid.token.here"}
        resp = client.get("/api/v1/departments/", headers=headers)
        assert resp.status_code == 401

    def test_expired_token(self, client):
        token = create_access_token(
            {"sub": "1", "company_id": 1, "role": "manager"},
            expires_delta=timedelta(seconds=-10),
        )
        resp = client.get("/api/v1/departments/", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_missing_company_in_token(self, client):
        resp = client.get("/api/v1/departments/", headers=_token("manager", company_id=None))
        assert resp.status_code == 401

    @pytest.mark.parametrize("role", ["owner", "staff", ""])
    def test_unknown_role_in_token(self, client, role):
        resp = client.get("/api/v1/departments/", headers=_token(role))
        assert resp.status_code == 401

    def test_token_in_cookie(self, client: TestClient):
        token = create_access_token({"sub": "1", "company_id": 1, "role": "manager"})
        client.cookies.set("access_token", token)
        resp = client.get("/api/v1/departments/")
        client.cookies.clear()
        assert resp.status_code == 200
