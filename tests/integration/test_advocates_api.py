"""End-to-end tests for the /advocates endpoints."""

import pytest
from httpx import AsyncClient

from tests.conftest import admin_headers, advocate_headers, client_headers

pytestmark = pytest.mark.integration

API = "/api/v1"


def _profile(user_id: str = "adv-1", **overrides):
    body = {
        "user_id": user_id,
        "name": "Asha Rao",
        "specializations": [" Property Law ", ""],
        "experience_years": 8,
        "rating": 4.5,
        "success_rate": 80,
        "verified": True,
        "city": "Pune",
    }
    body.update(overrides)
    return body


class TestRegister:
    async def test_admin_registers_advocate(self, client: AsyncClient):
        response = await client.post(f"{API}/advocates", json=_profile(), headers=admin_headers())

        assert response.status_code == 201
        body = response.json()
        assert body["user_id"] == "adv-1"
        assert body["specializations"] == ["Property Law"]
        assert body["current_case_load"] == 0
        assert body["accepting_cases"] is True

    async def test_duplicate_user_is_conflict(self, client: AsyncClient):
        await client.post(f"{API}/advocates", json=_profile(), headers=admin_headers())
        response = await client.post(f"{API}/advocates", json=_profile(), headers=admin_headers())
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    async def test_non_admin_cannot_register(self, client: AsyncClient):
        response = await client.post(f"{API}/advocates", json=_profile(), headers=client_headers())
        assert response.status_code == 403

    async def test_rating_out_of_range(self, client: AsyncClient):
        response = await client.post(f"{API}/advocates", json=_profile(rating=5.5), headers=admin_headers())
        assert response.status_code == 422


class TestProfile:
    async def test_get_unknown(self, client: AsyncClient):
        response = await client.get(f"{API}/advocates/missing", headers=client_headers())
        assert response.status_code == 404

    async def test_advocate_toggles_own_availability(self, client: AsyncClient):
        created = (await client.post(f"{API}/advocates", json=_profile(), headers=admin_headers())).json()

        response = await client.put(
            f"{API}/advocates/{created['id']}/availability",
            json={"accepting_cases": False},
            headers=advocate_headers("adv-1"),
        )

        assert response.status_code == 200
        assert response.json()["accepting_cases"] is False
        fetched = await client.get(f"{API}/advocates/{created['id']}", headers=client_headers())
        assert fetched.json()["accepting_cases"] is False

    async def test_cannot_toggle_someone_else(self, client: AsyncClient):
        created = (await client.post(f"{API}/advocates", json=_profile(), headers=admin_headers())).json()

        response = await client.put(
            f"{API}/advocates/{created['id']}/availability",
            json={"accepting_cases": False},
            headers=advocate_headers("adv-2"),
        )

        assert response.status_code == 403


class TestSeededTrackRecord:
    async def test_success_rate_follows_seeded_counters(self, client: AsyncClient):
        response = await client.post(
            f"{API}/advocates",
            json=_profile(success_rate=10, total_cases=10, cases_won=8, total_reviews=4),
            headers=admin_headers(),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success_rate"] == pytest.approx(80.0)
        assert (body["total_cases"], body["cases_won"], body["total_reviews"]) == (10, 8, 4)

    async def test_success_rate_kept_without_counters(self, client: AsyncClient):
        body = (await client.post(f"{API}/advocates", json=_profile(), headers=admin_headers())).json()
        assert body["success_rate"] == pytest.approx(80.0)
        assert body["total_cases"] == 0

    async def test_won_cannot_exceed_total(self, client: AsyncClient):
        response = await client.post(
            f"{API}/advocates",
            json=_profile(total_cases=2, cases_won=3),
            headers=admin_headers(),
        )
        assert response.status_code == 422
