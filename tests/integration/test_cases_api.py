"""End-to-end tests for the /cases endpoints."""

from __future__ import annotations

from typing import Any

import pytest
from httpx import AsyncClient

from tests.conftest import admin_headers, advocate_headers, client_headers

pytestmark = pytest.mark.integration

API = "/api/v1"
EVICTION = "urgent eviction notice, need help immediately"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _submit(client: AsyncClient, description: str = EVICTION, **extra: Any) -> dict[str, Any]:
    response = await client.post(
        f"{API}/cases",
        json={"title": "Eviction", "description": description, **extra},
        headers=client_headers(),
    )
    assert response.status_code == 201, response.text
    return response.json()["case"]


async def _register(client: AsyncClient, user_id: str, **overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "user_id": user_id,
        "name": f"Advocate {user_id}",
        "specializations": ["Property Law"],
        "experience_years": 8,
        "rating": 4.5,
        "success_rate": 80,
        "verified": True,
        "accepting_cases": True,
        "city": "Pune",
    }
    body.update(overrides)
    response = await client.post(f"{API}/advocates", json=body, headers=admin_headers())
    assert response.status_code == 201, response.text
    return response.json()


async def _hire(client: AsyncClient, case_id: str, advocate_id: str):
    return await client.post(
        f"{API}/cases/{case_id}/hire",
        json={"advocate_id": advocate_id},
        headers=client_headers(),
    )


async def _respond(client: AsyncClient, case_id: str, user_id: str, action: str = "accept"):
    return await client.post(
        f"{API}/cases/{case_id}/respond",
        json={"action": action},
        headers=advocate_headers(user_id),
    )


async def _assigned(client: AsyncClient, user_id: str = "adv-1") -> tuple[dict[str, Any], dict[str, Any]]:
    advocate = await _register(client, user_id)
    case = await _submit(client)
    assert (await _hire(client, case["id"], advocate["id"])).status_code == 200
    assert (await _respond(client, case["id"], user_id)).status_code == 200
    return case, advocate


# ---------------------------------------------------------------------------
# Submission and reads
# ---------------------------------------------------------------------------


class TestSubmit:
    async def test_eviction_case_is_property_and_critical(self, client: AsyncClient):
        response = await client.post(
            f"{API}/cases",
            json={"title": "Eviction", "description": EVICTION, "location": {"city": "Pune"}},
            headers=client_headers(),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["classification"]["category"] == "Property"
        assert body["urgency"]["level"] == "critical"
        case = body["case"]
        assert case["status"] == "pending_advocate"
        assert case["client_id"] == "client-1"
        assert case["location"]["city"] == "Pune"
        assert case["urgency_level"] == "critical"
        assert [t["event"] for t in case["timeline"]] == ["case_submitted", "analysis_started", "case_analyzed"]

    async def test_notifies_client(self, client: AsyncClient, mock_redis):
        await _submit(client)
        assert mock_redis.lpush.await_count == 1

    async def test_advocates_cannot_submit(self, client: AsyncClient):
        response = await client.post(
            f"{API}/cases",
            json={"title": "x", "description": EVICTION},
            headers=advocate_headers("adv-1"),
        )
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    async def test_missing_identity_is_forbidden(self, client: AsyncClient):
        response = await client.post(f"{API}/cases", json={"title": "x", "description": EVICTION})
        assert response.status_code == 403

    @pytest.mark.parametrize(
        "body",
        [
            {"title": "", "description": EVICTION},
            {"title": "Eviction", "description": ""},
            {"title": "Eviction", "description": "x" * 2001},
        ],
    )
    async def test_validation_errors(self, client: AsyncClient, body):
        response = await client.post(f"{API}/cases", json=body, headers=client_headers())
        assert response.status_code == 422


class TestGetCase:
    async def test_owner_sees_timeline(self, client: AsyncClient):
        case = await _submit(client)

        response = await client.get(f"{API}/cases/{case['id']}", headers=client_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == case["id"]
        assert len(body["timeline"]) == 3
        assert body["time_in_status_seconds"] >= 0

    async def test_unknown_case_is_404(self, client: AsyncClient):
        response = await client.get(f"{API}/cases/missing", headers=admin_headers())
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_strangers_are_forbidden(self, client: AsyncClient):
        case = await _submit(client)
        response = await client.get(f"{API}/cases/{case['id']}", headers=client_headers("someone-else"))
        assert response.status_code == 403

    async def test_assigned_advocate_can_read(self, client: AsyncClient):
        case, _ = await _assigned(client)
        response = await client.get(f"{API}/cases/{case['id']}", headers=advocate_headers("adv-1"))
        assert response.status_code == 200
        assert response.json()["status"] == "assigned"


class TestRecommendations:
    async def test_ranked_by_score(self, client: AsyncClient):
        case = await _submit(client)
        low = await _register(client, "adv-c", rating=3.5, success_rate=70, specializations=[])
        top = await _register(client, "adv-a", rating=4.8, success_rate=90, specializations=[])
        mid = await _register(client, "adv-b", rating=4.0, success_rate=80, specializations=[])
        await _register(client, "adv-x", verified=False)
        await _register(client, "adv-y", accepting_cases=False)

        response = await client.get(f"{API}/cases/{case['id']}/recommendations", headers=client_headers())

        assert response.status_code == 200
        body = response.json()
        assert [r["advocate_id"] for r in body["recommendations"]] == [top["id"], mid["id"], low["id"]]
        assert [r["match_score"] for r in body["recommendations"]] == [69, 60, 53]
        assert body["total_eligible"] == 3

    async def test_empty_pool_has_message(self, client: AsyncClient):
        case = await _submit(client)
        response = await client.get(f"{API}/cases/{case['id']}/recommendations", headers=client_headers())
        body = response.json()
        assert body["recommendations"] == []
        assert body["message"]


# ---------------------------------------------------------------------------
# Assignment workflow
# ---------------------------------------------------------------------------


class TestHireAndRespond:
    async def test_full_accept_flow(self, client: AsyncClient):
        case, advocate = await _assigned(client)

        detail = (await client.get(f"{API}/cases/{case['id']}", headers=client_headers())).json()
        assert detail["status"] == "assigned"
        assert detail["advocate_id"] == advocate["id"]
        profile = (await client.get(f"{API}/advocates/{advocate['id']}", headers=client_headers())).json()
        assert profile["current_case_load"] == 1

    async def test_second_hire_is_already_claimed(self, client: AsyncClient):
        first = await _register(client, "adv-1")
        second = await _register(client, "adv-2")
        case = await _submit(client)
        await _hire(client, case["id"], first["id"])

        response = await _hire(client, case["id"], second["id"])

        assert response.status_code == 409
        assert response.json()["error"] == "already_claimed"

    async def test_hire_unavailable_advocate(self, client: AsyncClient):
        busy = await _register(client, "adv-1", accepting_cases=False)
        case = await _submit(client)

        response = await _hire(client, case["id"], busy["id"])

        assert response.status_code == 422
        assert response.json()["error"] == "provider_unavailable"

    async def test_only_owner_can_hire(self, client: AsyncClient):
        advocate = await _register(client, "adv-1")
        case = await _submit(client)
        response = await client.post(
            f"{API}/cases/{case['id']}/hire",
            json={"advocate_id": advocate["id"]},
            headers=client_headers("intruder"),
        )
        assert response.status_code == 403

    async def test_reject_returns_case_to_pool(self, client: AsyncClient):
        advocate = await _register(client, "adv-1")
        case = await _submit(client)
        await _hire(client, case["id"], advocate["id"])

        response = await _respond(client, case["id"], "adv-1", action="reject")

        assert response.status_code == 200
        assert response.json()["status"] == "pending_advocate"
        assert response.json()["advocate_id"] is None

    async def test_wrong_advocate_cannot_respond(self, client: AsyncClient):
        advocate = await _register(client, "adv-1")
        await _register(client, "adv-2")
        case = await _submit(client)
        await _hire(client, case["id"], advocate["id"])

        response = await _respond(client, case["id"], "adv-2")

        assert response.status_code == 403
        assert response.json()["error"] == "not_claimant"

    async def test_respond_without_profile(self, client: AsyncClient):
        case = await _submit(client)
        response = await _respond(client, case["id"], "no-profile")
        assert response.status_code == 403


# ---------------------------------------------------------------------------
# Status, completion, review
# ---------------------------------------------------------------------------


class TestStatus:
    async def test_advocate_starts_work(self, client: AsyncClient):
        case, _ = await _assigned(client)

        response = await client.put(
            f"{API}/cases/{case['id']}/status",
            json={"status": "in_progress", "note": "Filed reply"},
            headers=advocate_headers("adv-1"),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "in_progress"
        assert response.json()["timeline"][-1]["description"] == "Filed reply"

    async def test_stale_expected_status_is_retryable_conflict(self, client: AsyncClient):
        case, _ = await _assigned(client)

        response = await client.put(
            f"{API}/cases/{case['id']}/status",
            json={"status": "withdrawn", "expected_status": "pending_advocate"},
            headers=client_headers(),
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "stale_state"
        assert body["details"]["retryable"] is True

    async def test_illegal_edge_is_invalid_transition(self, client: AsyncClient):
        case = await _submit(client)

        response = await client.put(
            f"{API}/cases/{case['id']}/status",
            json={"status": "completed"},
            headers=admin_headers(),
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "invalid_transition"
        assert "withdrawn" in body["details"]["allowed"]

    async def test_client_withdraws(self, client: AsyncClient):
        case, advocate = await _assigned(client)

        response = await client.put(
            f"{API}/cases/{case['id']}/status",
            json={"status": "withdrawn"},
            headers=client_headers(),
        )

        assert response.status_code == 200
        profile = (await client.get(f"{API}/advocates/{advocate['id']}", headers=client_headers())).json()
        assert profile["current_case_load"] == 0

    async def test_client_cannot_mark_in_progress(self, client: AsyncClient):
        case, _ = await _assigned(client)
        response = await client.put(
            f"{API}/cases/{case['id']}/status",
            json={"status": "in_progress"},
            headers=client_headers(),
        )
        assert response.status_code == 403

    async def test_outcome_statuses_require_complete(self, client: AsyncClient):
        case, advocate = await _assigned(client)

        by_advocate = await client.put(
            f"{API}/cases/{case['id']}/status",
            json={"status": "resolved"},
            headers=advocate_headers("adv-1"),
        )
        by_admin = await client.put(
            f"{API}/cases/{case['id']}/status",
            json={"status": "completed"},
            headers=admin_headers(),
        )

        assert by_advocate.status_code == 403
        assert by_admin.status_code == 409
        assert by_admin.json()["error"] == "invalid_transition"
        profile = (await client.get(f"{API}/advocates/{advocate['id']}", headers=client_headers())).json()
        assert (profile["total_cases"], profile["current_case_load"]) == (0, 1)

    async def test_closed_case_cannot_be_hired(self, client: AsyncClient):
        case, _ = await _assigned(client)
        other = await _register(client, "adv-2")
        await client.post(
            f"{API}/cases/{case['id']}/complete",
            json={"result": "success"},
            headers=advocate_headers("adv-1"),
        )
        await client.put(f"{API}/cases/{case['id']}/status", json={"status": "closed"}, headers=client_headers())

        response = await _hire(client, case["id"], other["id"])

        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"


class TestCompleteAndReview:
    async def test_complete_then_review(self, client: AsyncClient):
        case, advocate = await _assigned(client)

        done = await client.post(
            f"{API}/cases/{case['id']}/complete",
            json={"result": "success", "description": "Stay granted"},
            headers=advocate_headers("adv-1"),
        )
        assert done.status_code == 200
        assert done.json()["status"] == "completed"
        assert done.json()["outcome_result"] == "success"

        review = await client.post(f"{API}/cases/{case['id']}/review", json={"stars": 5}, headers=client_headers())
        assert review.status_code == 200
        stats = review.json()
        assert stats["id"] == advocate["id"]
        assert stats["total_cases"] == 1
        assert stats["cases_won"] == 1
        assert stats["success_rate"] == pytest.approx(100.0)
        assert stats["current_case_load"] == 0
        assert stats["total_reviews"] == 1
        assert stats["rating"] == pytest.approx(5.0)

        again = await client.post(f"{API}/cases/{case['id']}/review", json={"stars": 1}, headers=client_headers())
        assert again.status_code == 409

    async def test_only_case_advocate_completes(self, client: AsyncClient):
        case, _ = await _assigned(client)
        await _register(client, "adv-2")

        response = await client.post(
            f"{API}/cases/{case['id']}/complete",
            json={"result": "success"},
            headers=advocate_headers("adv-2"),
        )

        assert response.status_code == 403

    async def test_review_stars_validated(self, client: AsyncClient):
        case = await _submit(client)
        response = await client.post(f"{API}/cases/{case['id']}/review", json={"stars": 6}, headers=client_headers())
        assert response.status_code == 422


class TestReanalyzeAndStale:
    async def test_reanalyze_records_event(self, client: AsyncClient):
        case = await _submit(client)

        response = await client.post(f"{API}/cases/{case['id']}/reanalyze", headers=client_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["category"] == "Property"
        assert body["timeline"][-1]["event"] == "case_reanalyzed"

    async def test_stale_listing_is_admin_only(self, client: AsyncClient):
        response = await client.get(f"{API}/cases/stale", headers=client_headers())
        assert response.status_code == 403

    async def test_fresh_claims_are_not_stale(self, client: AsyncClient):
        advocate = await _register(client, "adv-1")
        case = await _submit(client)
        await _hire(client, case["id"], advocate["id"])

        response = await client.get(
            f"{API}/cases/stale",
            params={"status": "pending_acceptance", "older_than_hours": 1},
            headers=admin_headers(),
        )

        assert response.status_code == 200
        assert response.json()["total"] == 0
        assert response.json()["status"] == "pending_acceptance"
