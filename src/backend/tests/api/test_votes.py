"""
Tests for ballot endpoints.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select, update

from core.security import compute_ballot_hash
from models.audit_log import AuditLog
from models.poll import Poll, PollStatus


async def close_poll(session_factory, poll_id):
    async with session_factory() as session, session.begin():
        await session.execute(update(Poll).where(Poll.id == poll_id).values(status=PollStatus.CLOSED.value))


@pytest.mark.integration
class TestCastEndpoint:
    async def test_cast_returns_receipt(self, client: AsyncClient, make_poll, auth_headers) -> None:
        poll = await make_poll()

        response = await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": poll.id, "selected_options": [poll.option_ids[0]]},
            headers=auth_headers(7),
        )

        assert response.status_code == 201
        data = response.json()
        assert len(data["receipt_id"]) == 32
        assert len(data["integrity_hash"]) == 64
        assert data["replaced"] is False
        assert "selected_options" not in data

    async def test_cast_requires_auth(self, client: AsyncClient, make_poll) -> None:
        poll = await make_poll()

        response = await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": poll.id, "selected_options": [poll.option_ids[0]]},
        )

        assert response.status_code in [401, 403]

    async def test_cast_rejects_invalid_token(self, client: AsyncClient, make_poll) -> None:
        poll = await make_poll()

        response = await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": poll.id, "selected_options": [poll.option_ids[0]]},
            headers={"Authorization": "Bearer not-a-token"},
        )

        assert response.status_code == 401

    async def test_second_cast_conflicts(self, client: AsyncClient, make_poll, auth_headers) -> None:
        poll = await make_poll()
        body = {"poll_id": poll.id, "selected_options": [poll.option_ids[0]]}
        await client.post("/api/v1/votes/cast", json=body, headers=auth_headers(7))

        response = await client.post("/api/v1/votes/cast", json=body, headers=auth_headers(7))

        assert response.status_code == 409
        assert response.json()["code"] == "already_voted"

    async def test_revote_is_reported_as_replacement(self, client: AsyncClient, make_poll, auth_headers) -> None:
        poll = await make_poll(allow_revote=True)
        await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": poll.id, "selected_options": [poll.option_ids[0]]},
            headers=auth_headers(7),
        )

        response = await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": poll.id, "selected_options": [poll.option_ids[1]]},
            headers=auth_headers(7),
        )

        assert response.status_code == 201
        assert response.json()["replaced"] is True

    @pytest.mark.parametrize(
        ("poll_overrides", "options", "status_code", "code"),
        [
            ({"status": PollStatus.DRAFT.value}, None, 404, "poll_not_found_or_inactive"),
            ({}, [9999], 400, "invalid_option"),
            ({}, "two", 400, "too_many_selections"),
        ],
    )
    async def test_rejections_carry_reason_code(
        self, client: AsyncClient, make_poll, auth_headers, poll_overrides, options, status_code, code
    ) -> None:
        poll = await make_poll(**poll_overrides)
        if options is None:
            options = [poll.option_ids[0]]
        elif options == "two":
            options = poll.option_ids[:2]

        response = await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": poll.id, "selected_options": options},
            headers=auth_headers(7),
        )

        assert response.status_code == status_code
        assert response.json()["code"] == code

    async def test_cast_on_missing_poll(self, client: AsyncClient, auth_headers) -> None:
        response = await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": 9999, "selected_options": [1]},
            headers=auth_headers(7),
        )

        assert response.status_code == 404
        assert response.json()["code"] == "poll_not_found_or_inactive"

    async def test_empty_selection_is_invalid(self, client: AsyncClient, make_poll, auth_headers) -> None:
        poll = await make_poll()

        response = await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": poll.id, "selected_options": []},
            headers=auth_headers(7),
        )

        assert response.status_code == 422

    async def test_forwarded_ip_is_audited(self, client: AsyncClient, session_factory, make_poll, auth_headers) -> None:
        poll = await make_poll()

        await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": poll.id, "selected_options": [poll.option_ids[0]]},
            headers={**auth_headers(7), "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
        )

        async with session_factory() as session:
            entry = (await session.execute(select(AuditLog))).scalar_one()
        assert entry.ip_address == "203.0.113.9"


@pytest.mark.integration
class TestReceiptEndpoints:
    async def test_receipt_lookup(self, client: AsyncClient, make_poll, auth_headers) -> None:
        poll = await make_poll(title="Team offsite")
        cast = await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": poll.id, "selected_options": [poll.option_ids[0]]},
            headers=auth_headers(7),
        )
        receipt_id = cast.json()["receipt_id"]

        own = await client.get(f"/api/v1/votes/receipt/{receipt_id}", headers=auth_headers(7))
        other = await client.get(f"/api/v1/votes/receipt/{receipt_id}", headers=auth_headers(8))

        assert own.status_code == 200
        assert own.json()["poll_title"] == "Team offsite"
        assert own.json()["integrity_hash"] == cast.json()["integrity_hash"]
        assert other.status_code == 404
        assert other.json()["code"] == "receipt_not_found"

    async def test_receipt_hash_can_be_recomputed(self, client: AsyncClient, make_poll, auth_headers) -> None:
        poll = await make_poll()
        option_id = poll.option_ids[1]
        cast = await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": poll.id, "selected_options": [option_id]},
            headers=auth_headers(42),
        )
        receipt = cast.json()

        lookup = await client.get(f"/api/v1/votes/receipt/{receipt['receipt_id']}", headers=auth_headers(42))
        verify = await client.get(f"/api/v1/votes/verify/{poll.id}", headers=auth_headers(42))

        for body in (receipt, lookup.json(), verify.json()):
            assert body["timestamp"] == receipt["timestamp"]
            assert compute_ballot_hash(poll.id, 42, [option_id], body["timestamp"]) == receipt["integrity_hash"]

    async def test_verify(self, client: AsyncClient, make_poll, auth_headers) -> None:
        poll = await make_poll()
        before = await client.get(f"/api/v1/votes/verify/{poll.id}", headers=auth_headers(7))
        cast = await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": poll.id, "selected_options": [poll.option_ids[0]]},
            headers=auth_headers(7),
        )

        after = await client.get(f"/api/v1/votes/verify/{poll.id}", headers=auth_headers(7))

        assert before.json()["verified"] is False
        assert after.status_code == 200
        assert after.json()["verified"] is True
        assert after.json()["receipt_id"] == cast.json()["receipt_id"]


@pytest.mark.integration
class TestResultsEndpoint:
    async def test_results_hidden_while_poll_open(self, client: AsyncClient, make_poll, auth_headers) -> None:
        poll = await make_poll()

        response = await client.get(f"/api/v1/votes/results/{poll.id}", headers=auth_headers(7))

        assert response.status_code == 403

    @pytest.mark.parametrize("role", ["poll_admin", "vote_creator"])
    async def test_privileged_roles_see_open_results(self, client: AsyncClient, make_poll, auth_headers, role) -> None:
        poll = await make_poll()
        await client.post(
            "/api/v1/votes/cast",
            json={"poll_id": poll.id, "selected_options": [poll.option_ids[1]]},
            headers=auth_headers(7),
        )

        response = await client.get(f"/api/v1/votes/results/{poll.id}", headers=auth_headers(1, role))

        assert response.status_code == 200
        data = response.json()
        assert data["total_accepted_ballots"] == 1
        assert [row["vote_count"] for row in data["results"]] == [0, 1, 0]

    async def test_results_visible_after_close(
        self, client: AsyncClient, session_factory, make_poll, auth_headers
    ) -> None:
        poll = await make_poll()
        for voter_id in (7, 8):
            await client.post(
                "/api/v1/votes/cast",
                json={"poll_id": poll.id, "selected_options": [poll.option_ids[0]]},
                headers=auth_headers(voter_id),
            )
        await close_poll(session_factory, poll.id)

        response = await client.get(f"/api/v1/votes/results/{poll.id}", headers=auth_headers(7))

        assert response.status_code == 200
        data = response.json()
        assert data["results"][0]["vote_count"] == 2
        assert data["skipped_count"] == 0

    async def test_results_for_missing_poll(self, client: AsyncClient, auth_headers) -> None:
        response = await client.get("/api/v1/votes/results/9999", headers=auth_headers(7))

        assert response.status_code == 404
        assert response.json()["code"] == "poll_not_found"
