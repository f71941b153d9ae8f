"""
Tests for the operator scripts.
"""

import pytest
from sqlalchemy import update

from models.ballot import Ballot
from models.poll import Poll


@pytest.mark.integration
class TestAuditBallotStore:
    async def test_clean_poll_exits_zero(self, cast_service, tally_service, make_poll, capsys):
        from scripts.audit_ballot_store import audit_poll

        poll = await make_poll()
        await cast_service.cast(poll.id, 1, [poll.option_ids[0]])

        exit_code = await audit_poll(poll.id, show_tally=True, service=tally_service)

        output = capsys.readouterr().out
        assert exit_code == 0
        assert "checked 1 ballots, 1 verified" in output
        assert "Option A: 1" in output

    async def test_tampered_poll_exits_one(self, cast_service, tally_service, session_factory, make_poll, capsys):
        from scripts.audit_ballot_store import audit_poll

        poll = await make_poll()
        receipt = await cast_service.cast(poll.id, 1, [poll.option_ids[0]])
        async with session_factory() as session, session.begin():
            await session.execute(update(Ballot).values(ciphertext_bundle="enc:v1:AAAA"))

        exit_code = await audit_poll(poll.id, service=tally_service)

        assert exit_code == 1
        assert f"undecryptable: {receipt.receipt_id}" in capsys.readouterr().out

    async def test_missing_poll_exits_two(self, tally_service):
        from scripts.audit_ballot_store import audit_poll

        assert await audit_poll(404, service=tally_service) == 2


@pytest.mark.integration
class TestSeedPolls:
    async def test_seeds_once(self, session_factory, count_rows):
        from scripts.seed_polls import SEED_POLLS, seed_polls

        created = await seed_polls(session_factory)
        again = await seed_polls(session_factory)

        assert created == len(SEED_POLLS)
        assert again == 0
        assert await count_rows(Poll) == len(SEED_POLLS)

    async def test_seeded_active_poll_accepts_votes(self, session_factory, cast_service, count_rows):
        from models.poll import PollStatus
        from repositories.poll_repository import PollRepository
        from scripts.seed_polls import seed_polls

        await seed_polls(session_factory)
        async with session_factory() as session:
            poll = await PollRepository(session).get_by_id(1)
        assert poll.status == PollStatus.ACTIVE.value

        await cast_service.cast(poll.id, 5, [poll.options[0].id])

        assert await count_rows(Ballot) == 1
