"""
Audit the encrypted ballot store of one poll.

Decrypts every ballot, recomputes its integrity hash and prints the
receipts that fail. Exits non-zero if any ballot is mismatched or cannot
be decrypted.

Run with: python -m scripts.audit_ballot_store <poll_id> [--tally]
"""

import asyncio
import sys

import scripts._common  # noqa: F401
from core.encryption import get_ballot_cipher
from core.exceptions import PollNotFound
from db.session import close_db, get_session_factory
from services.tally_service import TallyService


async def audit_poll(poll_id: int, show_tally: bool = False, service: TallyService | None = None) -> int:
    """Run the integrity audit for a poll and return the process exit code."""
    service = service or TallyService(get_session_factory(), get_ballot_cipher())

    try:
        report = await service.verify_integrity(poll_id)
    except PollNotFound:
        print(f"Poll {poll_id} does not exist.")
        return 2

    print(f"Poll {poll_id}: checked {report.checked} ballots, {report.verified} verified.")
    for receipt_id in report.mismatched_receipts:
        print(f"   - hash mismatch: {receipt_id}")
    for receipt_id in report.undecryptable_receipts:
        print(f"   - undecryptable: {receipt_id}")

    if show_tally:
        result = await service.tally(poll_id)
        print(f"\nTally ({result.total_accepted_ballots} counted, {result.skipped_count} skipped):")
        for option in result.results:
            print(f"   {option.option_text}: {option.vote_count}")

    return 0 if report.is_clean else 1


async def main(poll_id: int, show_tally: bool) -> int:
    try:
        return await audit_poll(poll_id, show_tally)
    finally:
        await close_db()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Ballot store integrity audit")
    parser.add_argument("poll_id", type=int, help="Poll to audit")
    parser.add_argument("--tally", action="store_true", help="Also print the reconstructed tally")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.poll_id, args.tally)))
