"""
Administrator endpoints over the ballot store.

Exports receipts (never selections) and runs the integrity audit.
"""

import structlog
from fastapi import APIRouter

from api.deps import CurrentAdmin, TallyServiceDep
from schemas.ballot import ErrorResponse, IntegrityReport, ReceiptExportRow

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/polls/{poll_id}/export",
    response_model=list[ReceiptExportRow],
    responses={404: {"model": ErrorResponse}},
)
async def export_receipts(
    poll_id: int,
    admin: CurrentAdmin,
    tally_service: TallyServiceDep,
) -> list[ReceiptExportRow]:
    """Export every receipt recorded for a poll."""
    rows = await tally_service.export_receipts(poll_id)
    logger.info("poll_receipts_exported", poll_id=poll_id, admin_id=admin.id, count=len(rows))
    return rows


@router.get(
    "/polls/{poll_id}/integrity",
    response_model=IntegrityReport,
    responses={404: {"model": ErrorResponse}},
)
async def check_integrity(
    poll_id: int,
    admin: CurrentAdmin,
    tally_service: TallyServiceDep,
) -> IntegrityReport:
    """Decrypt every ballot of a poll and recompute its integrity hash."""
    return await tally_service.verify_integrity(poll_id)
