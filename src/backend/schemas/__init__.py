"""Schemas module initialization."""

from schemas.ballot import (
    CastReceipt,
    CastRequest,
    ErrorResponse,
    IntegrityReport,
    OptionTally,
    ReceiptDetails,
    ReceiptExportRow,
    TallyResult,
    VerificationResult,
)

__all__ = [
    "CastRequest",
    "CastReceipt",
    "ReceiptDetails",
    "VerificationResult",
    "OptionTally",
    "TallyResult",
    "IntegrityReport",
    "ReceiptExportRow",
    "ErrorResponse",
]
