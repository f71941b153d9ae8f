"""
Ballot-related Pydantic schemas.

These schemas are returned by the casting/tallying services and double as
the API response models. None of them carry a voter's selections.
"""

from typing import Optional

from pydantic import BaseModel, Field


class CastRequest(BaseModel):
    """Schema for casting a ballot."""

    poll_id: int
    selected_options: list[int] = Field(..., min_length=1, description="Ids of the chosen options")


class CastReceipt(BaseModel):
    """Returned to the voter after a successful cast."""

    receipt_id: str
    integrity_hash: str
    timestamp: str = Field(..., description="Cast time exactly as sealed into the integrity hash")
    replaced: bool = Field(False, description="True if this cast retired an earlier ballot")


class ReceiptDetails(BaseModel):
    """A voter's own receipt, looked up by receipt id."""

    receipt_id: str
    poll_id: int
    poll_title: str
    integrity_hash: str
    timestamp: str


class VerificationResult(BaseModel):
    """Whether the voter has an active ballot for a poll."""

    poll_id: int
    verified: bool
    receipt_id: Optional[str] = None
    integrity_hash: Optional[str] = None
    timestamp: Optional[str] = None


class OptionTally(BaseModel):
    option_id: int
    option_text: str
    vote_count: int


class TallyResult(BaseModel):
    """Per-option counts reconstructed by decrypting the ballot store."""

    poll_id: int
    results: list[OptionTally]
    total_accepted_ballots: int = Field(..., description="Ballots decrypted and counted")
    skipped_count: int = Field(..., description="Ballots that could not be counted")


class IntegrityReport(BaseModel):
    """Outcome of recomputing every ballot's integrity hash."""

    poll_id: int
    checked: int
    verified: int
    mismatched_receipts: list[str] = Field(default_factory=list)
    undecryptable_receipts: list[str] = Field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.mismatched_receipts and not self.undecryptable_receipts


class ReceiptExportRow(BaseModel):
    """One exported receipt; never includes the sealed selections."""

    receipt_id: str
    voter_id: int
    integrity_hash: str
    timestamp: str

    model_config = {"from_attributes": True}


class ErrorResponse(BaseModel):
    """Error body with a stable reason code."""

    detail: str
    code: str
