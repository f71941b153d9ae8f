"""
Ballot endpoints.

Casting, receipt lookup and verification are scoped to the authenticated
voter. Results are decrypted on demand from the ballot store.
"""

from fastapi import APIRouter, HTTPException, Request, status

from api.deps import CastServiceDep, CurrentVoter, TallyServiceDep
from core.config import settings
from core.exceptions import PollNotFound
from schemas.ballot import CastReceipt, CastRequest, ErrorResponse, ReceiptDetails, TallyResult, VerificationResult

router = APIRouter()


def get_client_ip(request: Request) -> str | None:
    """Extract the client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


@router.post(
    "/cast",
    response_model=CastReceipt,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cast_vote(
    vote_data: CastRequest,
    request: Request,
    voter: CurrentVoter,
    cast_service: CastServiceDep,
) -> CastReceipt:
    """
    Cast a ballot on a poll.

    The ballot is encrypted before it is stored; the response carries the
    receipt id and integrity hash the voter can use to check it later.
    A re-vote on a poll that allows it replaces the previous ballot.
    """
    return await cast_service.cast(
        vote_data.poll_id,
        voter.id,
        vote_data.selected_options,
        ip_address=get_client_ip(request),
    )


@router.get("/receipt/{receipt_id}", response_model=ReceiptDetails, responses={404: {"model": ErrorResponse}})
async def get_receipt(
    receipt_id: str,
    voter: CurrentVoter,
    cast_service: CastServiceDep,
) -> ReceiptDetails:
    """Get one of the caller's own receipts."""
    return await cast_service.get_receipt(receipt_id, voter.id)


@router.get("/verify/{poll_id}", response_model=VerificationResult)
async def verify_vote(
    poll_id: int,
    voter: CurrentVoter,
    cast_service: CastServiceDep,
) -> VerificationResult:
    """Check whether the caller's ballot for a poll is recorded."""
    return await cast_service.verify(poll_id, voter.id)


@router.get("/results/{poll_id}", response_model=TallyResult, responses={404: {"model": ErrorResponse}})
async def get_results(
    poll_id: int,
    voter: CurrentVoter,
    tally_service: TallyServiceDep,
) -> TallyResult:
    """
    Get poll results.

    Visible to everyone once the poll is closed, and to privileged roles
    (administrators and poll creators) at any time.
    """
    is_closed = await tally_service.poll_is_closed(poll_id)
    if is_closed is None:
        raise PollNotFound()

    if not is_closed and voter.role not in settings.results_privileged_roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Results are not available yet",
        )

    return await tally_service.tally(poll_id)
