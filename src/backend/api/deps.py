"""
Shared dependencies for API endpoints.

Includes:
- Voter identity from the bearer JWT issued by the auth service
- Session factory and service construction
"""

from dataclasses import dataclass
from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import settings
from core.encryption import BallotCipher, get_ballot_cipher
from core.security import decode_token
from db.session import get_session_factory
from services.audit_service import AuditTrail
from services.cast_service import BallotCastService
from services.tally_service import TallyService

logger = structlog.get_logger(__name__)

security = HTTPBearer()


@dataclass(frozen=True)
class Voter:
    """Authenticated caller as described by the token claims."""

    id: int
    role: str = "voter"


async def get_current_voter(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Voter:
    """
    Extract and validate the caller from the JWT token.

    Raises:
        HTTPException: If the token is invalid or has no usable subject.
    """
    payload = decode_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        voter_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Voter(id=voter_id, role=str(payload.get("role") or "voter"))


async def get_current_admin(
    voter: Annotated[Voter, Depends(get_current_voter)],
) -> Voter:
    """Require the administrator role."""
    if voter.role != settings.ADMIN_ROLE:
        logger.warning("unauthorized_access_attempt", voter_id=voter.id, role=voter.role)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return voter


def get_cipher() -> BallotCipher:
    return get_ballot_cipher()


def get_cast_service(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    cipher: Annotated[BallotCipher, Depends(get_cipher)],
) -> BallotCastService:
    return BallotCastService(session_factory, cipher, AuditTrail(session_factory))


def get_tally_service(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    cipher: Annotated[BallotCipher, Depends(get_cipher)],
) -> TallyService:
    return TallyService(session_factory, cipher)


CurrentVoter = Annotated[Voter, Depends(get_current_voter)]
CurrentAdmin = Annotated[Voter, Depends(get_current_admin)]
CastServiceDep = Annotated[BallotCastService, Depends(get_cast_service)]
TallyServiceDep = Annotated[TallyService, Depends(get_tally_service)]
