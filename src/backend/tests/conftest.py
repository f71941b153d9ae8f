"""
Pytest fixtures for SealedBallot backend tests.
"""

import base64
import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("BALLOT_ENCRYPTION_KEY", base64.b64encode(b"0" * 32).decode("ascii"))
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./sealedballot_test.db")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")


@dataclass(frozen=True)
class SeededPoll:
    """Ids of a poll created for a test."""

    id: int
    option_ids: list[int]


@pytest.fixture
async def engine(tmp_path: Any) -> AsyncGenerator[Any, None]:
    """File-backed SQLite engine with every table created."""
    from db.session import create_engine_for_url, create_tables

    test_engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'ballots.db'}")
    await create_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: Any) -> Any:
    """Session factory bound to the test engine."""
    from sqlalchemy.ext.asyncio import async_sessionmaker

    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def make_poll(session_factory: Any) -> Callable[..., Awaitable[SeededPoll]]:
    """Factory fixture inserting a poll with options."""
    from models.poll import Poll, PollOption, PollStatus, PollType

    async def _make_poll(
        status: str = PollStatus.ACTIVE.value,
        poll_type: str = PollType.SINGLE.value,
        allow_revote: bool = False,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        options: tuple[str, ...] = ("Option A", "Option B", "Option C"),
        title: str = "Test Poll",
    ) -> SeededPoll:
        async with session_factory() as session, session.begin():
            poll = Poll(
                title=title,
                creator_id=1,
                status=status,
                poll_type=poll_type,
                allow_revote=allow_revote,
                start_date=start_date,
                end_date=end_date,
                options=[PollOption(option_text=text, display_order=i) for i, text in enumerate(options)],
            )
            session.add(poll)
            await session.flush()
            return SeededPoll(id=poll.id, option_ids=[option.id for option in poll.options])

    return _make_poll


@pytest.fixture
def cipher() -> Any:
    """Ballot cipher with a throwaway key."""
    import secrets

    from core.encryption import BallotCipher

    return BallotCipher(encryption_key=secrets.token_bytes(32))


@pytest.fixture
def cast_service(session_factory: Any, cipher: Any) -> Any:
    from services.cast_service import BallotCastService

    return BallotCastService(session_factory, cipher)


@pytest.fixture
def tally_service(session_factory: Any, cipher: Any) -> Any:
    from services.tally_service import TallyService

    return TallyService(session_factory, cipher)


@pytest.fixture
async def app(session_factory: Any, cipher: Any) -> AsyncGenerator[Any, None]:
    """FastAPI application wired to the test database and cipher."""
    from api.deps import get_cipher
    from db.session import get_session_factory
    from main import app as fastapi_app

    fastapi_app.dependency_overrides[get_session_factory] = lambda: session_factory
    fastapi_app.dependency_overrides[get_cipher] = lambda: cipher
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def issue_token() -> Callable[..., str]:
    """Mint tokens the way the external auth service does."""
    import secrets

    from jose import jwt

    from core.config import settings
    from core.security import TOKEN_AUDIENCE, TOKEN_ISSUER

    def _issue_token(claims: dict[str, Any], expires_delta: timedelta = timedelta(minutes=30)) -> str:
        now = datetime.now(timezone.utc)
        to_encode = {
            **claims,
            "exp": now + expires_delta,
            "iat": now,
            "type": "access",
            "iss": TOKEN_ISSUER,
            "aud": TOKEN_AUDIENCE,
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    return _issue_token


@pytest.fixture
def auth_headers(issue_token: Callable[..., str]) -> Callable[..., dict[str, str]]:
    """Build bearer headers for a voter id and role."""

    def _auth_headers(voter_id: int = 42, role: str = "voter") -> dict[str, str]:
        token = issue_token({"sub": str(voter_id), "role": role})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
def count_rows(session_factory: Any) -> Callable[..., Awaitable[int]]:
    """Count rows of a mapped model, optionally filtered."""
    from sqlalchemy import func, select

    async def _count_rows(model: Any, *criteria: Any) -> int:
        async with session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model).where(*criteria))
            return result.scalar_one()

    return _count_rows
