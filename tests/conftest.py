"""Shared pytest fixtures and configuration.

This module provides common fixtures used across all test types.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.api.main import app
from inrecord.api.middleware.rate_limiter import rate_limiter
from inrecord.api.routes.bookings import get_email_service
from inrecord.api.routes.dao import get_discord_notifier
from inrecord.models.base import utcnow
from inrecord.models.dao import DAOMemberDB, ProposalDB, ProposalStatus, get_tier_display_name
from inrecord.models.digest import DigestDB
from inrecord.services.database import DatabaseManager, get_db_session

WALLET_A = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
WALLET_B = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
WALLET_C = "HN7cABqLq46Es1jh92dQQisAq662SmxELLLsHHe4YWrH"
SIGNATURE = "5" * 88


@pytest.fixture(scope="session")
def test_database_url(tmp_path_factory) -> str:
    """Provide test database URL.

    Uses a file-based SQLite database so that the app's sessions and the
    test's own session see the same data, or PostgreSQL if configured.
    """
    db_url = os.getenv("TEST_DATABASE_URL")
    if db_url:
        return db_url
    return f"sqlite+aiosqlite:///{tmp_path_factory.mktemp('db') / 'test_inrecord.db'}"


@pytest.fixture
async def db_manager(test_database_url: str) -> AsyncGenerator[DatabaseManager, None]:
    """Database manager with fresh tables for each test."""
    manager = DatabaseManager(test_database_url)
    await manager.initialize_async()
    await manager.drop_tables()
    await manager.create_tables()

    yield manager

    await manager.drop_tables()
    await manager.close()


@pytest.fixture
async def async_db_session(db_manager: DatabaseManager) -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session for testing."""
    async with db_manager.get_async_session() as session:
        yield session


@pytest.fixture
def email_service() -> MagicMock:
    """Email service whose sends always succeed."""
    service = MagicMock()
    service.send_booking_confirmation = AsyncMock(return_value={"success": True, "message_id": "msg_1"})
    service.send_admin_notification = AsyncMock(return_value={"success": True, "message_id": "msg_2"})
    service.send_status_update = AsyncMock(return_value={"success": True, "message_id": "msg_3"})
    service.send_digest_newsletter = AsyncMock(return_value={"success": True, "recipient_count": 2})
    return service


@pytest.fixture
def discord_notifier() -> MagicMock:
    """Discord notifier whose posts always succeed."""
    notifier = MagicMock()
    notifier.notify_proposal_created = AsyncMock(return_value={"success": True})
    notifier.notify_proposal_passed = AsyncMock(return_value={"success": True})
    notifier.notify_proposal_rejected = AsyncMock(return_value={"success": True})
    notifier.send_digest = AsyncMock(return_value={"success": True})
    return notifier


@pytest.fixture
async def client(
    db_manager: DatabaseManager, email_service: MagicMock, discord_notifier: MagicMock
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app with the test database and mocked notifiers."""

    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with db_manager.get_async_session() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_email_service] = lambda: email_service
    app.dependency_overrides[get_discord_notifier] = lambda: discord_notifier
    rate_limiter.reset()

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    rate_limiter.reset()


# ========== Data builders ==========


async def _create_member(
    session: AsyncSession,
    wallet: str = WALLET_A,
    tier: str = "Bronze",
    is_active: bool = True,
    joined_at=None,
) -> DAOMemberDB:
    member = DAOMemberDB(
        wallet_address=wallet,
        membership_tier=tier,
        tier_display_name=get_tier_display_name(tier),
        votes_cast=0,
        proposals_created=0,
        total_funding_received=0,
        is_active=is_active,
        joined_at=joined_at or utcnow(),
        last_active_at=joined_at or utcnow(),
    )
    session.add(member)
    await session.commit()
    return member


async def _create_proposal(session: AsyncSession, **fields) -> ProposalDB:
    values = {
        "id": uuid.uuid4(),
        "title": "Fund a new vocal booth",
        "description": "A detailed description of the proposal that is comfortably over fifty characters.",
        "proposal_type": "Studio Funding",
        "funding_goal": 5000.0,
        "current_funding": 0,
        "funding_currency": "USD",
        "created_by": WALLET_A,
        "status": ProposalStatus.ACTIVE_VOTING.value,
        "voting_ends_at": utcnow() + timedelta(days=7),
        "quorum_required": 10,
        "approval_threshold": 51,
        "votes_for": 0,
        "votes_against": 0,
        "votes_abstain": 0,
        "total_vote_weight": 0,
        "unique_voters": 0,
        "tags": [],
        "attachment_urls": [],
        "created_at": utcnow(),
        "updated_at": utcnow(),
    }
    values.update(fields)
    proposal = ProposalDB(**values)
    session.add(proposal)
    await session.commit()
    return proposal


@pytest.fixture
def member_factory(async_db_session: AsyncSession):
    """Insert DAO members directly, bypassing registration."""

    async def factory(wallet: str = WALLET_A, **fields) -> DAOMemberDB:
        return await _create_member(async_db_session, wallet, **fields)

    return factory


@pytest.fixture
def proposal_factory(async_db_session: AsyncSession):
    """Insert proposals in any status, bypassing the lifecycle."""

    async def factory(**fields) -> ProposalDB:
        return await _create_proposal(async_db_session, **fields)

    return factory


@pytest.fixture
def wallets() -> tuple[str, str, str]:
    """Three distinct member wallet addresses."""
    return WALLET_A, WALLET_B, WALLET_C


@pytest.fixture
def signature() -> str:
    return SIGNATURE


async def _create_digest(session: AsyncSession, **fields) -> DigestDB:
    values = {
        "id": uuid.uuid4(),
        "week_start": date(2026, 10, 5),
        "week_end": date(2026, 10, 11),
        "summary_en": "The community approved two proposals and the treasury grew steadily this week. " * 3,
        "sentiment": "optimistic",
        "key_metrics": {
            "proposals": {"new": 2, "approved": 1, "rejected": 0, "funded": 1, "total_funding": 4000.0},
            "voting": {"votes_cast": 12, "unique_voters": 5, "participation_rate": 0.5},
            "treasury": {"deposits": 20.0, "withdrawals": 5.0, "net_change": 15.0, "ending_balance": 115.0},
            "members": {"new_members": 2, "total_members": 10, "active_members": 8},
        },
        "highlights": ["Two proposals approved"],
        "published": True,
        "published_at": utcnow(),
        "discord_sent": False,
        "email_sent": False,
        "generated_by": "gpt-4",
    }
    values.update(fields)
    digest = DigestDB(**values)
    session.add(digest)
    await session.commit()
    return digest


@pytest.fixture
def digest_factory(async_db_session: AsyncSession):
    """Insert saved digests, published by default."""

    async def factory(**fields) -> DigestDB:
        return await _create_digest(async_db_session, **fields)

    return factory
