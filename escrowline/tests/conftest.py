import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, event, func, select
from sqlalchemy.dialects.postgresql import JSONB

from escrowline.common.enums import DisputeStatus, HoldStatus
from escrowline.config import settings
from escrowline.core.notifications.service import NotificationService
from escrowline.db.base import Base
from escrowline.db.models import *  # noqa: F401,F403 - ensure all models loaded
from escrowline.db.models import Dispute, EscrowHold, Notification, Order, Seller, SellerBalance
from escrowline.db.session import DatabaseSessionManager

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

CRON_SECRET = "test-cron-secret"
INTERNAL_SECRET = "test-internal-secret"


# Make JSONB render as JSON for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


@pytest.fixture
async def db(tmp_path):
    manager = DatabaseSessionManager(f"sqlite+aiosqlite:///{tmp_path / 'escrowline.db'}")
    async with manager.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield manager
    await manager.close()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def notifier(db):
    return NotificationService(db)


@pytest.fixture(autouse=True)
def secrets(monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", CRON_SECRET)
    monkeypatch.setattr(settings, "INTERNAL_API_SECRET", INTERNAL_SECRET)
    monkeypatch.setattr(settings, "SENDGRID_API_KEY", "mock_sendgrid_key")


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture
def internal_headers():
    return {"Authorization": f"Bearer {INTERNAL_SECRET}"}


@pytest.fixture
async def client(db):
    from escrowline.api.deps import get_db_manager
    from escrowline.main import app

    app.dependency_overrides[get_db_manager] = lambda: db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def mock_celery_tasks():
    """Mock Celery task.delay() calls to prevent actual task execution in tests."""
    with patch("escrowline.tasks.notification_tasks.deliver_notification.delay") as deliver:
        yield deliver


class Factory:
    """Builds rows with explicit timestamps so age-based rules are deterministic."""

    def __init__(self, db: DatabaseSessionManager):
        self.db = db

    async def _save(self, obj):
        async with self.db.session() as session:
            session.add(obj)
            await session.commit()
            await session.refresh(obj)
        return obj

    async def seller(self, **kwargs) -> Seller:
        kwargs.setdefault("display_name", "Test Seller")
        kwargs.setdefault("email", f"seller_{uuid.uuid4().hex[:8]}@test.com")
        return await self._save(Seller(**kwargs))

    async def order(self, seller: Seller | None = None, **kwargs) -> Order:
        seller = seller or await self.seller()
        kwargs.setdefault("buyer_id", uuid.uuid4())
        kwargs.setdefault("buyer_email", f"buyer_{uuid.uuid4().hex[:8]}@test.com")
        kwargs.setdefault("product_title", "Hand-dyed scarf")
        kwargs.setdefault("amount_cents", 500_000)
        kwargs.setdefault("currency", "NGN")
        return await self._save(Order(seller_id=seller.id, **kwargs))

    async def hold(
        self,
        order: Order | None = None,
        *,
        age_days: float = 0,
        status: HoldStatus = HoldStatus.ACTIVE,
        hold_duration_days: int = 30,
        now: datetime = NOW,
        **kwargs,
    ) -> EscrowHold:
        order = order or await self.order()
        created = now - timedelta(days=age_days)
        return await self._save(
            EscrowHold(
                order_id=order.id,
                seller_id=order.seller_id,
                amount_cents=order.amount_cents,
                currency=order.currency,
                status=status.value,
                hold_duration_days=hold_duration_days,
                created_at=created,
                releasable_at=created + timedelta(days=hold_duration_days),
                **kwargs,
            )
        )

    async def dispute(
        self,
        hold: EscrowHold | None = None,
        *,
        age_days: float = 0,
        status: DisputeStatus = DisputeStatus.OPEN,
        escalation_threshold_days: int = 7,
        now: datetime = NOW,
    ) -> Dispute:
        hold = hold or await self.hold(now=now)
        async with self.db.session() as session:
            order = await session.get(Order, hold.order_id)
        return await self._save(
            Dispute(
                order_id=hold.order_id,
                buyer_id=order.buyer_id,
                seller_id=hold.seller_id,
                status=status.value,
                reason="Item not as described",
                evidence=[],
                opened_at=now - timedelta(days=age_days),
                escalation_threshold_days=escalation_threshold_days,
                history=[],
            )
        )

    async def get(self, model, record_id):
        async with self.db.session() as session:
            return await session.get(model, record_id, populate_existing=True)

    async def balance(self, seller_id: uuid.UUID, currency: str = "NGN") -> int:
        async with self.db.session() as session:
            result = await session.execute(
                select(SellerBalance.available_cents).where(
                    SellerBalance.seller_id == seller_id, SellerBalance.currency == currency
                )
            )
            return result.scalar_one_or_none() or 0

    async def notifications(self, **filters) -> list[Notification]:
        async with self.db.session() as session:
            result = await session.execute(select(Notification).filter_by(**filters))
            return list(result.scalars().all())

    async def count(self, model) -> int:
        async with self.db.session() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return result.scalar_one()


@pytest.fixture
def factory(db):
    return Factory(db)
