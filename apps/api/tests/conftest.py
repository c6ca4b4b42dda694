"""Pytest configuration and shared fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUGGESTION_DISPATCH_ENABLED", "false")

from datetime import datetime, timedelta  # noqa: E402
from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from metaledger_api.auth import capabilities as caps  # noqa: E402
from metaledger_api.auth.capabilities import Actor  # noqa: E402
from metaledger_api.db.base import Base  # noqa: E402
from metaledger_api.ledger.service import ValueLedger  # noqa: E402
from metaledger_api.metadata.enums import FieldType, PopulationMode, Producer, ValueSource, producer_for  # noqa: E402
from metaledger_api.models import Asset, Brand, MetadataField, Tenant  # noqa: E402
from metaledger_api.policy.approval import ApprovalGate  # noqa: E402
from metaledger_api.policy.confidence import ConfidenceSuppressor  # noqa: E402
from metaledger_api.settings import Settings  # noqa: E402

# Use test database URL from environment or default to SQLite in-memory
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

REVIEWER_CAPABILITIES = frozenset(
    {
        caps.EDIT,
        caps.APPROVE,
        caps.OVERRIDE,
        caps.BULK_EDIT,
        caps.SUGGESTIONS_VIEW,
        caps.SUGGESTIONS_APPLY,
        caps.SUGGESTIONS_DISMISS,
    }
)


class FakeClock:
    """Deterministic clock; every reading advances by one second."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now

    def advance(self, seconds: int):
        self.now += timedelta(seconds=seconds)


@pytest.fixture(scope="function")
def db():
    """
    Create a test database session.

    Set TEST_DATABASE_URL to run against PostgreSQL instead of SQLite.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        metadata_approval_enabled=True,
        suggestion_dispatch_enabled=False,
        ai_confidence_default_threshold=0.60,
        ai_confidence_thresholds={},
    )


@pytest.fixture
def gate(settings: Settings) -> ApprovalGate:
    return ApprovalGate(settings)


@pytest.fixture
def suppressor() -> ConfidenceSuppressor:
    return ConfidenceSuppressor(default_threshold=0.60, thresholds={})


@pytest.fixture
def dispatcher() -> Mock:
    """Stand-in for the Celery event dispatcher."""
    return Mock()


@pytest.fixture
def tenant(db: Session) -> Tenant:
    tenant = Tenant(label="test-tenant", status="active", settings_json={})
    db.add(tenant)
    db.commit()
    return tenant


@pytest.fixture
def other_tenant(db: Session) -> Tenant:
    tenant = Tenant(label="other-tenant", status="active")
    db.add(tenant)
    db.commit()
    return tenant


@pytest.fixture
def brand(db: Session, tenant: Tenant) -> Brand:
    brand = Brand(tenant_id=tenant.id, name="Outdoor")
    db.add(brand)
    db.commit()
    return brand


@pytest.fixture
def asset(db: Session, tenant: Tenant) -> Asset:
    asset = Asset(tenant_id=tenant.id, title="asset-a")
    db.add(asset)
    db.commit()
    return asset


@pytest.fixture
def make_asset(db: Session, tenant: Tenant):
    def _make(title: str = "asset", brand_id=None, tenant_id=None) -> Asset:
        asset = Asset(tenant_id=tenant_id or tenant.id, brand_id=brand_id, title=title)
        db.add(asset)
        db.commit()
        return asset

    return _make


@pytest.fixture
def make_field(db: Session):
    def _make(
        key: str,
        field_type: FieldType = FieldType.TEXT,
        population_mode: PopulationMode = PopulationMode.MANUAL,
        tenant_id=None,
        **kwargs,
    ) -> MetadataField:
        field = MetadataField(
            tenant_id=tenant_id,
            key=key,
            label=key.replace("_", " ").title(),
            field_type=field_type,
            population_mode=population_mode,
            **kwargs,
        )
        db.add(field)
        db.commit()
        return field

    return _make


@pytest.fixture
def quality_rating(make_field) -> MetadataField:
    """Manual number field that requires review."""
    return make_field("quality_rating", FieldType.NUMBER, PopulationMode.MANUAL)


@pytest.fixture
def scene_classification(make_field) -> MetadataField:
    """Hybrid select field."""
    return make_field(
        "scene_classification",
        FieldType.SELECT,
        PopulationMode.HYBRID,
        options_json=["indoor", "outdoor", "studio"],
    )


@pytest.fixture
def tags_field(make_field) -> MetadataField:
    """Free-tagging multiselect filled by AI."""
    return make_field("tags", FieldType.MULTISELECT, PopulationMode.AI)


@pytest.fixture
def photo_type(make_field) -> MetadataField:
    return make_field(
        "photo_type",
        FieldType.SELECT,
        PopulationMode.AI,
        options_json=["lifestyle", "product", "portrait"],
    )


@pytest.fixture
def orientation(make_field) -> MetadataField:
    return make_field(
        "orientation",
        FieldType.SELECT,
        PopulationMode.AUTOMATIC,
        is_user_editable=False,
        options_json=["landscape", "portrait", "square"],
    )


@pytest.fixture
def make_actor(tenant: Tenant):
    def _make(
        actor_id: str = "user@test",
        capabilities=(),
        producer: Producer = Producer.USER,
        tenant_id=None,
        brand_capabilities=None,
    ) -> Actor:
        return Actor(
            actor_id=actor_id,
            tenant_id=tenant_id or tenant.id,
            producer=producer,
            capabilities=frozenset(capabilities),
            brand_capabilities=brand_capabilities or {},
        )

    return _make


@pytest.fixture
def editor(make_actor) -> Actor:
    return make_actor("editor@test", {caps.EDIT, caps.SUGGESTIONS_VIEW})


@pytest.fixture
def reviewer(make_actor) -> Actor:
    return make_actor("reviewer@test", REVIEWER_CAPABILITIES)


@pytest.fixture
def pipeline(make_actor) -> Actor:
    return make_actor("tagger@test", {caps.PRODUCER_WRITE, caps.SUGGESTIONS_VIEW}, producer=Producer.AI)


@pytest.fixture
def system_pipeline(make_actor) -> Actor:
    return make_actor("extractor@test", {caps.PRODUCER_WRITE}, producer=Producer.SYSTEM)


@pytest.fixture
def seed_value(db: Session, clock: FakeClock):
    """Write a ledger row directly and commit it."""

    def _seed(asset, field, value, source=ValueSource.USER, confidence=None, approved=True, actor_id="seed"):
        entry = ValueLedger(db, clock).append(
            asset.id,
            field.id,
            value,
            source,
            producer_for(source),
            confidence=confidence,
            approved_immediately=approved,
            actor_id=actor_id,
        )
        db.commit()
        return entry

    return _seed
