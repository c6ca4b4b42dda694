"""Concurrent writers against a shared file-backed database."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from metaledger_api.auth import capabilities as caps
from metaledger_api.auth.capabilities import Actor
from metaledger_api.db.base import Base
from metaledger_api.metadata.enums import FieldType, PopulationMode, Producer
from metaledger_api.metadata.errors import AlreadyResolved
from metaledger_api.models import Asset, MetadataField, MetadataHistory, MetadataValue, Tenant
from metaledger_api.policy.approval import ApprovalGate
from metaledger_api.policy.confidence import ConfidenceSuppressor
from metaledger_api.services.metadata import MetadataService
from metaledger_api.settings import Settings


WRITERS = 12


@pytest.fixture
def session_factory(tmp_path):
    """Sessions on a file database; every transaction takes the write lock up front."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def world(session_factory):
    db = session_factory()
    tenant = Tenant(label="concurrency", settings_json={})
    db.add(tenant)
    db.flush()
    asset = Asset(tenant_id=tenant.id, title="shared")
    field = MetadataField(key="quality_rating", field_type=FieldType.NUMBER, population_mode=PopulationMode.MANUAL)
    db.add_all([asset, field])
    db.commit()
    ids = (tenant.id, asset.id, field.id)
    db.close()
    return ids


def _actor(tenant_id, index=0):
    return Actor(
        actor_id=f"reviewer-{index}@test",
        tenant_id=tenant_id,
        producer=Producer.USER,
        capabilities=frozenset({caps.EDIT, caps.APPROVE}),
    )


def _service(db):
    return MetadataService(
        db,
        gate=ApprovalGate(Settings(metadata_approval_enabled=True)),
        suppressor=ConfidenceSuppressor(0.6, {}),
        dispatcher=Mock(),
    )


def test_concurrent_writes_and_approvals_lose_nothing(session_factory, world):
    tenant_id, asset_id, field_id = world

    def write(index):
        db = session_factory()
        try:
            return _service(db).write_value(asset_id, field_id, index, _actor(tenant_id, index)).entry_id
        finally:
            db.close()

    def approve(entry_id):
        db = session_factory()
        try:
            return _service(db).approve(entry_id, _actor(tenant_id)).id
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=6) as pool:
        entry_ids = list(pool.map(write, range(WRITERS)))
    with ThreadPoolExecutor(max_workers=6) as pool:
        approved_ids = list(pool.map(approve, entry_ids))

    assert len(set(entry_ids)) == WRITERS
    assert sorted(approved_ids) == sorted(entry_ids)

    db = session_factory()
    try:
        rows = db.query(MetadataValue).all()
        assert len(rows) == WRITERS
        assert all(row.approved_at is not None for row in rows)
        assert sorted(row.value_json for row in rows) == list(range(WRITERS))
        assert db.query(MetadataHistory).count() == WRITERS * 2
    finally:
        db.close()


def test_racing_approvals_of_one_entry_resolve_once(session_factory, world):
    tenant_id, asset_id, field_id = world
    db = session_factory()
    try:
        entry_id = _service(db).write_value(asset_id, field_id, 5, _actor(tenant_id)).entry_id
    finally:
        db.close()

    def approve(index):
        db = session_factory()
        try:
            _service(db).approve(entry_id, _actor(tenant_id, index))
            return "approved"
        except AlreadyResolved:
            return "already_resolved"
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=4) as pool:
        outcomes = list(pool.map(approve, range(4)))

    assert outcomes.count("approved") == 1
    assert outcomes.count("already_resolved") == 3

    db = session_factory()
    try:
        assert db.query(MetadataHistory).count() == 2
    finally:
        db.close()
