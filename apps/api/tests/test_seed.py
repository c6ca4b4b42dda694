"""Tests for seed data."""

from metaledger_api.auth.api_key import get_api_key_record
from metaledger_api.db.seed import DEMO_KEYS, SYSTEM_FIELDS, seed_all
from metaledger_api.models import APIKey, MetadataField, Tenant


def test_seed_is_idempotent(db):
    seed_all(db)
    seed_all(db)

    assert db.query(MetadataField).filter(MetadataField.tenant_id.is_(None)).count() == len(SYSTEM_FIELDS)
    assert db.query(Tenant).filter(Tenant.label == "demo").count() == 1
    assert db.query(APIKey).count() == len(DEMO_KEYS)


def test_seeded_keys_authenticate(db):
    seed_all(db)

    for key in DEMO_KEYS:
        record = get_api_key_record(db, key["raw"])
        assert record is not None
        assert record.actor_id == key["actor_id"]


def test_seeded_field_catalog(db):
    seed_all(db)
    fields = {f.key: f for f in db.query(MetadataField).all()}

    assert fields["scene_classification"].is_hybrid
    assert fields["tags"].is_free_tagging
    assert fields["orientation"].is_readonly
    assert fields["dominant_colors"].is_internal_only
