"""Seed data for development and testing."""

from sqlalchemy.orm import Session

from metaledger_api.auth import capabilities as caps
from metaledger_api.auth.api_key import compute_key_digest, compute_key_prefix
from metaledger_api.auth.capabilities import format_capabilities
from metaledger_api.metadata.enums import FieldType, PopulationMode, Producer
from metaledger_api.models import APIKey, Brand, MetadataField, Tenant

SYSTEM_FIELDS = [
    {"key": "photo_type", "label": "Photo type", "field_type": FieldType.SELECT,
     "population_mode": PopulationMode.AI, "options_json": ["lifestyle", "product", "portrait", "landscape"]},
    {"key": "orientation", "label": "Orientation", "field_type": FieldType.SELECT,
     "population_mode": PopulationMode.AUTOMATIC, "is_user_editable": False,
     "options_json": ["landscape", "portrait", "square"]},
    {"key": "usage_rights", "label": "Usage rights", "field_type": FieldType.SELECT,
     "population_mode": PopulationMode.MANUAL, "options_json": ["internal", "editorial", "commercial"]},
    {"key": "expiration_date", "label": "Expiration date", "field_type": FieldType.DATE,
     "population_mode": PopulationMode.MANUAL},
    {"key": "tags", "label": "Tags", "field_type": FieldType.MULTISELECT,
     "population_mode": PopulationMode.AI},
    {"key": "collection", "label": "Collection", "field_type": FieldType.TEXT,
     "population_mode": PopulationMode.MANUAL, "requires_review": False},
    {"key": "quality_rating", "label": "Quality rating", "field_type": FieldType.NUMBER,
     "population_mode": PopulationMode.MANUAL},
    {"key": "starred", "label": "Starred", "field_type": FieldType.BOOLEAN,
     "population_mode": PopulationMode.MANUAL, "requires_review": False},
    {"key": "scene_classification", "label": "Scene classification", "field_type": FieldType.SELECT,
     "population_mode": PopulationMode.HYBRID, "options_json": ["indoor", "outdoor", "studio"]},
    {"key": "dominant_colors", "label": "Dominant colors", "field_type": FieldType.MULTISELECT,
     "population_mode": PopulationMode.AUTOMATIC, "is_user_editable": False, "is_internal_only": True},
]

DEMO_KEYS = [
    {
        "raw": "mlk_demo_editor_key_12345",
        "label": "Demo editor",
        "actor_id": "editor@demo",
        "producer": Producer.USER,
        "scopes": [caps.EDIT, caps.SUGGESTIONS_VIEW],
    },
    {
        "raw": "mlk_demo_reviewer_key_67890",
        "label": "Demo reviewer",
        "actor_id": "reviewer@demo",
        "producer": Producer.USER,
        "scopes": [
            caps.EDIT,
            caps.APPROVE,
            caps.OVERRIDE,
            caps.BULK_EDIT,
            caps.SUGGESTIONS_VIEW,
            caps.SUGGESTIONS_APPLY,
            caps.SUGGESTIONS_DISMISS,
        ],
    },
    {
        "raw": "mlk_demo_pipeline_key_24680",
        "label": "Demo tagging pipeline",
        "actor_id": "pipeline@demo",
        "producer": Producer.AI,
        "scopes": [caps.PRODUCER_WRITE, caps.SUGGESTIONS_VIEW],
    },
]


def seed_system_fields(db: Session):
    """Seed the system field catalog shared by all tenants."""
    created = 0
    for definition in SYSTEM_FIELDS:
        exists = (
            db.query(MetadataField)
            .filter(MetadataField.tenant_id.is_(None), MetadataField.key == definition["key"])
            .first()
        )
        if exists:
            continue
        db.add(MetadataField(tenant_id=None, **definition))
        created += 1
    db.commit()
    print(f"✓ System fields: {created} created, {len(SYSTEM_FIELDS) - created} already present")


def seed_tenants(db: Session):
    """Seed the demo tenant, a brand and one key per actor role."""
    demo_tenant = db.query(Tenant).filter(Tenant.label == "demo").first()
    if demo_tenant:
        print(f"✓ Demo tenant already exists: {demo_tenant.label}")
        return

    demo_tenant = Tenant(
        label="demo",
        status="active",
        settings_json={
            "metadata_approval_enabled": True,
            "tag_synonyms": {"automobile": "car", "nyc": "new york"},
            "blocked_tags": ["untitled", "image"],
        },
    )
    db.add(demo_tenant)
    db.flush()

    brand = Brand(tenant_id=demo_tenant.id, name="Demo Outdoor")
    db.add(brand)
    db.flush()

    for key in DEMO_KEYS:
        db.add(
            APIKey(
                tenant_id=demo_tenant.id,
                prefix=compute_key_prefix(key["raw"]),
                digest=compute_key_digest(key["raw"]),
                label=key["label"],
                actor_id=key["actor_id"],
                producer=key["producer"],
                scopes=format_capabilities(key["scopes"]),
                is_active=True,
            )
        )

    db.commit()
    print(f"✓ Created demo tenant: {demo_tenant.label} (ID: {demo_tenant.id}), brand ID {brand.id}")
    for key in DEMO_KEYS:
        print(f"  {key['label']}: {key['raw']}")


def seed_all(db: Session):
    """Seed all data."""
    print("Seeding database...")
    seed_system_fields(db)
    seed_tenants(db)
    print("✓ Seeding complete!")
