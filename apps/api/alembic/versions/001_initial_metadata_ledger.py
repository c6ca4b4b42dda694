"""Initial metadata ledger schema.

Revision ID: 001
Revises: 
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('label', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='active'),
        sa.Column('settings_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_tenants_id', 'tenants', ['id'])
    op.create_index('ix_tenants_label', 'tenants', ['label'], unique=True)

    op.create_table(
        'brands',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_brands_id', 'brands', ['id'])
    op.create_index('ix_brands_tenant_id', 'brands', ['tenant_id'])

    op.create_table(
        'api_keys',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('prefix', sa.String(length=8), nullable=False),
        sa.Column('digest', sa.String(length=64), nullable=False),
        sa.Column('label', sa.String(length=255), nullable=True),
        sa.Column('actor_id', sa.String(length=255), nullable=False),
        sa.Column('producer', sa.String(length=32), nullable=False, server_default='user'),
        sa.Column('scopes', sa.Text(), nullable=True),
        sa.Column('brand_scopes', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index('ix_api_keys_id', 'api_keys', ['id'])
    op.create_index('ix_api_keys_tenant_id', 'api_keys', ['tenant_id'])
    op.create_index('ix_api_keys_prefix', 'api_keys', ['prefix'])
    op.create_index('ix_api_keys_digest', 'api_keys', ['digest'])

    op.create_table(
        'assets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('brand_id', sa.Integer(), sa.ForeignKey('brands.id'), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('suggestions_completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_assets_id', 'assets', ['id'])
    op.create_index('ix_assets_tenant_id', 'assets', ['tenant_id'])
    op.create_index('ix_assets_brand_id', 'assets', ['brand_id'])

    op.create_table(
        'metadata_fields',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=True),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('label', sa.String(length=255), nullable=True),
        sa.Column('field_type', sa.String(length=32), nullable=False),
        sa.Column('population_mode', sa.String(length=32), nullable=False, server_default='manual'),
        sa.Column('is_user_editable', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('requires_review', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_internal_only', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('options_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('tenant_id', 'key', name='uq_metadata_fields_tenant_key'),
    )
    op.create_index('ix_metadata_fields_id', 'metadata_fields', ['id'])
    op.create_index('ix_metadata_fields_tenant_id', 'metadata_fields', ['tenant_id'])
    op.create_index('ix_metadata_fields_key', 'metadata_fields', ['key'])

    op.create_table(
        'asset_metadata',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('assets.id'), nullable=False),
        sa.Column('field_id', sa.Integer(), sa.ForeignKey('metadata_fields.id'), nullable=False),
        sa.Column('value_json', sa.JSON(), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=False),
        sa.Column('producer', sa.String(length=32), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.String(length=255), nullable=True),
        sa.Column('overridden_at', sa.DateTime(), nullable=True),
        sa.Column('overridden_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_asset_metadata_id', 'asset_metadata', ['id'])
    op.create_index('ix_asset_metadata_asset_id', 'asset_metadata', ['asset_id'])
    op.create_index('ix_asset_metadata_field_id', 'asset_metadata', ['field_id'])
    op.create_index('ix_asset_metadata_source', 'asset_metadata', ['source'])
    op.create_index('ix_asset_metadata_approved_at', 'asset_metadata', ['approved_at'])
    op.create_index('ix_asset_metadata_asset_field_id', 'asset_metadata', ['asset_id', 'field_id', 'id'])

    op.create_table(
        'asset_metadata_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('asset_metadata_id', sa.Integer(), sa.ForeignKey('asset_metadata.id'), nullable=False),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('assets.id'), nullable=False),
        sa.Column('field_id', sa.Integer(), sa.ForeignKey('metadata_fields.id'), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('old_value_json', sa.JSON(), nullable=True),
        sa.Column('new_value_json', sa.JSON(), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=False),
        sa.Column('changed_by', sa.String(length=255), nullable=True),
        sa.Column('context_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_asset_metadata_history_id', 'asset_metadata_history', ['id'])
    op.create_index('ix_asset_metadata_history_asset_metadata_id', 'asset_metadata_history', ['asset_metadata_id'])
    op.create_index('ix_asset_metadata_history_asset_id', 'asset_metadata_history', ['asset_id'])
    op.create_index('ix_asset_metadata_history_created_at', 'asset_metadata_history', ['created_at'])

    op.create_table(
        'metadata_candidates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('assets.id'), nullable=False),
        sa.Column('field_id', sa.Integer(), sa.ForeignKey('metadata_fields.id'), nullable=False),
        sa.Column('value_json', sa.JSON(), nullable=False),
        sa.Column('canonical_key', sa.String(length=255), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=False, server_default='ai'),
        sa.Column('producer', sa.String(length=32), nullable=False, server_default='ai'),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_by', sa.String(length=255), nullable=True),
        sa.Column('dismissed_at', sa.DateTime(), nullable=True),
        sa.Column('dismissed_by', sa.String(length=255), nullable=True),
        sa.Column('value_entry_id', sa.Integer(), sa.ForeignKey('asset_metadata.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            'resolved_at IS NULL OR dismissed_at IS NULL',
            name='ck_metadata_candidates_single_terminal',
        ),
    )
    op.create_index('ix_metadata_candidates_id', 'metadata_candidates', ['id'])
    op.create_index('ix_metadata_candidates_asset_id', 'metadata_candidates', ['asset_id'])
    op.create_index('ix_metadata_candidates_asset_field', 'metadata_candidates', ['asset_id', 'field_id'])
    op.create_index(
        'ix_metadata_candidates_canonical', 'metadata_candidates', ['asset_id', 'field_id', 'canonical_key']
    )

    op.create_table(
        'bulk_preview_tokens',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('token_digest', sa.String(length=64), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('actor_id', sa.String(length=255), nullable=False),
        sa.Column('params_json', sa.JSON(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_bulk_preview_tokens_id', 'bulk_preview_tokens', ['id'])
    op.create_index('ix_bulk_preview_tokens_token_digest', 'bulk_preview_tokens', ['token_digest'], unique=True)
    op.create_index('ix_bulk_preview_tokens_tenant_id', 'bulk_preview_tokens', ['tenant_id'])
    op.create_index('ix_bulk_preview_tokens_expires_at', 'bulk_preview_tokens', ['expires_at'])

    op.create_table(
        'activity_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=True),
        sa.Column('actor_id', sa.String(length=255), nullable=True),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('subject_type', sa.String(length=50), nullable=False),
        sa.Column('subject_id', sa.String(length=100), nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=True),
        sa.Column('payload_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_activity_events_id', 'activity_events', ['id'])
    op.create_index('ix_activity_events_tenant_id', 'activity_events', ['tenant_id'])
    op.create_index('ix_activity_events_event_type', 'activity_events', ['event_type'])
    op.create_index('ix_activity_events_asset_id', 'activity_events', ['asset_id'])
    op.create_index('ix_activity_events_created_at', 'activity_events', ['created_at'])


def downgrade() -> None:
    op.drop_table('activity_events')
    op.drop_table('bulk_preview_tokens')
    op.drop_table('metadata_candidates')
    op.drop_table('asset_metadata_history')
    op.drop_table('asset_metadata')
    op.drop_table('metadata_fields')
    op.drop_table('assets')
    op.drop_table('api_keys')
    op.drop_table('brands')
    op.drop_table('tenants')
