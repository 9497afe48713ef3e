"""create_manifest_sync_tables

Revision ID: 3f2a9c1d7e4b
Revises:
Create Date: 2026-10-18 10:12:44.518203

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '3f2a9c1d7e4b'
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('modified_at', sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        'teams',
        *_audit_columns(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.UniqueConstraint('key'),
    )

    op.create_table(
        'services',
        *_audit_columns(),
        sa.Column('team_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('health_endpoint', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metrics_endpoint', sa.Text(), nullable=True),
        sa.Column('poll_interval_ms', sa.Integer(), nullable=False, server_default='30000'),
        sa.Column('schema_config', postgresql.JSONB(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('manifest_key', sa.String(length=128), nullable=True),
        sa.Column('manifest_managed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('manifest_last_synced_values', postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_index('ix_services_team_id', 'services', ['team_id'])
    # One manifest key per team; human-owned services have no key
    op.create_index(
        'uq_services_team_manifest_key',
        'services',
        ['team_id', 'manifest_key'],
        unique=True,
        postgresql_where=sa.text('manifest_key IS NOT NULL'),
    )

    op.create_table(
        'dependencies',
        *_audit_columns(),
        sa.Column('service_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('canonical_name', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('service_id', 'name', name='uq_dependency_service_name'),
    )
    op.create_index('ix_dependencies_service_id', 'dependencies', ['service_id'])

    op.create_table(
        'dependency_aliases',
        *_audit_columns(),
        sa.Column('alias', sa.String(length=255), nullable=False),
        sa.Column('canonical_name', sa.String(length=255), nullable=False),
        sa.Column('manifest_team_id', sa.UUID(), nullable=True),
        sa.Column('manifest_managed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['manifest_team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('alias'),
    )
    op.create_index(
        'ix_dependency_aliases_manifest_team_id', 'dependency_aliases', ['manifest_team_id']
    )

    op.create_table(
        'dependency_canonical_overrides',
        *_audit_columns(),
        sa.Column('canonical_name', sa.String(length=255), nullable=False),
        sa.Column('team_id', sa.UUID(), nullable=True),
        sa.Column('contact_override', postgresql.JSONB(), nullable=True),
        sa.Column('impact_override', sa.Text(), nullable=True),
        sa.Column('manifest_managed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('updated_by', sa.UUID(), nullable=True),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_dependency_canonical_overrides_team_id', 'dependency_canonical_overrides', ['team_id']
    )
    op.create_index(
        'uq_canonical_overrides_team_scoped',
        'dependency_canonical_overrides',
        ['team_id', 'canonical_name'],
        unique=True,
        postgresql_where=sa.text('team_id IS NOT NULL'),
    )
    op.create_index(
        'uq_canonical_overrides_global',
        'dependency_canonical_overrides',
        ['canonical_name'],
        unique=True,
        postgresql_where=sa.text('team_id IS NULL'),
    )

    op.create_table(
        'dependency_associations',
        *_audit_columns(),
        sa.Column('dependency_id', sa.UUID(), nullable=False),
        sa.Column('linked_service_id', sa.UUID(), nullable=False),
        sa.Column('association_type', sa.String(length=32), nullable=False),
        sa.Column('manifest_managed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['dependency_id'], ['dependencies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['linked_service_id'], ['services.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'dependency_id', 'linked_service_id', name='uq_association_dependency_linked'
        ),
    )
    op.create_index(
        'ix_dependency_associations_dependency_id', 'dependency_associations', ['dependency_id']
    )
    op.create_index(
        'ix_dependency_associations_linked_service_id',
        'dependency_associations',
        ['linked_service_id'],
    )

    op.create_table(
        'team_manifest_config',
        *_audit_columns(),
        sa.Column('team_id', sa.UUID(), nullable=False),
        sa.Column('manifest_url', sa.Text(), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sync_policy', postgresql.JSONB(), nullable=True),
        sa.Column('sync_interval_seconds', sa.Integer(), nullable=True),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('last_sync_status', sa.String(length=20), nullable=True),
        sa.Column('last_sync_error', sa.Text(), nullable=True),
        sa.Column('last_sync_summary', postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('team_id'),
    )

    op.create_table(
        'manifest_sync_history',
        *_audit_columns(),
        sa.Column('team_id', sa.UUID(), nullable=False),
        sa.Column('trigger_type', sa.String(length=20), nullable=False),
        sa.Column('triggered_by', sa.UUID(), nullable=True),
        sa.Column('manifest_url', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('summary', postgresql.JSONB(), nullable=True),
        sa.Column('errors', postgresql.JSONB(), nullable=False),
        sa.Column('warnings', postgresql.JSONB(), nullable=False),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_manifest_sync_history_team_created',
        'manifest_sync_history',
        ['team_id', 'created_at'],
    )

    op.create_table(
        'drift_flags',
        *_audit_columns(),
        sa.Column('team_id', sa.UUID(), nullable=False),
        sa.Column('service_id', sa.UUID(), nullable=False),
        sa.Column('drift_type', sa.String(length=32), nullable=False),
        sa.Column('field_name', sa.String(length=64), nullable=True),
        sa.Column('manifest_value', sa.Text(), nullable=True),
        sa.Column('current_value', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('first_detected_at', sa.DateTime(), nullable=False),
        sa.Column('last_detected_at', sa.DateTime(), nullable=False),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_by', sa.UUID(), nullable=True),
        sa.Column('sync_history_id', sa.UUID(), nullable=True),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_drift_flags_team_status', 'drift_flags', ['team_id', 'status'])
    op.create_index('ix_drift_flags_service_status', 'drift_flags', ['service_id', 'status'])


def downgrade():
    op.drop_index('ix_drift_flags_service_status', table_name='drift_flags')
    op.drop_index('ix_drift_flags_team_status', table_name='drift_flags')
    op.drop_table('drift_flags')

    op.drop_index('ix_manifest_sync_history_team_created', table_name='manifest_sync_history')
    op.drop_table('manifest_sync_history')

    op.drop_table('team_manifest_config')

    op.drop_index(
        'ix_dependency_associations_linked_service_id', table_name='dependency_associations'
    )
    op.drop_index('ix_dependency_associations_dependency_id', table_name='dependency_associations')
    op.drop_table('dependency_associations')

    op.drop_index('uq_canonical_overrides_global', table_name='dependency_canonical_overrides')
    op.drop_index(
        'uq_canonical_overrides_team_scoped', table_name='dependency_canonical_overrides'
    )
    op.drop_index(
        'ix_dependency_canonical_overrides_team_id', table_name='dependency_canonical_overrides'
    )
    op.drop_table('dependency_canonical_overrides')

    op.drop_index('ix_dependency_aliases_manifest_team_id', table_name='dependency_aliases')
    op.drop_table('dependency_aliases')

    op.drop_index('ix_dependencies_service_id', table_name='dependencies')
    op.drop_table('dependencies')

    op.drop_index('uq_services_team_manifest_key', table_name='services')
    op.drop_index('ix_services_team_id', table_name='services')
    op.drop_table('services')

    op.drop_table('teams')
