"""Create custom table metadata tables.

Revision ID: 001
Revises:
Create Date: 2026-01-08

Creates the catalog describing user-defined tables:
- custom_tables: one row per logical table
- custom_fields: ordered column definitions, cascading with their table

Also enables the extensions every physical custom table depends on:
postgis for geometry columns and uuid-ossp for uuid_generate_v4().
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Enable extensions and create metadata tables."""

    op.execute('CREATE EXTENSION IF NOT EXISTS postgis;')
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp";')

    op.create_table(
        'custom_tables',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(63), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('icon', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uix_custom_tables_name'),
    )

    op.create_table(
        'custom_fields',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('table_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(63), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('data_type', sa.String(50), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_unique', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_timeseries', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('default_value', sa.Text(), nullable=True),
        sa.Column('max_length', sa.Integer(), nullable=True),
        sa.Column('precision_digits', sa.Integer(), nullable=True),
        sa.Column('scale_digits', sa.Integer(), nullable=True),
        sa.Column('srid', sa.Integer(), nullable=True),
        sa.Column('geometry_type', sa.String(20), nullable=True),
        sa.Column('iot_config', sa.JSON(), nullable=True),
        sa.Column('relation_table', sa.String(63), nullable=True),
        sa.Column('relation_field', sa.String(63), nullable=True),
        sa.Column('on_delete', sa.String(20), nullable=True),
        sa.Column('validation_rules', sa.JSON(), nullable=True),
        sa.Column('field_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_visible', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['table_id'], ['custom_tables.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('table_id', 'name', name='uix_custom_fields_table_name'),
    )
    op.create_index('ix_custom_fields_table_id', 'custom_fields', ['table_id'])
    op.create_index('ix_custom_tables_is_active', 'custom_tables', ['is_active'])


def downgrade():
    """Drop metadata tables. Extensions are left installed."""
    op.drop_index('ix_custom_tables_is_active', table_name='custom_tables')
    op.drop_index('ix_custom_fields_table_id', table_name='custom_fields')
    op.drop_table('custom_fields')
    op.drop_table('custom_tables')
