"""create_sync_entities

Revision ID: 001
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _sync_columns() -> list:
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.String(length=64), nullable=False),
        sa.Column('external_modified_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table('projects'):
        op.create_table('projects',
        *_sync_columns(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=100), nullable=True),
        sa.Column('investment_type', sa.String(length=100), nullable=True),
        sa.Column('area_cluster', sa.String(length=100), nullable=True),
        sa.Column('renovator', sa.String(length=255), nullable=True),
        sa.Column('project_address', sa.String(length=500), nullable=True),
        sa.Column('project_start_date', sa.Date(), nullable=True),
        sa.Column('settlement_date', sa.Date(), nullable=True),
        sa.Column('renovation_spend', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_projects_id'), 'projects', ['id'], unique=False)
        op.create_index(op.f('ix_projects_external_id'), 'projects', ['external_id'], unique=True)
        op.create_index(op.f('ix_projects_name'), 'projects', ['name'], unique=False)
        op.create_index(op.f('ix_projects_status'), 'projects', ['status'], unique=False)

    if not inspector.has_table('properties'):
        op.create_table('properties',
        *_sync_columns(),
        sa.Column('address', sa.String(length=500), nullable=False),
        sa.Column('unique_id', sa.String(length=100), nullable=True),
        sa.Column('property_type', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=100), nullable=True),
        sa.Column('renovation_type', sa.String(length=100), nullable=True),
        sa.Column('area_cluster', sa.String(length=100), nullable=True),
        sa.Column('estimated_visit_date', sa.Date(), nullable=True),
        sa.Column('reno_start_date', sa.Date(), nullable=True),
        sa.Column('estimated_end_date', sa.Date(), nullable=True),
        sa.Column('budget_amount', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('budget_pdf_urls', sa.JSON(none_as_null=True), nullable=True),
        sa.Column('project_external_refs', sa.JSON(none_as_null=True), nullable=True),
        sa.Column('project_id', sa.Integer(), nullable=True),
        sa.Column('budget_index', sa.JSON(none_as_null=True), nullable=True),
        sa.Column('budget_indexed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id']),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_properties_id'), 'properties', ['id'], unique=False)
        op.create_index(op.f('ix_properties_external_id'), 'properties', ['external_id'], unique=True)
        op.create_index(op.f('ix_properties_unique_id'), 'properties', ['unique_id'], unique=False)
        op.create_index(op.f('ix_properties_status'), 'properties', ['status'], unique=False)
        op.create_index(op.f('ix_properties_project_id'), 'properties', ['project_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if inspector.has_table('properties'):
        op.drop_table('properties')
    if inspector.has_table('projects'):
        op.drop_table('projects')
