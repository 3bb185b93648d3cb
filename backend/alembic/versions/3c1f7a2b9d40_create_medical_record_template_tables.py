"""Create medical record template tables

Revision ID: 3c1f7a2b9d40
Revises:
Create Date: 2026-10-19 09:12:44.318205

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3c1f7a2b9d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TEMPLATE_TYPES = (
    'consultation', 'follow_up', 'emergency', 'procedure',
    'discharge', 'admission', 'progress_note', 'operative_note',
)


def upgrade() -> None:
    template_type_list = ", ".join(f"'{t}'" for t in TEMPLATE_TYPES)

    op.create_table('medical_record_templates',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('tenant_id', sa.String(length=64), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('template_type', sa.String(length=30), nullable=False),
    sa.Column('specialty', sa.String(length=100), nullable=True),
    # JSON rather than JSONB: field order is significant
    sa.Column('fields', sa.JSON(), nullable=False),
    sa.Column('default_values', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('validation_rules', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('is_default', sa.Boolean(), server_default=sa.false(), nullable=False),
    sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
    sa.Column('version', sa.Integer(), server_default='1', nullable=False),
    sa.Column('parent_template_id', sa.Integer(), nullable=True),
    sa.Column('created_by', sa.Integer(), nullable=True),
    sa.Column('updated_by', sa.Integer(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.CheckConstraint(f"template_type IN ({template_type_list})", name='check_template_type'),
    sa.ForeignKeyConstraint(['parent_template_id'], ['medical_record_templates.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_medical_record_templates_id'), 'medical_record_templates', ['id'], unique=False)
    op.create_index('idx_medical_record_templates_tenant', 'medical_record_templates', ['tenant_id'], unique=False)
    op.create_index(
        'idx_medical_record_templates_bucket',
        'medical_record_templates',
        ['tenant_id', 'template_type', 'specialty'],
        unique=False,
    )
    # At most one active default per (tenant, type, specialty) bucket
    op.create_index(
        'uq_medical_record_templates_default_bucket',
        'medical_record_templates',
        ['tenant_id', 'template_type', sa.text("coalesce(specialty, '')")],
        unique=True,
        postgresql_where=sa.text('is_default AND is_active'),
    )

    op.create_table('medical_record_template_usage',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('tenant_id', sa.String(length=64), nullable=False),
    sa.Column('template_id', sa.Integer(), nullable=False),
    sa.Column('medical_record_id', sa.Integer(), nullable=False),
    sa.Column('user_id', sa.Integer(), nullable=False),
    sa.Column('used_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('customizations', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('completion_time_seconds', sa.Integer(), nullable=True),
    sa.CheckConstraint(
        'completion_time_seconds IS NULL OR completion_time_seconds >= 0',
        name='check_completion_time_non_negative',
    ),
    sa.ForeignKeyConstraint(['template_id'], ['medical_record_templates.id'], ondelete='RESTRICT'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_medical_record_template_usage_id'), 'medical_record_template_usage', ['id'], unique=False)
    op.create_index(
        'idx_template_usage_tenant_template', 'medical_record_template_usage', ['tenant_id', 'template_id'], unique=False
    )
    op.create_index(
        'idx_template_usage_tenant_user', 'medical_record_template_usage', ['tenant_id', 'user_id'], unique=False
    )


def downgrade() -> None:
    op.drop_index('idx_template_usage_tenant_user', table_name='medical_record_template_usage')
    op.drop_index('idx_template_usage_tenant_template', table_name='medical_record_template_usage')
    op.drop_index(op.f('ix_medical_record_template_usage_id'), table_name='medical_record_template_usage')
    op.drop_table('medical_record_template_usage')

    op.drop_index('uq_medical_record_templates_default_bucket', table_name='medical_record_templates')
    op.drop_index('idx_medical_record_templates_bucket', table_name='medical_record_templates')
    op.drop_index('idx_medical_record_templates_tenant', table_name='medical_record_templates')
    op.drop_index(op.f('ix_medical_record_templates_id'), table_name='medical_record_templates')
    op.drop_table('medical_record_templates')
