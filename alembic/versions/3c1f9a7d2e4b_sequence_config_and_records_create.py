"""sequence config and numbered record tables create

Revision ID: 3c1f9a7d2e4b
Revises:
Create Date: 2026-10-19 09:12:41.203118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f9a7d2e4b'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _record_columns(number_column: str) -> list:
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('is_live', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column(number_column, sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    ]


def upgrade() -> None:
    op.create_table(
        't_sequence_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('code', sa.String(length=40), nullable=False),
        sa.Column('is_live', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('name', sa.String(length=120), server_default='', nullable=False),
        sa.Column('description', sa.String(length=500), server_default='', nullable=False),
        sa.Column('prefix', sa.String(length=20), server_default='', nullable=False),
        sa.Column('separator', sa.String(length=5), server_default='-', nullable=False),
        sa.Column('suffix', sa.String(length=20), server_default='', nullable=False),
        sa.Column('padding_width', sa.Integer(), server_default='5', nullable=False),
        sa.Column('include_period', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('reset_cadence', sa.String(length=16), server_default=sa.text("'never'"), nullable=False),
        sa.Column('start_value', sa.BigInteger(), server_default='1', nullable=False),
        sa.Column('increment_by', sa.Integer(), server_default='1', nullable=False),
        sa.Column('current_value', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('last_reset_period', sa.Integer(), nullable=True),
        sa.Column('is_deletable', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('created_by', sa.String(length=255), server_default=sa.text("'system@local'"), nullable=False),
        sa.Column('last_changed_by', sa.String(length=255), server_default=sa.text("'system@local'"), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'code', 'is_live', name='uq_sequence_config_key'),
    )
    op.create_index('ix_t_sequence_configs_tenant_id', 't_sequence_configs', ['tenant_id'])

    op.create_table(
        't_contacts',
        *_record_columns('contact_number'),
        sa.Column('name', sa.String(length=255), nullable=False),
    )
    op.create_index('ix_t_contacts_tenant_id', 't_contacts', ['tenant_id'])
    op.create_index('ix_contacts_tenant_number', 't_contacts', ['tenant_id', 'is_live', 'contact_number'])

    op.create_table(
        't_contracts',
        *_record_columns('contract_number'),
        sa.Column('title', sa.String(length=255), nullable=False),
    )
    op.create_index('ix_t_contracts_tenant_id', 't_contracts', ['tenant_id'])
    op.create_index('ix_contracts_tenant_number', 't_contracts', ['tenant_id', 'is_live', 'contract_number'])

    op.create_table(
        't_invoices',
        *_record_columns('invoice_number'),
        sa.Column('contract_id', sa.Integer(), nullable=True),
    )
    op.create_index('ix_t_invoices_tenant_id', 't_invoices', ['tenant_id'])
    op.create_index('ix_invoices_tenant_number', 't_invoices', ['tenant_id', 'is_live', 'invoice_number'])


def downgrade() -> None:
    op.drop_index('ix_invoices_tenant_number', table_name='t_invoices')
    op.drop_index('ix_t_invoices_tenant_id', table_name='t_invoices')
    op.drop_table('t_invoices')
    op.drop_index('ix_contracts_tenant_number', table_name='t_contracts')
    op.drop_index('ix_t_contracts_tenant_id', table_name='t_contracts')
    op.drop_table('t_contracts')
    op.drop_index('ix_contacts_tenant_number', table_name='t_contacts')
    op.drop_index('ix_t_contacts_tenant_id', table_name='t_contacts')
    op.drop_table('t_contacts')
    op.drop_index('ix_t_sequence_configs_tenant_id', table_name='t_sequence_configs')
    op.drop_table('t_sequence_configs')
