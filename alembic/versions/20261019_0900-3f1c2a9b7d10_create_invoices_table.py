"""create_invoices_table

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c2a9b7d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'invoices',
        sa.Column('invoice_id', sa.String(length=64), nullable=False, comment='Local invoice id (inv_<hex>)'),
        sa.Column('processor_invoice_id', sa.String(length=128), nullable=True, comment='Processor payment id'),
        sa.Column('order_reference', sa.String(length=128), nullable=False),
        sa.Column('payer_reference', sa.String(length=128), nullable=False),
        sa.Column('wallet_address', sa.String(length=42), nullable=False),
        sa.Column('amount', sa.String(length=78), nullable=False),
        sa.Column('currency', sa.String(length=5), nullable=False),
        sa.Column('network', sa.String(length=32), nullable=False),
        sa.Column('payment_address', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False,
                  comment='CREATED/PENDING/DETECTED/CONFIRMED/PAID/FAILED/EXPIRED'),
        sa.Column('tx_hash', sa.String(length=128), nullable=True),
        sa.Column('last_applied_event_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('invoice_id'),
        sa.UniqueConstraint('processor_invoice_id'),
    )
    op.create_index('ix_invoices_order_reference', 'invoices', ['order_reference'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_expires_at', 'invoices', ['expires_at'])
    op.create_index('ix_invoices_status_expires_at', 'invoices', ['status', 'expires_at'])


def downgrade() -> None:
    op.drop_index('ix_invoices_status_expires_at', table_name='invoices')
    op.drop_index('ix_invoices_expires_at', table_name='invoices')
    op.drop_index('ix_invoices_status', table_name='invoices')
    op.drop_index('ix_invoices_order_reference', table_name='invoices')
    op.drop_table('invoices')
