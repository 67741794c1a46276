"""Wallet PIN lockout

Revision ID: 20261020_wallet_pin_lockout
Revises: 20261019_ledger_core
Create Date: 2026-10-20

Adds failed-attempt tracking to the manager safe PIN so repeated misses lock
transfers the same way manager approval PINs are locked.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261020_wallet_pin_lockout'
down_revision = '20261019_ledger_core'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('wallets', schema=None) as batch_op:
        batch_op.add_column(sa.Column('pin_failed_attempts', sa.Integer(), nullable=False, server_default='0'))
        batch_op.add_column(sa.Column('pin_locked_until', sa.DateTime(timezone=True), nullable=True))


def downgrade():
    with op.batch_alter_table('wallets', schema=None) as batch_op:
        batch_op.drop_column('pin_locked_until')
        batch_op.drop_column('pin_failed_attempts')
