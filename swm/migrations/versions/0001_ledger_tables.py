"""add ledger tables"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = '0001_ledger'
down_revision = None
branch_labels = None
depends_on = None

VIOLATION_TYPES = ('improper_segregation', 'illegal_dumping', 'non_compliance',
                   'late_payment', 'pickup_rejection')


def upgrade():
    op.create_table(
        'ledger_accounts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('kind', sa.Enum('citizen', 'bulk_generator', name='account_kind'), nullable=False),
        sa.Column('display_name', sa.String(200)),
        sa.Column('area_id', sa.String(64), index=True),
        sa.Column('point_balance', sa.Integer, nullable=False, server_default='0'),
        sa.Column('compliance_score', sa.Integer, nullable=False, server_default='0'),
        sa.Column('status', sa.Enum('active', 'suspended', name='account_status'),
                  nullable=False, server_default='active'),
        sa.Column('suspended_until', sa.DateTime),
        sa.Column('suspension_reason', sa.Text),
        sa.Column('last_assessed_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('version_id', sa.Integer, nullable=False),
        sa.CheckConstraint('point_balance >= 0', name='ck_account_balance_non_negative'),
        sa.CheckConstraint('compliance_score >= 0 AND compliance_score <= 100',
                           name='ck_account_score_range'),
    )
    op.create_table(
        'reward_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('account_id', sa.String(36), sa.ForeignKey('ledger_accounts.id'), nullable=False),
        sa.Column('kind', sa.Enum('segregation', 'bonus', name='reward_kind'),
                  nullable=False, server_default='segregation'),
        sa.Column('points_awarded', sa.Integer, nullable=False),
        sa.Column('balance_after', sa.Integer, nullable=False),
        sa.Column('reason', sa.Text),
        sa.Column('formula_inputs', sa.JSON),
        sa.Column('period', sa.String(7)),
        sa.Column('awarded_at', sa.DateTime, server_default=sa.func.now(), index=True),
        sa.Column('awarded_by', sa.String(64)),
    )
    op.create_index('idx_reward_events_account_time', 'reward_events', ['account_id', 'awarded_at'])
    op.create_table(
        'redemption_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('account_id', sa.String(36), sa.ForeignKey('ledger_accounts.id'), nullable=False),
        sa.Column('points_redeemed', sa.Integer, nullable=False),
        sa.Column('balance_before', sa.Integer, nullable=False),
        sa.Column('balance_after', sa.Integer, nullable=False),
        sa.Column('reward_type', sa.Enum('cash', 'voucher', 'product', 'service', name='reward_type'),
                  nullable=False),
        sa.Column('reward_value', sa.Numeric(10, 2), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('redeemed_at', sa.DateTime, server_default=sa.func.now(), index=True),
        sa.Column('redeemed_by', sa.String(64)),
    )
    op.create_index('idx_redemption_events_account_time', 'redemption_events',
                    ['account_id', 'redeemed_at'])
    op.create_table(
        'penalty_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('violator_account_id', sa.String(36), sa.ForeignKey('ledger_accounts.id'),
                  nullable=False),
        sa.Column('violation_type', sa.Enum(*VIOLATION_TYPES, name='violation_type'), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('evidence', sa.JSON),
        sa.Column('status', sa.Enum('issued', 'paid', 'overdue', 'cancelled', name='penalty_status'),
                  nullable=False, server_default='issued'),
        sa.Column('issued_at', sa.DateTime, server_default=sa.func.now(), index=True),
        sa.Column('issued_by', sa.String(64)),
        sa.Column('due_date', sa.DateTime, nullable=False),
        sa.Column('paid_at', sa.DateTime),
        sa.Column('paid_amount', sa.Numeric(10, 2)),
        sa.Column('payment_method', sa.String(40)),
        sa.Column('transaction_id', sa.String(120)),
        sa.Column('cancelled_at', sa.DateTime),
        sa.Column('cancel_reason', sa.Text),
        sa.CheckConstraint('amount > 0', name='ck_penalty_amount_positive'),
    )
    op.create_index('idx_penalty_records_violator_issued', 'penalty_records',
                    ['violator_account_id', 'issued_at'])
    op.create_index('idx_penalty_records_status_due', 'penalty_records', ['status', 'due_date'])
    op.create_table(
        'violation_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('account_id', sa.String(36), sa.ForeignKey('ledger_accounts.id'), nullable=False),
        sa.Column('violation_type', sa.Enum(*VIOLATION_TYPES, name='violation_type').with_variant(
            postgresql.ENUM(*VIOLATION_TYPES, name='violation_type', create_type=False), 'postgresql',
        ), nullable=False),
        sa.Column('severity', sa.Enum('low', 'medium', 'high', 'critical', name='violation_severity'),
                  nullable=False, server_default='medium'),
        sa.Column('quality_delta', sa.Integer, nullable=False, server_default='0'),
        sa.Column('reason', sa.Text),
        sa.Column('recorded_at', sa.DateTime, server_default=sa.func.now(), index=True),
        sa.Column('recorded_by', sa.String(64)),
    )
    op.create_index('idx_violation_records_account_time', 'violation_records',
                    ['account_id', 'recorded_at'])
    op.create_table(
        'compliance_assessments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('account_id', sa.String(36), sa.ForeignKey('ledger_accounts.id'), nullable=False),
        sa.Column('area_id', sa.String(64), index=True),
        sa.Column('overall_score', sa.Integer, nullable=False),
        sa.Column('follow_up_required', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('assessed_at', sa.DateTime, server_default=sa.func.now(), index=True),
        sa.Column('assessed_by', sa.String(64)),
    )


def downgrade():
    op.drop_table('compliance_assessments')
    op.drop_index('idx_violation_records_account_time', table_name='violation_records')
    op.drop_table('violation_records')
    op.drop_index('idx_penalty_records_status_due', table_name='penalty_records')
    op.drop_index('idx_penalty_records_violator_issued', table_name='penalty_records')
    op.drop_table('penalty_records')
    op.drop_index('idx_redemption_events_account_time', table_name='redemption_events')
    op.drop_table('redemption_events')
    op.drop_index('idx_reward_events_account_time', table_name='reward_events')
    op.drop_table('reward_events')
    op.drop_table('ledger_accounts')
