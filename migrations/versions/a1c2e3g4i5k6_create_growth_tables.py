"""Create growth ledger and admission tables.

Revision ID: a1c2e3g4i5k6
Revises:
Create Date: 2026-10-16
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c2e3g4i5k6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create apps, identities, ledger, referral, waitlist, profile and audit tables."""
    op.create_table(
        'apps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('api_key', sa.String(64), nullable=False),
        sa.Column('domain', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('credits_paused', sa.Boolean(), server_default=sa.false()),
        sa.Column('waitlist_enabled', sa.Boolean(), server_default=sa.false()),
        sa.Column('waitlist_enabled_at', sa.DateTime(), nullable=True),
        sa.Column('auto_invite_enabled', sa.Boolean(), server_default=sa.false()),
        sa.Column('master_referral_code', sa.String(50), nullable=True),
        sa.Column('settings', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_apps_api_key', 'apps', ['api_key'], unique=True)

    op.create_table(
        'identities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('app_id', sa.Integer(), nullable=False),
        sa.Column('fingerprint', sa.String(256), nullable=False),
        sa.Column('referral_code', sa.String(20), nullable=False),
        sa.Column('credit_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_daily_grant', sa.DateTime(), nullable=True),
        sa.Column('last_active_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['app_id'], ['apps.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('app_id', 'fingerprint', name='uq_identities_app_fingerprint'),
        sa.UniqueConstraint('app_id', 'referral_code', name='uq_identities_app_referral_code'),
    )

    op.create_table(
        'credit_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('identity_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(30), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['identity_id'], ['identities.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_credit_entries_identity_created', 'credit_entries', ['identity_id', 'created_at'])

    op.create_table(
        'referrals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('app_id', sa.Integer(), nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=True),
        sa.Column('referred_id', sa.Integer(), nullable=False),
        sa.Column('referral_code', sa.String(50), nullable=False),
        sa.Column('is_master', sa.Boolean(), server_default=sa.false()),
        sa.Column('referrer_credits', sa.Integer(), server_default='0'),
        sa.Column('referred_credits', sa.Integer(), server_default='0'),
        sa.Column('claimed_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['app_id'], ['apps.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['referrer_id'], ['identities.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['referred_id'], ['identities.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('referred_id', name='uq_referrals_referred'),
    )
    op.create_index('ix_referrals_referrer', 'referrals', ['referrer_id'])

    op.create_table(
        'referral_daily_counters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=False),
        sa.Column('day', sa.Date(), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['referrer_id'], ['identities.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('referrer_id', 'day', name='uq_referral_daily_counters_referrer_day'),
    )

    op.create_table(
        'waitlist_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('app_id', sa.Integer(), nullable=False),
        sa.Column('identity_id', sa.Integer(), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(200), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='WAITING'),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('invitation_code', sa.String(10), nullable=True),
        sa.Column('code_expires_at', sa.DateTime(), nullable=True),
        sa.Column('code_used_at', sa.DateTime(), nullable=True),
        sa.Column('use_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('invited_at', sa.DateTime(), nullable=True),
        sa.Column('invited_via', sa.String(20), nullable=True),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['app_id'], ['apps.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['identity_id'], ['identities.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('app_id', 'email', name='uq_waitlist_entries_app_email'),
        sa.UniqueConstraint('app_id', 'invitation_code', name='uq_waitlist_entries_app_code'),
        sa.UniqueConstraint('app_id', 'position', name='uq_waitlist_entries_app_position'),
    )
    op.create_index('ix_waitlist_entries_app_status', 'waitlist_entries', ['app_id', 'status'])

    op.create_table(
        'profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('app_id', sa.Integer(), nullable=False),
        sa.Column('identity_id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('name', sa.String(200), nullable=True),
        sa.Column('email_verified', sa.Boolean(), server_default=sa.false()),
        sa.Column('verify_token', sa.String(64), nullable=True),
        sa.Column('verify_expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['app_id'], ['apps.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['identity_id'], ['identities.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('app_id', 'identity_id', name='uq_profiles_app_identity'),
    )
    op.create_index('ix_profiles_app_email', 'profiles', ['app_id', 'email'])
    op.create_index('ix_profiles_app_verify_token', 'profiles', ['app_id', 'verify_token'])

    op.create_table(
        'event_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('app_id', sa.Integer(), nullable=False),
        sa.Column('event', sa.String(100), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=True),
        sa.Column('entity_id', sa.String(64), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['app_id'], ['apps.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_event_logs_app_event', 'event_logs', ['app_id', 'event'])


def downgrade():
    """Drop all growth tables."""
    op.drop_index('ix_event_logs_app_event', table_name='event_logs')
    op.drop_table('event_logs')
    op.drop_index('ix_profiles_app_verify_token', table_name='profiles')
    op.drop_index('ix_profiles_app_email', table_name='profiles')
    op.drop_table('profiles')
    op.drop_index('ix_waitlist_entries_app_status', table_name='waitlist_entries')
    op.drop_table('waitlist_entries')
    op.drop_table('referral_daily_counters')
    op.drop_index('ix_referrals_referrer', table_name='referrals')
    op.drop_table('referrals')
    op.drop_index('ix_credit_entries_identity_created', table_name='credit_entries')
    op.drop_table('credit_entries')
    op.drop_table('identities')
    op.drop_index('ix_apps_api_key', table_name='apps')
    op.drop_table('apps')
