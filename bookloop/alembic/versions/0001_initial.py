"""initial

Revision ID: 0001
Revises: 
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('username', sa.String(150), nullable=False),
        sa.Column('name', sa.String(150), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('profile_image', sa.String(1000), nullable=True),
        sa.Column('about', sa.Text(), nullable=True),
        sa.Column('registration_date', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('is_active_status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('deletion_schedule_date', sa.Date(), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('holiday_mode', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('follower_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('following_count', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint(
            "(is_active_status IN ('suspended', 'to_be_deleted') AND deletion_schedule_date IS NOT NULL)"
            " OR (is_active_status IN ('active', 'deactivated') AND deletion_schedule_date IS NULL)",
            name='ck_users_deletion_schedule',
        ),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table('session_logs',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('device_info', sa.Text(), nullable=True),
    )
    op.create_index('ix_session_logs_user_id', 'session_logs', ['user_id'])

    op.create_table('tokens',
        sa.Column('token_key', sa.String(512), primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token_type', sa.String(20), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.Column('invalidated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('session_id', sa.Integer, sa.ForeignKey('session_logs.id', ondelete='CASCADE'), nullable=True),
    )
    op.create_index('ix_tokens_user_id', 'tokens', ['user_id'])
    op.create_index('ix_tokens_session_id', 'tokens', ['session_id'])
    op.create_index('ix_tokens_sweep', 'tokens', ['token_type', 'invalidated', 'expires_at'])

    op.create_table('follow_relationships',
        sa.Column('main_user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('followed_user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_follow_relationships_followed_user_id', 'follow_relationships', ['followed_user_id'])


def downgrade():
    op.drop_table('follow_relationships')
    op.drop_table('tokens')
    op.drop_table('session_logs')
    op.drop_table('users')
