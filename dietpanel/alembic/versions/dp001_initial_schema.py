"""Initial schema: users, sessions, invitations, weight, events, PZK, transactions

Revision ID: dp001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'dp001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _ts(name: str, nullable: bool = False, **kwargs) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, **kwargs)


def upgrade() -> None:
    # ### 1. accounts ###
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('gender', sa.String(length=16), nullable=True),
        _ts('created_at', server_default=sa.text('now()')),
        _ts('updated_at', server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'sessions',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        _ts('expires_at'),
        _ts('created_at', server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sessions_user_id', 'sessions', ['user_id'])

    op.create_table(
        'login_attempts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        _ts('attempted_at', server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_login_attempts_email', 'login_attempts', ['email'])
    op.create_index('ix_login_attempts_attempted_at', 'login_attempts', ['attempted_at'])

    op.create_table(
        'invitations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=False),
        _ts('expires_at'),
        _ts('used_at', nullable=True),
        sa.Column('used_by', sa.Uuid(), nullable=True),
        _ts('created_at', server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.ForeignKeyConstraint(['used_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_invitations_token_hash', 'invitations', ['token_hash'], unique=True)

    # ### 2. weight ###
    op.create_table(
        'weight_entries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('weight', sa.Numeric(4, 1), nullable=False),
        _ts('measurement_date'),
        sa.Column('source', sa.String(length=16), nullable=False),
        sa.Column('is_backfill', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_outlier', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('outlier_confirmed', sa.Boolean(), nullable=True),
        sa.Column('note', sa.String(length=200), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=False),
        sa.Column('updated_by', sa.Uuid(), nullable=True),
        _ts('created_at', server_default=sa.text('now()')),
        _ts('updated_at', nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.ForeignKeyConstraint(['updated_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_weight_entries_user_id', 'weight_entries', ['user_id'])
    op.create_index('ix_weight_entries_measurement_date', 'weight_entries', ['measurement_date'])
    # one entry per user per Warsaw calendar day
    op.execute(
        "CREATE UNIQUE INDEX uq_weight_entries_user_warsaw_day ON weight_entries "
        "(user_id, ((measurement_date AT TIME ZONE 'Europe/Warsaw')::date))"
    )

    # ### 3. events ###
    op.create_table(
        'events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('properties', sa.JSON(), nullable=True),
        _ts('timestamp', server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_events_user_id', 'events', ['user_id'])
    op.create_index('ix_events_event_type', 'events', ['event_type'])

    # ### 4. PZK content ###
    op.create_table(
        'pzk_categories',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('slug', sa.String(length=64), nullable=False),
        sa.Column('label', sa.String(length=120), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        _ts('created_at', server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )

    op.create_table(
        'pzk_materials',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('module', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('content_md', sa.Text(), nullable=True),
        _ts('created_at', server_default=sa.text('now()')),
        _ts('updated_at', server_default=sa.text('now()')),
        sa.CheckConstraint('module BETWEEN 1 AND 3', name='ck_pzk_materials_module'),
        sa.ForeignKeyConstraint(['category_id'], ['pzk_categories.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pzk_materials_module', 'pzk_materials', ['module'])
    op.create_index('ix_pzk_materials_category_id', 'pzk_materials', ['category_id'])
    op.create_index('ix_pzk_materials_status', 'pzk_materials', ['status'])

    op.create_table(
        'pzk_material_pdfs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('material_id', sa.Uuid(), nullable=False),
        sa.Column('object_key', sa.String(length=512), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=True),
        sa.Column('content_type', sa.String(length=100), nullable=False,
                  server_default='application/pdf'),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        _ts('created_at', server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['material_id'], ['pzk_materials.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pzk_material_pdfs_material_id', 'pzk_material_pdfs', ['material_id'])

    op.create_table(
        'pzk_material_videos',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('material_id', sa.Uuid(), nullable=False),
        sa.Column('youtube_video_id', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        _ts('created_at', server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['material_id'], ['pzk_materials.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pzk_material_videos_material_id', 'pzk_material_videos', ['material_id'])

    op.create_table(
        'pzk_module_access',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('module', sa.Integer(), nullable=False),
        _ts('start_at'),
        _ts('expires_at'),
        _ts('revoked_at', nullable=True),
        _ts('created_at', server_default=sa.text('now()')),
        _ts('updated_at', server_default=sa.text('now()')),
        sa.CheckConstraint('module BETWEEN 1 AND 3', name='ck_pzk_module_access_module'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pzk_module_access_user_id', 'pzk_module_access', ['user_id'])

    op.create_table(
        'pzk_notes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('material_id', sa.Uuid(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        _ts('created_at', server_default=sa.text('now()')),
        _ts('updated_at', server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['material_id'], ['pzk_materials.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'material_id', name='uq_pzk_notes_user_material'),
    )
    op.create_index('ix_pzk_notes_user_id', 'pzk_notes', ['user_id'])

    op.create_table(
        'pzk_reviews',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        _ts('created_at', server_default=sa.text('now()')),
        _ts('updated_at', server_default=sa.text('now()')),
        sa.CheckConstraint('rating BETWEEN 1 AND 6', name='ck_pzk_reviews_rating'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pzk_reviews_user_id', 'pzk_reviews', ['user_id'], unique=True)
    op.create_index('ix_pzk_reviews_created_at', 'pzk_reviews', ['created_at'])
    op.create_index('ix_pzk_reviews_updated_at', 'pzk_reviews', ['updated_at'])

    # ### 5. purchases ###
    op.create_table(
        'transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('item', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('tpay_transaction_id', sa.String(length=64), nullable=True),
        sa.Column('payer_email', sa.String(length=255), nullable=False),
        _ts('created_at', server_default=sa.text('now()')),
        _ts('updated_at', server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_item', 'transactions', ['item'])


def downgrade() -> None:
    op.drop_index('ix_transactions_item', table_name='transactions')
    op.drop_index('ix_transactions_user_id', table_name='transactions')
    op.drop_table('transactions')

    op.drop_index('ix_pzk_reviews_updated_at', table_name='pzk_reviews')
    op.drop_index('ix_pzk_reviews_created_at', table_name='pzk_reviews')
    op.drop_index('ix_pzk_reviews_user_id', table_name='pzk_reviews')
    op.drop_table('pzk_reviews')
    op.drop_index('ix_pzk_notes_user_id', table_name='pzk_notes')
    op.drop_table('pzk_notes')
    op.drop_index('ix_pzk_module_access_user_id', table_name='pzk_module_access')
    op.drop_table('pzk_module_access')
    op.drop_index('ix_pzk_material_videos_material_id', table_name='pzk_material_videos')
    op.drop_table('pzk_material_videos')
    op.drop_index('ix_pzk_material_pdfs_material_id', table_name='pzk_material_pdfs')
    op.drop_table('pzk_material_pdfs')
    op.drop_index('ix_pzk_materials_status', table_name='pzk_materials')
    op.drop_index('ix_pzk_materials_category_id', table_name='pzk_materials')
    op.drop_index('ix_pzk_materials_module', table_name='pzk_materials')
    op.drop_table('pzk_materials')
    op.drop_table('pzk_categories')

    op.drop_index('ix_events_event_type', table_name='events')
    op.drop_index('ix_events_user_id', table_name='events')
    op.drop_table('events')

    op.execute('DROP INDEX IF EXISTS uq_weight_entries_user_warsaw_day')
    op.drop_index('ix_weight_entries_measurement_date', table_name='weight_entries')
    op.drop_index('ix_weight_entries_user_id', table_name='weight_entries')
    op.drop_table('weight_entries')

    op.drop_index('ix_invitations_token_hash', table_name='invitations')
    op.drop_table('invitations')
    op.drop_index('ix_login_attempts_attempted_at', table_name='login_attempts')
    op.drop_index('ix_login_attempts_email', table_name='login_attempts')
    op.drop_table('login_attempts')
    op.drop_index('ix_sessions_user_id', table_name='sessions')
    op.drop_table('sessions')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
