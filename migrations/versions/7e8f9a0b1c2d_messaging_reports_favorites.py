"""messaging, listing reports and favorites

Revision ID: 7e8f9a0b1c2d
Revises: 3c1d2e4f5a60
Create Date: 2026-09-30 16:40:03.552917

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7e8f9a0b1c2d'
down_revision = '3c1d2e4f5a60'
branch_labels = None
depends_on = None


ACTIVE_REPORT_WHERE = "status IN ('pending', 'reviewed')"


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    tables = set(insp.get_table_names())

    if 'conversations' not in tables:
        op.create_table(
            'conversations',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user1_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('user2_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('listing_id', sa.Integer(), sa.ForeignKey('listings.id'), nullable=True),
            sa.Column('user1_unread_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('user2_unread_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('user1_archived', sa.Boolean(), nullable=False, server_default=sa.text('false')),
            sa.Column('user2_archived', sa.Boolean(), nullable=False, server_default=sa.text('false')),
            sa.Column('last_message_at', sa.DateTime(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_conversations_user1_id', 'conversations', ['user1_id'])
        op.create_index('ix_conversations_user2_id', 'conversations', ['user2_id'])
        op.create_index('ix_conversations_listing_id', 'conversations', ['listing_id'])
        op.create_index('ix_conversations_last_message_at', 'conversations', ['last_message_at'])

    if 'messages' not in tables:
        op.create_table(
            'messages',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('conversation_id', sa.Integer(), sa.ForeignKey('conversations.id'), nullable=False),
            sa.Column('sender_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('receiver_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('content', sa.Text(), nullable=False),
            sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.text('false')),
            sa.Column('read_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_messages_conversation_id', 'messages', ['conversation_id'])
        op.create_index('ix_messages_sender_id', 'messages', ['sender_id'])
        op.create_index('ix_messages_receiver_id', 'messages', ['receiver_id'])
        op.create_index('ix_messages_is_read', 'messages', ['is_read'])
        op.create_index('ix_messages_created_at', 'messages', ['created_at'])

    if 'listing_reports' not in tables:
        op.create_table(
            'listing_reports',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('listing_id', sa.Integer(), sa.ForeignKey('listings.id'), nullable=False),
            sa.Column('reporter_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('reason', sa.String(length=120), nullable=False),
            sa.Column('additional_info', sa.Text(), nullable=True),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
            sa.Column('admin_note', sa.Text(), nullable=True),
            sa.Column('last_updated_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
            sa.Column('status_updated_at', sa.DateTime(), nullable=True),
            sa.Column('action_taken', sa.String(length=255), nullable=True),
            sa.Column('notification_sent', sa.Boolean(), nullable=False, server_default=sa.text('false')),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_listing_reports_listing_id', 'listing_reports', ['listing_id'])
        op.create_index('ix_listing_reports_reporter_id', 'listing_reports', ['reporter_id'])
        op.create_index('ix_listing_reports_reason', 'listing_reports', ['reason'])
        op.create_index('ix_listing_reports_status', 'listing_reports', ['status'])
        op.create_index('ix_listing_reports_created_at', 'listing_reports', ['created_at'])

    try:
        idx = {i['name'] for i in insp.get_indexes('listing_reports')}
    except Exception:
        idx = set()
    if 'uq_listing_reports_active_reporter' not in idx:
        op.create_index(
            'uq_listing_reports_active_reporter',
            'listing_reports',
            ['listing_id', 'reporter_id'],
            unique=True,
            sqlite_where=sa.text(ACTIVE_REPORT_WHERE),
            postgresql_where=sa.text(ACTIVE_REPORT_WHERE),
        )

    if 'favorites' not in tables:
        op.create_table(
            'favorites',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('item_id', sa.Integer(), nullable=False),
            sa.Column('item_type', sa.String(length=16), nullable=False, server_default='listing'),
            sa.Column('listing_id', sa.Integer(), sa.ForeignKey('listings.id'), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('user_id', 'item_id', 'item_type', name='uq_favorites_user_item'),
        )
        op.create_index('ix_favorites_user_id', 'favorites', ['user_id'])
        op.create_index('ix_favorites_item_id', 'favorites', ['item_id'])
        op.create_index('ix_favorites_listing_id', 'favorites', ['listing_id'])
        op.create_index('ix_favorites_created_at', 'favorites', ['created_at'])


def downgrade():
    op.drop_table('favorites')
    op.drop_index('uq_listing_reports_active_reporter', table_name='listing_reports')
    op.drop_table('listing_reports')
    op.drop_table('messages')
    op.drop_table('conversations')
