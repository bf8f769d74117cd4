"""core marketplace schema: users, categories, listings, audit tables

Revision ID: 3c1d2e4f5a60
Revises:
Create Date: 2026-09-28 10:12:41.118204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c1d2e4f5a60'
down_revision = None
branch_labels = None
depends_on = None


def _indexes(insp, table):
    try:
        return {i['name'] for i in insp.get_indexes(table)}
    except Exception:
        return set()


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    tables = set(insp.get_table_names())

    if 'users' not in tables:
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('password_hash', sa.String(length=255), nullable=False),
            sa.Column('first_name', sa.String(length=80), nullable=False, server_default=''),
            sa.Column('last_name', sa.String(length=80), nullable=False, server_default=''),
            sa.Column('phone', sa.String(length=32), nullable=True),
            sa.Column('profile_image', sa.String(length=1024), nullable=True),
            sa.Column('role', sa.String(length=16), nullable=False, server_default='user'),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
            sa.Column('reset_password_token', sa.String(length=255), nullable=True),
            sa.Column('reset_password_expires', sa.DateTime(), nullable=True),
            sa.Column('last_login', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )
    idx = _indexes(insp, 'users') if 'users' in tables else set()
    if 'ix_users_email' not in idx:
        op.create_index('ix_users_email', 'users', ['email'], unique=True)
    if 'ix_users_role' not in idx:
        op.create_index('ix_users_role', 'users', ['role'])
    if 'ix_users_status' not in idx:
        op.create_index('ix_users_status', 'users', ['status'])

    if 'categories' not in tables:
        op.create_table(
            'categories',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=120), nullable=False),
            sa.Column('slug', sa.String(length=140), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('parent_id', sa.Integer(), sa.ForeignKey('categories.id'), nullable=True),
            sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
            sa.Column('icon', sa.String(length=255), nullable=True),
            sa.Column('image', sa.String(length=1024), nullable=True),
            sa.Column('meta_title', sa.String(length=255), nullable=True),
            sa.Column('meta_description', sa.Text(), nullable=True),
            sa.Column('translations_json', sa.Text(), nullable=True),
            sa.Column('attributes_json', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )
    idx = _indexes(insp, 'categories') if 'categories' in tables else set()
    if 'ix_categories_slug' not in idx:
        op.create_index('ix_categories_slug', 'categories', ['slug'], unique=True)
    if 'ix_categories_parent_id' not in idx:
        op.create_index('ix_categories_parent_id', 'categories', ['parent_id'])

    if 'listings' not in tables:
        op.create_table(
            'listings',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id'), nullable=True),
            sa.Column('title', sa.String(length=100), nullable=False),
            sa.Column('slug', sa.String(length=160), nullable=False),
            sa.Column('description', sa.Text(), nullable=False),
            sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
            sa.Column('currency', sa.String(length=3), nullable=False, server_default='AZN'),
            sa.Column('condition', sa.String(length=16), nullable=True),
            sa.Column('location', sa.String(length=255), nullable=False),
            sa.Column('images_json', sa.Text(), nullable=True),
            sa.Column('featured_image', sa.String(length=1024), nullable=True),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
            sa.Column('rejection_reason', sa.Text(), nullable=True),
            sa.Column('is_promoted', sa.Boolean(), nullable=False, server_default=sa.text('false')),
            sa.Column('promotion_end_date', sa.DateTime(), nullable=True),
            sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.text('false')),
            sa.Column('featured_until', sa.DateTime(), nullable=True),
            sa.Column('views', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('contact_phone', sa.String(length=32), nullable=True),
            sa.Column('contact_email', sa.String(length=255), nullable=True),
            sa.Column('contact_method', sa.String(length=8), nullable=False, server_default='both'),
            sa.Column('attributes_json', sa.Text(), nullable=True),
            sa.Column('expiry_date', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )
    idx = _indexes(insp, 'listings') if 'listings' in tables else set()
    for name, cols, unique in (
        ('ix_listings_slug', ['slug'], True),
        ('ix_listings_user_id', ['user_id'], False),
        ('ix_listings_category_id', ['category_id'], False),
        ('ix_listings_status', ['status'], False),
        ('ix_listings_is_promoted', ['is_promoted'], False),
        ('ix_listings_is_featured', ['is_featured'], False),
        ('ix_listings_featured_until', ['featured_until'], False),
        ('ix_listings_created_at', ['created_at'], False),
    ):
        if name not in idx:
            op.create_index(name, 'listings', cols, unique=unique)

    if 'platform_events' not in tables:
        op.create_table(
            'platform_events',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('event_type', sa.String(length=80), nullable=False),
            sa.Column('actor_user_id', sa.Integer(), nullable=True),
            sa.Column('subject_type', sa.String(length=80), nullable=True),
            sa.Column('subject_id', sa.String(length=120), nullable=True),
            sa.Column('request_id', sa.String(length=80), nullable=True),
            sa.Column('severity', sa.String(length=16), nullable=False, server_default='INFO'),
            sa.Column('metadata_json', sa.Text(), nullable=True),
        )
        op.create_index('ix_platform_events_created_at', 'platform_events', ['created_at'])
        op.create_index('ix_platform_events_event_type', 'platform_events', ['event_type'])
        op.create_index('ix_platform_events_subject', 'platform_events', ['subject_type', 'subject_id'])

    if 'job_runs' not in tables:
        op.create_table(
            'job_runs',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('job_name', sa.String(length=64), nullable=False),
            sa.Column('ran_at', sa.DateTime(), nullable=False),
            sa.Column('ok', sa.Boolean(), nullable=False, server_default=sa.text('true')),
            sa.Column('duration_ms', sa.Integer(), nullable=True),
            sa.Column('affected', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('error', sa.Text(), nullable=True),
        )
        op.create_index('ix_job_runs_job_name', 'job_runs', ['job_name'])
        op.create_index('ix_job_runs_ran_at', 'job_runs', ['ran_at'])


def downgrade():
    op.drop_table('job_runs')
    op.drop_table('platform_events')
    op.drop_table('listings')
    op.drop_table('categories')
    op.drop_table('users')
