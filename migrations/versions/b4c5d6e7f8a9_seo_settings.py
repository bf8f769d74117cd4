"""seo settings

Revision ID: b4c5d6e7f8a9
Revises: 7e8f9a0b1c2d
Create Date: 2026-10-19 10:12:44.109284

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b4c5d6e7f8a9'
down_revision = '7e8f9a0b1c2d'
branch_labels = None
depends_on = None


PAGE_IDENTIFIER_SET = "page_identifier IS NOT NULL"


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    tables = set(insp.get_table_names())

    if 'seo_settings' not in tables:
        op.create_table(
            'seo_settings',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('page_type', sa.String(length=32), nullable=False),
            sa.Column('page_identifier', sa.String(length=255), nullable=True),
            sa.Column('title', sa.String(length=70), nullable=True),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('keywords', sa.String(length=500), nullable=True),
            sa.Column('og_title', sa.String(length=70), nullable=True),
            sa.Column('og_description', sa.Text(), nullable=True),
            sa.Column('og_image', sa.String(length=1024), nullable=True),
            sa.Column('twitter_title', sa.String(length=70), nullable=True),
            sa.Column('twitter_description', sa.Text(), nullable=True),
            sa.Column('twitter_image', sa.String(length=1024), nullable=True),
            sa.Column('canonical', sa.String(length=1024), nullable=True),
            sa.Column('robots_directives', sa.String(length=255), nullable=True),
            sa.Column('structured_data_json', sa.Text(), nullable=True),
            sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_seo_settings_page_type', 'seo_settings', ['page_type'])

    try:
        idx = {i['name'] for i in insp.get_indexes('seo_settings')}
    except Exception:
        idx = set()
    if 'uq_seo_settings_page' not in idx:
        op.create_index(
            'uq_seo_settings_page',
            'seo_settings',
            ['page_type', 'page_identifier'],
            unique=True,
            sqlite_where=sa.text(PAGE_IDENTIFIER_SET),
            postgresql_where=sa.text(PAGE_IDENTIFIER_SET),
        )


def downgrade():
    op.drop_index('uq_seo_settings_page', table_name='seo_settings')
    op.drop_table('seo_settings')
