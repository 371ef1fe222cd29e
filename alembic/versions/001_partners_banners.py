"""Create partners and banners tables

Revision ID: 001_partners_banners
Revises:
Create Date: 2026-10-18

- partners: brand profile plus stored asset URLs (JSON arrays)
- banners: generated banners, legacy desktop/mobile pairs and enhanced rows
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001_partners_banners'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'partners',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('regions', sa.JSON(), nullable=True),
        sa.Column('partner_url', sa.String(), nullable=True),
        sa.Column('benefits_description', sa.String(), nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('logo_url', sa.String(), nullable=True),
        sa.Column('brand_manual_url', sa.String(), nullable=True),
        sa.Column('reference_banners_urls', sa.JSON(), nullable=True),
        sa.Column('product_photos_urls', sa.JSON(), nullable=True),
        sa.Column('reference_style_analysis', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_partners_name', 'partners', ['name'])

    op.create_table(
        'banners',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column(
            'partner_id',
            sa.String(),
            sa.ForeignKey('partners.id', ondelete='CASCADE'),
            nullable=False
        ),
        sa.Column('image_url', sa.String(), nullable=False),
        sa.Column('image_type', sa.String(), nullable=False, server_default='desktop'),
        sa.Column('prompt_used', sa.String(), nullable=True),
        sa.Column('banner_title', sa.String(), nullable=True),
        sa.Column('product_description', sa.String(), nullable=True),
        sa.Column('main_text', sa.String(), nullable=True),
        sa.Column('description_text', sa.String(), nullable=True),
        sa.Column('cta_text', sa.String(), nullable=True),
        sa.Column('discount_percentage', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_banners_partner_id', 'banners', ['partner_id'])
    op.create_index('ix_banners_created_at', 'banners', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_banners_created_at', table_name='banners')
    op.drop_index('ix_banners_partner_id', table_name='banners')
    op.drop_table('banners')
    op.drop_index('ix_partners_name', table_name='partners')
    op.drop_table('partners')
