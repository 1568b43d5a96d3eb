"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Vendors table
    op.create_table(
        'vendors',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('slug', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=128), nullable=False),
        sa.Column('short_code', sa.String(length=32), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=True),
        sa.Column('image_quality', sa.String(length=8), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False),
        sa.Column('transport', sa.String(length=16), nullable=False),
        sa.Column('default_retail_vertical_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
        sa.UniqueConstraint('priority')
    )

    # Per-vertical vendor ranks
    op.create_table(
        'vendor_vertical_ranks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('retail_vertical_id', sa.Integer(), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('vendor_id', 'retail_vertical_id', name='uq_vertical_rank_vendor'),
        sa.UniqueConstraint('retail_vertical_id', 'priority', name='uq_vertical_rank_priority')
    )

    # Canonical products table
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('upc', sa.String(length=32), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('brand', sa.String(length=128), nullable=True),
        sa.Column('model', sa.String(length=256), nullable=True),
        sa.Column('manufacturer_part_number', sa.String(length=128), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('caliber', sa.String(length=128), nullable=True),
        sa.Column('barrel_length', sa.String(length=64), nullable=True),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('subcategory1', sa.String(length=128), nullable=True),
        sa.Column('subcategory2', sa.String(length=128), nullable=True),
        sa.Column('subcategory3', sa.String(length=128), nullable=True),
        sa.Column('specifications', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('image_source', sa.String(length=64), nullable=True),
        sa.Column('source', sa.String(length=64), nullable=True),
        sa.Column('priority_source', sa.String(length=64), nullable=True),
        sa.Column('priority_calculated_at', sa.DateTime(), nullable=True),
        sa.Column('retail_vertical_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('upc')
    )
    op.create_index('ix_products_retail_vertical_id', 'products', ['retail_vertical_id'])

    # Vendor SKU and pricing per product
    op.create_table(
        'vendor_product_mappings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('vendor_slug', sa.String(length=64), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('vendor_sku', sa.String(length=128), nullable=True),
        sa.Column('cost', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('map_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('msrp', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('price_updated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['vendor_slug'], ['vendors.slug'], ),
        sa.UniqueConstraint(
            'product_id', 'vendor_slug', 'company_id',
            name='uq_vendor_mapping_product_vendor_company'
        )
    )

    # Sync runs table
    op.create_table(
        'sync_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('vendor_slug', sa.String(length=64), nullable=False),
        sa.Column('mode', sa.String(length=16), nullable=False),
        sa.Column('trigger', sa.String(length=16), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('total_records', sa.Integer(), nullable=False),
        sa.Column('created_count', sa.Integer(), nullable=False),
        sa.Column('updated_count', sa.Integer(), nullable=False),
        sa.Column('unchanged_count', sa.Integer(), nullable=False),
        sa.Column('skipped_count', sa.Integer(), nullable=False),
        sa.Column('failed_count', sa.Integer(), nullable=False),
        sa.Column('images_added', sa.Integer(), nullable=False),
        sa.Column('images_upgraded', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('error_kind', sa.String(length=32), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sync_runs_vendor_slug', 'sync_runs', ['vendor_slug'])
    # At most one in_progress run per vendor
    op.create_index(
        'uq_sync_runs_one_in_progress',
        'sync_runs',
        ['vendor_slug'],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'")
    )

    # Encrypted vendor credentials
    op.create_table(
        'vendor_credentials',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('vendor_slug', sa.String(length=64), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('secret', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['vendor_slug'], ['vendors.slug'], ondelete='CASCADE'),
        sa.UniqueConstraint('vendor_slug', 'company_id', name='uq_vendor_credential_vendor_company')
    )


def downgrade() -> None:
    op.drop_table('vendor_credentials')
    op.drop_index('uq_sync_runs_one_in_progress', table_name='sync_runs')
    op.drop_index('ix_sync_runs_vendor_slug', table_name='sync_runs')
    op.drop_table('sync_runs')
    op.drop_table('vendor_product_mappings')
    op.drop_index('ix_products_retail_vertical_id', table_name='products')
    op.drop_table('products')
    op.drop_table('vendor_vertical_ranks')
    op.drop_table('vendors')
