"""Create inventory audit schema

Revision ID: 001_audit_schema
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers
revision = '001_audit_schema'
down_revision = None
branch_labels = None
depends_on = None


def _id_column():
    return sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=nullable)


def upgrade():
    """Create reference tables (users, catalog, locations, stock) and audit tables"""

    # ====================
    # USERS
    # ====================
    op.create_table(
        'users',
        _id_column(),
        sa.Column('email', sa.String(255), unique=True, nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('employee_code', sa.String(50), unique=True, nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )
    op.create_index('ix_users_email', 'users', ['email'])

    # ====================
    # WAREHOUSES & LOCATIONS
    # ====================
    op.create_table(
        'warehouses',
        _id_column(),
        sa.Column('code', sa.String(20), unique=True, nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )
    op.create_index('ix_warehouses_code', 'warehouses', ['code'])

    op.create_table(
        'warehouse_zones',
        _id_column(),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('zone_code', sa.String(20), nullable=False, comment='Zone code e.g., A, B, RCV, COLD'),
        sa.Column('zone_name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('sort_order', sa.Integer, server_default='0', nullable=False),
        _timestamp('created_at'),
        sa.UniqueConstraint('warehouse_id', 'zone_code', name='uq_warehouse_zone_code'),
    )
    op.create_index('ix_warehouse_zones_warehouse_id', 'warehouse_zones', ['warehouse_id'])
    op.create_index('ix_warehouse_zones_zone_code', 'warehouse_zones', ['zone_code'])

    op.create_table(
        'warehouse_aisles',
        _id_column(),
        sa.Column('zone_id', UUID(as_uuid=True), sa.ForeignKey('warehouse_zones.id', ondelete='CASCADE'), nullable=False),
        sa.Column('aisle_code', sa.String(20), nullable=False),
        sa.UniqueConstraint('zone_id', 'aisle_code', name='uq_zone_aisle_code'),
    )
    op.create_index('ix_warehouse_aisles_zone_id', 'warehouse_aisles', ['zone_id'])

    op.create_table(
        'warehouse_shelves',
        _id_column(),
        sa.Column('aisle_id', UUID(as_uuid=True), sa.ForeignKey('warehouse_aisles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('shelf_code', sa.String(20), nullable=False),
        sa.UniqueConstraint('aisle_id', 'shelf_code', name='uq_aisle_shelf_code'),
    )
    op.create_index('ix_warehouse_shelves_aisle_id', 'warehouse_shelves', ['aisle_id'])

    op.create_table(
        'warehouse_bins',
        _id_column(),
        sa.Column('shelf_id', UUID(as_uuid=True), sa.ForeignKey('warehouse_shelves.id', ondelete='CASCADE'), nullable=False),
        sa.Column('bin_code', sa.String(50), nullable=False, comment='Bin code e.g., A1-B2-C3'),
        sa.Column('barcode', sa.String(100), unique=True, nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.UniqueConstraint('shelf_id', 'bin_code', name='uq_shelf_bin_code'),
    )
    op.create_index('ix_warehouse_bins_shelf_id', 'warehouse_bins', ['shelf_id'])
    op.create_index('ix_warehouse_bins_bin_code', 'warehouse_bins', ['bin_code'])

    # ====================
    # CATALOG & STOCK
    # ====================
    op.create_table(
        'categories',
        _id_column(),
        sa.Column('name', sa.String(200), nullable=False),
    )

    op.create_table(
        'products',
        _id_column(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sku', sa.String(50), unique=True, nullable=False),
        sa.Column('category_id', UUID(as_uuid=True), sa.ForeignKey('categories.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('cost_price', sa.Numeric(12, 2), nullable=True, comment='Cost price (internal)'),
        sa.Column('retail_price', sa.Numeric(12, 2), nullable=True, comment='Selling price to customer'),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        _timestamp('created_at'),
    )
    op.create_index('ix_products_sku', 'products', ['sku'])

    op.create_table(
        'inventory_items',
        _id_column(),
        sa.Column('product_id', UUID(as_uuid=True), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id'), nullable=True),
        sa.Column('store_id', UUID(as_uuid=True), nullable=True),
        sa.Column('bin_id', UUID(as_uuid=True), sa.ForeignKey('warehouse_bins.id'), nullable=True),
        sa.Column('quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('cost_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.String(50), server_default='AVAILABLE', nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at', nullable=True),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_item_quantity_non_negative'),
    )
    op.create_index('ix_inventory_items_product_id', 'inventory_items', ['product_id'])
    op.create_index('ix_inventory_items_warehouse_id', 'inventory_items', ['warehouse_id'])
    op.create_index('ix_inventory_items_store_id', 'inventory_items', ['store_id'])
    op.create_index('ix_inventory_items_bin_id', 'inventory_items', ['bin_id'])
    op.create_index('ix_inventory_items_status', 'inventory_items', ['status'])

    # ====================
    # AUDITS
    # ====================
    op.create_table(
        'audits',
        _id_column(),
        sa.Column('reference_number', sa.String(30), unique=True, nullable=False),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('status', sa.String(20), server_default='PLANNED', nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_by_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )
    op.create_index('ix_audits_reference_number', 'audits', ['reference_number'])
    op.create_index('idx_audit_warehouse_status', 'audits', ['warehouse_id', 'status'])
    op.create_index('idx_audit_created_at', 'audits', ['created_at'])

    op.create_table(
        'audit_assignments',
        _id_column(),
        sa.Column('audit_id', UUID(as_uuid=True), sa.ForeignKey('audits.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('assigned_zones', sa.Text, nullable=True),
        _timestamp('created_at'),
    )
    op.create_index('idx_audit_assignment_audit', 'audit_assignments', ['audit_id'])

    op.create_table(
        'audit_items',
        _id_column(),
        sa.Column('audit_id', UUID(as_uuid=True), sa.ForeignKey('audits.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('inventory_item_id', UUID(as_uuid=True), sa.ForeignKey('inventory_items.id'), nullable=False),
        sa.Column('expected_quantity', sa.Integer, nullable=False),
        sa.Column('actual_quantity', sa.Integer, nullable=True),
        sa.Column('variance', sa.Integer, nullable=True),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('counted_by_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('counted_at', sa.DateTime(timezone=True), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )
    op.create_index('idx_audit_item_audit_status', 'audit_items', ['audit_id', 'status'])


def downgrade():
    """Drop audit and reference tables"""
    op.drop_table('audit_items')
    op.drop_table('audit_assignments')
    op.drop_table('audits')
    op.drop_table('inventory_items')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('warehouse_bins')
    op.drop_table('warehouse_shelves')
    op.drop_table('warehouse_aisles')
    op.drop_table('warehouse_zones')
    op.drop_table('warehouses')
    op.drop_table('users')
