"""Room inventory, holds, bookings and cancellation policies

Revision ID: 0001
Revises:
Create Date: 2026-02-01 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create cancellation_policies table
    op.create_table('cancellation_policies',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('hotel_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_refundable', sa.Boolean(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_cancellation_policies_hotel_id'), 'cancellation_policies', ['hotel_id'], unique=False)

    # Create cancellation_policy_tiers table
    op.create_table('cancellation_policy_tiers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('policy_id', sa.Integer(), nullable=False),
        sa.Column('days_before_check_in', sa.Integer(), nullable=False),
        sa.Column('refund_percentage', sa.Integer(), nullable=False),
        sa.CheckConstraint('days_before_check_in >= 0', name='ck_policy_tier_days_non_negative'),
        sa.CheckConstraint(
            'refund_percentage >= 0 AND refund_percentage <= 100',
            name='ck_policy_tier_refund_percentage_range'
        ),
        sa.ForeignKeyConstraint(['policy_id'], ['cancellation_policies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_cancellation_policy_tiers_policy_id'), 'cancellation_policy_tiers', ['policy_id'], unique=False)

    # Create room_types table
    op.create_table('room_types',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('hotel_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('total_units', sa.Integer(), nullable=False),
        sa.Column('base_rate', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('cancellation_policy_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('total_units >= 0', name='ck_room_type_total_units_non_negative'),
        sa.CheckConstraint('base_rate >= 0', name='ck_room_type_base_rate_non_negative'),
        sa.CheckConstraint('length(name) > 0', name='ck_room_type_name_not_empty'),
        sa.ForeignKeyConstraint(['cancellation_policy_id'], ['cancellation_policies.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_room_types_hotel_id'), 'room_types', ['hotel_id'], unique=False)

    # Create inventory_days table
    op.create_table('inventory_days',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('room_type_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('total_units', sa.Integer(), nullable=False),
        sa.Column('held_units', sa.Integer(), nullable=False),
        sa.Column('booked_units', sa.Integer(), nullable=False),
        sa.Column('rate', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('stop_sell', sa.Boolean(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.CheckConstraint('total_units >= 0', name='ck_inventory_day_total_non_negative'),
        sa.CheckConstraint('held_units >= 0', name='ck_inventory_day_held_non_negative'),
        sa.CheckConstraint('booked_units >= 0', name='ck_inventory_day_booked_non_negative'),
        sa.CheckConstraint('held_units + booked_units <= total_units', name='ck_inventory_day_within_capacity'),
        sa.CheckConstraint('rate IS NULL OR rate >= 0', name='ck_inventory_day_rate_non_negative'),
        sa.ForeignKeyConstraint(['room_type_id'], ['room_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_type_id', 'date', name='uq_inventory_day_room_type_date')
    )

    # Create inventory_adjustments table
    op.create_table('inventory_adjustments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('room_type_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=False),
        sa.Column('total_units_before', sa.Integer(), nullable=False),
        sa.Column('total_units_after', sa.Integer(), nullable=False),
        sa.Column('committed_units', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('delta != 0', name='ck_inventory_adjustment_delta_nonzero'),
        sa.CheckConstraint('length(reason) > 0', name='ck_inventory_adjustment_reason_not_empty'),
        sa.CheckConstraint('length(actor) > 0', name='ck_inventory_adjustment_actor_not_empty'),
        sa.CheckConstraint('total_units_after >= 0', name='ck_inventory_adjustment_total_after_non_negative'),
        sa.CheckConstraint(
            'total_units_after = total_units_before + delta',
            name='ck_inventory_adjustment_total_delta_consistency'
        ),
        sa.CheckConstraint(
            'committed_units <= total_units_after',
            name='ck_inventory_adjustment_committed_within_total'
        ),
        sa.ForeignKeyConstraint(['room_type_id'], ['room_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_inventory_adjustments_created_at'), 'inventory_adjustments', ['created_at'], unique=False)
    op.create_index(op.f('ix_inventory_adjustments_room_type_id'), 'inventory_adjustments', ['room_type_id'], unique=False)

    # Create booking_informations table
    op.create_table('booking_informations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('check_in', sa.Date(), nullable=False),
        sa.Column('check_out', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('principal_id', sa.String(length=128), nullable=True),
        sa.Column('guest_name', sa.String(length=255), nullable=False),
        sa.Column('guest_email', sa.String(length=255), nullable=False),
        sa.Column('guest_phone', sa.String(length=64), nullable=True),
        sa.Column('adults', sa.Integer(), nullable=False),
        sa.Column('children', sa.Integer(), nullable=False),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('coupon_code', sa.String(length=64), nullable=True),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('tax_rate', sa.Numeric(precision=7, scale=4), nullable=False),
        sa.Column('tax_inclusive', sa.Boolean(), nullable=False),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('paid_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('cancellation_policy_id', sa.Integer(), nullable=True),
        sa.Column('refund_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('refund_percentage', sa.Integer(), nullable=True),
        sa.Column('refund_status', sa.String(length=20), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('check_out > check_in', name='ck_booking_dates_ordered'),
        sa.CheckConstraint('subtotal >= 0', name='ck_booking_subtotal_non_negative'),
        sa.CheckConstraint('discount_amount >= 0', name='ck_booking_discount_non_negative'),
        sa.CheckConstraint('tax_amount >= 0', name='ck_booking_tax_non_negative'),
        sa.CheckConstraint('total_amount >= 0', name='ck_booking_total_non_negative'),
        sa.CheckConstraint('adults >= 1', name='ck_booking_adults_positive'),
        sa.CheckConstraint('children >= 0', name='ck_booking_children_non_negative'),
        sa.CheckConstraint(
            'refund_percentage IS NULL OR (refund_percentage >= 0 AND refund_percentage <= 100)',
            name='ck_booking_refund_percentage_range'
        ),
        sa.ForeignKeyConstraint(['cancellation_policy_id'], ['cancellation_policies.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code')
    )
    op.create_index(op.f('ix_booking_informations_check_in'), 'booking_informations', ['check_in'], unique=False)
    op.create_index(op.f('ix_booking_informations_principal_id'), 'booking_informations', ['principal_id'], unique=False)
    op.create_index(op.f('ix_booking_informations_status'), 'booking_informations', ['status'], unique=False)

    # Create booking_room_types table
    op.create_table('booking_room_types',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('room_type_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('occupancy', sa.Integer(), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_booking_room_type_quantity_positive'),
        sa.CheckConstraint('unit_price >= 0', name='ck_booking_room_type_unit_price_non_negative'),
        sa.CheckConstraint('subtotal >= 0', name='ck_booking_room_type_subtotal_non_negative'),
        sa.ForeignKeyConstraint(['booking_id'], ['booking_informations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['room_type_id'], ['room_types.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_room_types_booking_id'), 'booking_room_types', ['booking_id'], unique=False)

    # Create booking_audit_logs table
    op.create_table('booking_audit_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('actor', sa.String(length=128), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['booking_informations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_audit_logs_booking_id'), 'booking_audit_logs', ['booking_id'], unique=False)

    # Create room_holds table
    op.create_table('room_holds',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('room_type_id', sa.Integer(), nullable=False),
        sa.Column('check_in', sa.Date(), nullable=False),
        sa.Column('check_out', sa.Date(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('principal_id', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('extension_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('booking_id', sa.Uuid(), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_room_hold_quantity_positive'),
        sa.CheckConstraint('check_out > check_in', name='ck_room_hold_dates_ordered'),
        sa.CheckConstraint('extension_count >= 0', name='ck_room_hold_extensions_non_negative'),
        sa.ForeignKeyConstraint(['booking_id'], ['booking_informations.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['room_type_id'], ['room_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token')
    )
    op.create_index(op.f('ix_room_holds_principal_id'), 'room_holds', ['principal_id'], unique=False)
    op.create_index(
        'ix_room_holds_room_type_status_expiry',
        'room_holds',
        ['room_type_id', 'status', 'expires_at'],
        unique=False
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('room_holds')
    op.drop_table('booking_audit_logs')
    op.drop_table('booking_room_types')
    op.drop_table('booking_informations')
    op.drop_table('inventory_adjustments')
    op.drop_table('inventory_days')
    op.drop_table('room_types')
    op.drop_table('cancellation_policy_tiers')
    op.drop_table('cancellation_policies')
