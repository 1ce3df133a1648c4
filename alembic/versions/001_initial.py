"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-01-15 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Equality operators on uuid inside a GiST exclusion constraint
    op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')

    # Create tenants table
    op.create_table(
        'tenants',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), unique=True, nullable=False),
        sa.Column('status', sa.String(20), server_default='active'),
        sa.Column('line_config', postgresql.JSONB(), server_default='{}'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # Create stores table
    op.create_table(
        'stores',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), server_default='active'),
        sa.Column('timezone', sa.String(50)),
        sa.Column('slot_duration', sa.Integer()),
        sa.Column('advance_booking_days', sa.Integer()),
        sa.Column('cancel_deadline_hours', sa.Integer()),
        sa.Column('line_config', postgresql.JSONB(), server_default='{}'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_stores_tenant_id', 'stores', ['tenant_id'])

    # Create practitioners table
    op.create_table(
        'practitioners',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('nomination_fee', sa.Integer(), server_default='0'),
        sa.Column('store_ids', postgresql.JSONB(), server_default='[]'),
        sa.Column('line_config', postgresql.JSONB(), server_default='{}'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_practitioners_tenant_id', 'practitioners', ['tenant_id'])

    # Create customers table
    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(20)),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_customers_tenant_id', 'customers', ['tenant_id'])

    # Create menus table
    op.create_table(
        'menus',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('category', sa.String(100)),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_menus_tenant_id', 'menus', ['tenant_id'])

    # Create menu_options table
    op.create_table(
        'menu_options',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('duration', sa.Integer(), server_default='0'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_menu_options_tenant_id', 'menu_options', ['tenant_id'])

    # Create reservations table
    op.create_table(
        'reservations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('store_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('stores.id')),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('customer_name', sa.String(100)),
        sa.Column('customer_phone', sa.String(20)),
        sa.Column('practitioner_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('practitioners.id'), nullable=False),
        sa.Column('practitioner_name', sa.String(100)),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('timezone', sa.String(50), nullable=False),
        sa.Column('subtotal', sa.Integer(), server_default='0'),
        sa.Column('option_total', sa.Integer(), server_default='0'),
        sa.Column('nomination_fee', sa.Integer(), server_default='0'),
        sa.Column('discount', sa.Integer(), server_default='0'),
        sa.Column('total_price', sa.Integer(), server_default='0'),
        sa.Column('duration', sa.Integer(), server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('source', sa.String(20), server_default='line'),
        sa.Column('customer_note', sa.Text()),
        sa.Column('staff_note', sa.Text()),
        sa.Column('canceled_at', sa.DateTime()),
        sa.Column('cancel_reason', sa.Text()),
        sa.Column('reminder_sent_at', sa.DateTime()),
        sa.Column('google_calendar_id', sa.String(255)),
        sa.Column('google_calendar_event_id', sa.String(255)),
        sa.Column('external_reservation_id', sa.String(255)),
        sa.Column('idempotency_key', sa.String(128)),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('period_end > period_start', name='ck_reservations_period_order'),
        sa.UniqueConstraint('tenant_id', 'idempotency_key', name='uq_reservations_idempotency_key'),
    )
    op.create_index('ix_reservations_tenant_date', 'reservations', ['tenant_id', 'date'])
    op.create_index(
        'ix_reservations_practitioner_period',
        'reservations',
        ['tenant_id', 'practitioner_id', 'period_start'],
    )

    # No two active reservations of one practitioner may share an instant
    op.execute(
        """
        ALTER TABLE reservations
        ADD CONSTRAINT ex_reservations_no_overlap
        EXCLUDE USING gist (
            tenant_id WITH =,
            practitioner_id WITH =,
            tsrange(period_start, period_end, '[)') WITH &&
        )
        WHERE (status NOT IN ('canceled', 'no_show'))
        """
    )

    # Create reservation item snapshot tables
    op.create_table(
        'reservation_menus',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column(
            'reservation_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('reservations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('menu_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('menu_name', sa.String(100), nullable=False),
        sa.Column('menu_price', sa.Integer(), nullable=False),
        sa.Column('menu_duration', sa.Integer(), nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0'),
        sa.Column('is_main', sa.Boolean(), server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_reservation_menus_reservation_id', 'reservation_menus', ['reservation_id'])

    op.create_table(
        'reservation_options',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column(
            'reservation_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('reservations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('option_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('option_name', sa.String(100), nullable=False),
        sa.Column('option_price', sa.Integer(), nullable=False),
        sa.Column('option_duration', sa.Integer(), server_default='0'),
        sa.Column('sort_order', sa.Integer(), server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_reservation_options_reservation_id', 'reservation_options', ['reservation_id'])

    # Create booking_link_tokens table
    op.create_table(
        'booking_link_tokens',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('store_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('stores.id')),
        sa.Column('practitioner_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('practitioners.id'), nullable=False),
        sa.Column('token', sa.String(128), unique=True, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('created_by', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('last_used_at', sa.DateTime()),
        sa.Column('expires_at', sa.DateTime()),
        sa.CheckConstraint("status IN ('active', 'revoked')", name='ck_booking_link_tokens_status'),
    )
    op.create_index(
        'ix_booking_link_tokens_practitioner',
        'booking_link_tokens',
        ['tenant_id', 'practitioner_id', 'created_at'],
    )

    # Create audit_logs table
    op.create_table(
        'audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('actor_id', sa.String(255)),
        sa.Column('actor_type', sa.String(50)),
        sa.Column('actor_name', sa.String(255)),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('resource_type', sa.String(50)),
        sa.Column('resource_id', postgresql.UUID(as_uuid=True)),
        sa.Column('data_json', postgresql.JSONB()),
        sa.Column('ip_address', sa.String(50)),
        sa.Column('user_agent', sa.Text()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_tenant_id', 'audit_logs', ['tenant_id'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('booking_link_tokens')
    op.drop_table('reservation_options')
    op.drop_table('reservation_menus')
    op.drop_table('reservations')
    op.drop_table('menu_options')
    op.drop_table('menus')
    op.drop_table('customers')
    op.drop_table('practitioners')
    op.drop_table('stores')
    op.drop_table('tenants')
