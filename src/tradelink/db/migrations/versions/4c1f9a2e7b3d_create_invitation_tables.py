"""Create invitation claim tables

Introduces invitations (source of truth, looked up by claim token and by
contractor email), the contractor-side mirror, contractor profiles with their
stats block, the contractor CRM, and the homeowner's properties and
inventory records that claims import into.

Revision ID: 4c1f9a2e7b3d
Revises:
Create Date: 2026-09-14 10:12:41.381204
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# Alembic identifiers
revision = '4c1f9a2e7b3d'
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_by_user_id', sa.String(length=255), nullable=True),
        sa.Column('updated_by_user_id', sa.String(length=255), nullable=True),
    ]


def upgrade():
    # --- invitations -------------------------------------------------------
    op.create_table(
        'invitations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('claim_token', sa.String(length=255), nullable=False),

        # contractor_id stays NULL until the contractor has an account
        sa.Column('contractor_id', sa.String(length=255), nullable=True),
        sa.Column('contractor_email', sa.String(), nullable=True),
        sa.Column('recipient_email', sa.String(), nullable=True),

        sa.Column('status', sa.String(length=50), nullable=False, server_default='pending'),
        sa.Column('records', sa.JSON(), nullable=False),
        sa.Column('contractor_info', sa.JSON(), nullable=False),

        sa.Column('claimed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('claimed_by', sa.String(length=255), nullable=True),
        sa.Column('linked_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_audit_columns(),
    )
    op.create_index('ix_invitations_claim_token', 'invitations', ['claim_token'], unique=True)
    op.create_index('ix_invitations_contractor_id', 'invitations', ['contractor_id'])
    op.create_index('ix_invitations_contractor_email', 'invitations', ['contractor_email'])
    op.create_index(
        'ix_invitations_contractor_email_contractor_id',
        'invitations',
        ['contractor_email', 'contractor_id'],
    )
    op.create_index('ix_invitations_status', 'invitations', ['status'])

    # --- contractor_invitations (mirror, same id as the invitation) --------
    op.create_table(
        'contractor_invitations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('contractor_id', sa.String(length=255), nullable=False),
        sa.Column('claim_token', sa.String(length=255), nullable=False),
        sa.Column('recipient_email', sa.String(), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='pending'),
        sa.Column('claimed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('claimed_by', sa.String(length=255), nullable=True),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('customer_property_name', sa.String(), nullable=True),
        *_audit_columns(),
    )
    op.create_index('ix_contractor_invitations_contractor_id', 'contractor_invitations', ['contractor_id'])
    op.create_index(
        'ix_contractor_invitations_contractor_status',
        'contractor_invitations',
        ['contractor_id', 'status'],
    )

    # --- contractors -------------------------------------------------------
    op.create_table(
        'contractors',
        sa.Column('id', sa.String(length=255), primary_key=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('company_name', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('total_invitations', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_customers', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('claim_rate', sa.Float(), nullable=False, server_default='0'),
        *_audit_columns(),
    )
    op.create_index('ix_contractors_email', 'contractors', ['email'])

    # --- contractor_customers ----------------------------------------------
    op.create_table(
        'contractor_customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('contractor_id', sa.String(length=255), nullable=False),
        sa.Column('claimant_id', sa.String(length=255), nullable=False),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('property_name', sa.String(), nullable=True),
        sa.Column('total_jobs', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spend', sa.Float(), nullable=False, server_default='0'),
        sa.Column('last_contact', sa.TIMESTAMP(timezone=True), nullable=True),
        *_audit_columns(),
    )
    op.create_index('ix_contractor_customers_contractor_id', 'contractor_customers', ['contractor_id'])
    op.create_index(
        'ix_contractor_customers_contractor_claimant',
        'contractor_customers',
        ['contractor_id', 'claimant_id'],
        unique=True,
    )

    # --- home_properties ---------------------------------------------------
    op.create_table(
        'home_properties',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('address', sa.String(), nullable=True),
        *_audit_columns(),
    )
    op.create_index('ix_home_properties_owner_id', 'home_properties', ['owner_id'])

    # --- inventory_records -------------------------------------------------
    op.create_table(
        'inventory_records',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('source_invitation_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('item', sa.String(), nullable=False),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('area', sa.String(), nullable=True),
        sa.Column('brand', sa.String(), nullable=True),
        sa.Column('model', sa.String(), nullable=True),
        sa.Column('serial_number', sa.String(), nullable=True),
        sa.Column('date_installed', sa.String(), nullable=True),
        sa.Column('cost', sa.Float(), nullable=True),
        sa.Column('labor_cost', sa.Float(), nullable=True),
        sa.Column('parts_cost', sa.Float(), nullable=True),
        sa.Column('warranty', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('maintenance_frequency', sa.String(), nullable=True),
        sa.Column('maintenance_tasks', sa.JSON(), nullable=False),
        sa.Column('attachments', sa.JSON(), nullable=False),
        sa.Column('contractor', sa.String(), nullable=True),
        sa.Column('contractor_phone', sa.String(), nullable=True),
        sa.Column('contractor_email', sa.String(), nullable=True),
        sa.Column('imported_from', sa.String(length=50), nullable=True),
        sa.Column('imported_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['property_id'], ['home_properties.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_inventory_records_owner_id', 'inventory_records', ['owner_id'])
    op.create_index('ix_inventory_records_property_id', 'inventory_records', ['property_id'])
    op.create_index(
        'ix_inventory_records_owner_source',
        'inventory_records',
        ['owner_id', 'source_invitation_id'],
    )


def downgrade():
    # Reverse all operations in upgrade()
    op.drop_index('ix_inventory_records_owner_source', table_name='inventory_records')
    op.drop_index('ix_inventory_records_property_id', table_name='inventory_records')
    op.drop_index('ix_inventory_records_owner_id', table_name='inventory_records')
    op.drop_table('inventory_records')

    op.drop_index('ix_home_properties_owner_id', table_name='home_properties')
    op.drop_table('home_properties')

    op.drop_index('ix_contractor_customers_contractor_claimant', table_name='contractor_customers')
    op.drop_index('ix_contractor_customers_contractor_id', table_name='contractor_customers')
    op.drop_table('contractor_customers')

    op.drop_index('ix_contractors_email', table_name='contractors')
    op.drop_table('contractors')

    op.drop_index('ix_contractor_invitations_contractor_status', table_name='contractor_invitations')
    op.drop_index('ix_contractor_invitations_contractor_id', table_name='contractor_invitations')
    op.drop_table('contractor_invitations')

    op.drop_index('ix_invitations_status', table_name='invitations')
    op.drop_index('ix_invitations_contractor_email_contractor_id', table_name='invitations')
    op.drop_index('ix_invitations_contractor_email', table_name='invitations')
    op.drop_index('ix_invitations_contractor_id', table_name='invitations')
    op.drop_index('ix_invitations_claim_token', table_name='invitations')
    op.drop_table('invitations')
