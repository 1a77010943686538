"""Initial finops inbox schema

Revision ID: 0001
Revises:
Create Date: 2026-01-05 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create inbox, ledger and reference tables."""

    # Reference tables
    op.create_table('clients',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('slug', sa.Text()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('contract_start_date', sa.Date()),
        sa.Column('contract_end_date', sa.Date()),
        sa.Column('monthly_retainer', sa.Numeric(12, 2)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index('ix_clients_name', 'clients', ['name'])

    op.create_table('team_members',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('role', sa.Text()),
        sa.Column('employment_type', sa.Text(), nullable=False, server_default='fte'),
        sa.Column('default_monthly_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.Text(), nullable=False, server_default='GBP'),
        sa.Column('supplier_names', sa.JSON()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notes', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('software_items',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('vendor', sa.Text()),
        sa.Column('vendor_aliases', sa.JSON()),
        sa.Column('default_monthly_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('allocation_percent', sa.Numeric(5, 2), nullable=False, server_default='100'),
        sa.Column('category', sa.Text(), nullable=False, server_default='Software etc'),
        sa.Column('currency', sa.Text(), nullable=False, server_default='GBP'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notes', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('contracts',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id')),
        sa.Column('contract_name', sa.Text(), nullable=False),
        sa.Column('contract_type', sa.Text(), nullable=False, server_default='other'),
        sa.Column('file_path', sa.Text()),
        sa.Column('file_name', sa.Text()),
        sa.Column('start_date', sa.Date()),
        sa.Column('end_date', sa.Date()),
        sa.Column('monthly_value', sa.Numeric(12, 2)),
        sa.Column('total_value', sa.Numeric(12, 2)),
        sa.Column('payment_terms', sa.Text()),
        sa.Column('notes', sa.Text()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('source_document_id', sa.String(36)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )

    # Document inbox
    op.create_table('documents',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('file_name', sa.Text(), nullable=False),
        sa.Column('file_path', sa.Text()),
        sa.Column('file_type', sa.Text()),
        sa.Column('file_size', sa.Integer()),
        sa.Column('mime_type', sa.Text()),
        sa.Column('document_category', sa.Text()),
        sa.Column('inbox_status', sa.Text(), nullable=False, server_default='pending'),
        sa.Column('applies_to_month', sa.Date()),
        sa.Column('period_start', sa.Date()),
        sa.Column('period_end', sa.Date()),
        sa.Column('extracted_data', sa.JSON()),
        sa.Column('extraction_confidence', sa.Float()),
        sa.Column('processing_error', sa.Text()),
        sa.Column('processed_at', sa.DateTime(timezone=True)),
        sa.Column('external_file_id', sa.Text()),
        sa.Column('external_path', sa.Text()),
        sa.Column('linked_invoice_id', sa.String(36)),
        sa.Column('linked_contract_id', sa.String(36), sa.ForeignKey('contracts.id', ondelete='SET NULL')),
        sa.Column('review_notes', sa.Text()),
        sa.Column('imported_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_file_id')
    )

    op.create_index('ix_documents_applies_to_month', 'documents', ['applies_to_month'])
    op.create_index('ix_documents_inbox_status', 'documents', ['inbox_status'])
    op.create_index('ix_documents_category', 'documents', ['document_category'])

    # Invoices and revenue recognition
    op.create_table('invoices',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('invoice_number', sa.Text(), nullable=False),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('total_value', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.Text(), nullable=False, server_default='GBP'),
        sa.Column('months_to_spread', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.Text(), nullable=False, server_default='pending'),
        sa.Column('payment_received_date', sa.Date()),
        sa.Column('notes', sa.Text()),
        sa.Column('source_document_id', sa.String(36), sa.ForeignKey('documents.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index('ix_invoices_client_id', 'invoices', ['client_id'])
    op.create_index('ix_invoices_invoice_date', 'invoices', ['invoice_date'])

    op.create_foreign_key(
        'fk_documents_linked_invoice_id', 'documents', 'invoices',
        ['linked_invoice_id'], ['id'], ondelete='SET NULL'
    )

    op.create_table('revenue_recognition',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('invoice_id', sa.String(36), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('recognition_month', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index('ix_revenue_recognition_invoice_id', 'revenue_recognition', ['invoice_id'])
    op.create_index('ix_revenue_recognition_month', 'revenue_recognition', ['recognition_month'])

    # Monthly cost overrides
    op.create_table('hr_costs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('team_member_id', sa.String(36), sa.ForeignKey('team_members.id', ondelete='CASCADE'), nullable=False),
        sa.Column('cost_month', sa.Date(), nullable=False),
        sa.Column('actual_cost', sa.Numeric(12, 2)),
        sa.Column('bonus', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text()),
        sa.Column('source_document_id', sa.String(36), sa.ForeignKey('documents.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('team_member_id', 'cost_month', name='uq_hr_costs_member_month')
    )

    op.create_index('ix_hr_costs_cost_month', 'hr_costs', ['cost_month'])

    op.create_table('software_costs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('software_item_id', sa.String(36), sa.ForeignKey('software_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('cost_month', sa.Date(), nullable=False),
        sa.Column('actual_cost', sa.Numeric(12, 2)),
        sa.Column('allocation_percent', sa.Numeric(5, 2)),
        sa.Column('notes', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('software_item_id', 'cost_month', name='uq_software_costs_item_month')
    )

    op.create_index('ix_software_costs_cost_month', 'software_costs', ['cost_month'])

    # Scan run tracking
    op.create_table('sync_state',
        sa.Column('domain', sa.String(), nullable=False),
        sa.Column('last_synced_at', sa.DateTime(timezone=True)),
        sa.Column('last_sync_key', sa.String()),
        sa.Column('status', sa.String(), server_default='success'),
        sa.Column('error_count', sa.Integer(), server_default='0'),
        sa.Column('error_message', sa.Text()),
        sa.Column('sync_metadata', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('domain')
    )

    op.create_index('ix_sync_state_status', 'sync_state', ['status'])


def downgrade() -> None:
    """Drop all finops inbox tables."""
    op.drop_table('sync_state')
    op.drop_table('software_costs')
    op.drop_table('hr_costs')
    op.drop_table('revenue_recognition')
    op.drop_constraint('fk_documents_linked_invoice_id', 'documents', type_='foreignkey')
    op.drop_table('invoices')
    op.drop_table('documents')
    op.drop_table('contracts')
    op.drop_table('software_items')
    op.drop_table('team_members')
    op.drop_table('clients')
