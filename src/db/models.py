"""
SQLAlchemy models for the Finops Inbox data store.

Defines the schema for the document inbox and the accounting records it feeds:
- Documents discovered in Google Drive or uploaded directly
- Clients, invoices and their revenue recognition schedules
- Team members and monthly HR cost overrides
- Software subscriptions and monthly software cost overrides
- Contracts
"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Client(Base):
    """A customer that sales invoices are issued to."""

    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    slug = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    contract_start_date = Column(Date)
    contract_end_date = Column(Date)
    monthly_retainer = Column(Numeric(12, 2))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    invoices = relationship("Invoice", back_populates="client")

    __table_args__ = (Index("ix_clients_name", "name"),)


class Document(Base):
    """
    A financial document in the inbox.

    Created pending by the Drive scan or a direct upload, enriched by extraction
    and finally imported into accounting records or skipped.
    """

    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=_uuid)
    file_name = Column(Text, nullable=False)
    file_path = Column(Text)  # storage path for uploads, folder path for Drive files
    file_type = Column(Text)  # 'invoice' | 'bank_statement' | 'other'
    file_size = Column(Integer)
    mime_type = Column(Text)

    document_category = Column(Text)  # sales_invoice | cost_invoice | bank_statement | contract | other
    inbox_status = Column(Text, nullable=False, default="pending")
    applies_to_month = Column(Date)
    period_start = Column(Date)
    period_end = Column(Date)

    extracted_data = Column(JSON)
    extraction_confidence = Column(Float)
    processing_error = Column(Text)
    processed_at = Column(DateTime(timezone=True))

    external_file_id = Column(Text, unique=True)  # Google Drive file id
    external_path = Column(Text)

    # use_alter breaks the documents <-> invoices cycle
    linked_invoice_id = Column(
        String(36),
        ForeignKey(
            "invoices.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_documents_linked_invoice_id",
        ),
    )
    linked_contract_id = Column(String(36), ForeignKey("contracts.id", ondelete="SET NULL"))
    review_notes = Column(Text)
    imported_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    linked_invoice = relationship("Invoice", foreign_keys=[linked_invoice_id])
    linked_contract = relationship("Contract", foreign_keys=[linked_contract_id])

    __table_args__ = (
        Index("ix_documents_applies_to_month", "applies_to_month"),
        Index("ix_documents_inbox_status", "inbox_status"),
        Index("ix_documents_category", "document_category"),
    )

    def __repr__(self) -> str:
        return f"<Document id={self.id} name={self.file_name} status={self.inbox_status}>"


class Invoice(Base):
    """A sales invoice issued to a client, spread over one or more months."""

    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=_uuid)
    invoice_number = Column(Text, nullable=False)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False)
    invoice_date = Column(Date, nullable=False)
    total_value = Column(Numeric(12, 2), nullable=False)
    currency = Column(Text, nullable=False, default="GBP")
    months_to_spread = Column(Integer, nullable=False, default=1)
    status = Column(Text, nullable=False, default="pending")  # pending | sent | paid | overdue
    payment_received_date = Column(Date)
    notes = Column(Text)
    source_document_id = Column(String(36), ForeignKey("documents.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="invoices")
    recognition = relationship(
        "RevenueRecognition",
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RevenueRecognition.recognition_month",
    )

    __table_args__ = (
        Index("ix_invoices_client_id", "client_id"),
        Index("ix_invoices_invoice_date", "invoice_date"),
    )

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number} total={self.total_value}>"


class RevenueRecognition(Base):
    """One month's slice of an invoice's value."""

    __tablename__ = "revenue_recognition"

    id = Column(String(36), primary_key=True, default=_uuid)
    invoice_id = Column(
        String(36), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    recognition_month = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    invoice = relationship("Invoice", back_populates="recognition")

    __table_args__ = (
        Index("ix_revenue_recognition_invoice_id", "invoice_id"),
        Index("ix_revenue_recognition_month", "recognition_month"),
    )


class TeamMember(Base):
    """An employee or contractor whose monthly cost is tracked."""

    __tablename__ = "team_members"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    role = Column(Text)
    employment_type = Column(Text, nullable=False, default="fte")  # fte | contractor
    default_monthly_cost = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(Text, nullable=False, default="GBP")
    supplier_names = Column(JSON, default=list)  # aliases used on contractor invoices
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    hr_costs = relationship("HRCost", back_populates="team_member", cascade="all, delete-orphan")


class HRCost(Base):
    """Monthly override of a team member's default cost."""

    __tablename__ = "hr_costs"

    id = Column(String(36), primary_key=True, default=_uuid)
    team_member_id = Column(
        String(36), ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False
    )
    cost_month = Column(Date, nullable=False)
    actual_cost = Column(Numeric(12, 2))  # NULL means the member's default
    bonus = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text)
    source_document_id = Column(String(36), ForeignKey("documents.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    team_member = relationship("TeamMember", back_populates="hr_costs")

    __table_args__ = (
        UniqueConstraint("team_member_id", "cost_month", name="uq_hr_costs_member_month"),
        Index("ix_hr_costs_cost_month", "cost_month"),
    )


class SoftwareItem(Base):
    """A software subscription or vendor line."""

    __tablename__ = "software_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    vendor = Column(Text)
    vendor_aliases = Column(JSON, default=list)  # bank statement descriptors
    default_monthly_cost = Column(Numeric(12, 2), nullable=False, default=0)
    allocation_percent = Column(Numeric(5, 2), nullable=False, default=100)
    category = Column(Text, nullable=False, default="Software etc")  # P&L grouping
    currency = Column(Text, nullable=False, default="GBP")
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    costs = relationship("SoftwareCost", back_populates="software_item", cascade="all, delete-orphan")


class SoftwareCost(Base):
    """Monthly override of a software item's default cost or allocation."""

    __tablename__ = "software_costs"

    id = Column(String(36), primary_key=True, default=_uuid)
    software_item_id = Column(
        String(36), ForeignKey("software_items.id", ondelete="CASCADE"), nullable=False
    )
    cost_month = Column(Date, nullable=False)
    actual_cost = Column(Numeric(12, 2))  # NULL means the item's default
    allocation_percent = Column(Numeric(5, 2))  # NULL means the item's default
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    software_item = relationship("SoftwareItem", back_populates="costs")

    __table_args__ = (
        UniqueConstraint("software_item_id", "cost_month", name="uq_software_costs_item_month"),
        Index("ix_software_costs_cost_month", "cost_month"),
    )


class Contract(Base):
    """Commercial terms agreed with a client."""

    __tablename__ = "contracts"

    id = Column(String(36), primary_key=True, default=_uuid)
    client_id = Column(String(36), ForeignKey("clients.id"))
    contract_name = Column(Text, nullable=False)
    contract_type = Column(Text, nullable=False, default="other")  # sow | msa | amendment | other
    file_path = Column(Text)
    file_name = Column(Text)
    start_date = Column(Date)
    end_date = Column(Date)
    monthly_value = Column(Numeric(12, 2))
    total_value = Column(Numeric(12, 2))
    payment_terms = Column(Text)
    notes = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    source_document_id = Column(String(36))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    client = relationship("Client")
