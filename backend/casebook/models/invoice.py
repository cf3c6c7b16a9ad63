from sqlalchemy import Column, String, ForeignKey, Numeric, Date, DateTime, Text, Integer
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from casebook.db.base import Base, generate_uuid


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    invoice_number = Column(String(32), unique=True, nullable=False)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(32), default="draft")  # draft, sent, paid, cancelled
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)  # Amount before tax
    cgst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    sgst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    igst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    cess_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tds_amount = Column(Numeric(12, 2), nullable=False, default=0)  # Withheld by client
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)  # GST + cess
    amount = Column(Numeric(12, 2), nullable=False, default=0)  # Grand total payable
    currency = Column(String(3), nullable=False, default="INR")
    due_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    client = relationship("Client", backref="invoices")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    invoice_id = Column(String(36), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    description = Column(String(512), nullable=False)
    quantity = Column(Numeric(10, 2), nullable=False, default=1)
    unit_rate = Column(Numeric(12, 2), nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=False)
    item_type = Column(String(32), nullable=False, default="time")  # time, expense, fixed

    invoice = relationship("Invoice", back_populates="items")
