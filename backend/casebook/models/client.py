from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from casebook.db.base import Base, generate_uuid


class Client(Base):
    """
    Practice client.

    TAX NOTE:
    - client_type drives TDS: only companies deduct tax at source on our invoices
    - is_inter_state: client billed from another state -> IGST instead of CGST + SGST
    """
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(64), nullable=True)
    status = Column(String(32), default="active")  # active, inactive
    client_type = Column(String(32), nullable=False, default="individual")
    is_inter_state = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
