from sqlalchemy import Column, String, ForeignKey, Numeric, Date, DateTime
from sqlalchemy.sql import func
from casebook.db.base import Base, generate_uuid


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False)
    task_type = Column(String(64), nullable=False, default="general")
    status = Column(String(32), nullable=False, default="pending")
    priority = Column(String(32), nullable=False, default="medium")
    estimated_hours = Column(Numeric(8, 2), nullable=True)
    actual_hours = Column(Numeric(8, 2), nullable=True)
    due_date = Column(Date, nullable=True)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=True)
    assigned_to = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
