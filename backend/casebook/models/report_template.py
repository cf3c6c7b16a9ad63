"""
Saved report template.

OWNERSHIP MODEL:
- created_by is the only user allowed to update or delete the row
- is_public=True makes it readable (and executable) by every user
- query_definition holds the camelCase JSON form of a QueryDefinition
"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from casebook.db.base import Base, generate_uuid


class ReportTemplate(Base):
    __tablename__ = "custom_report_templates"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    template_type = Column(String(64), nullable=False, default="custom")
    query_definition = Column(JSON, nullable=False)
    parameters = Column(JSON, nullable=False, default=dict)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    is_public = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    creator = relationship("User")

    def __repr__(self):
        return f"<ReportTemplate id={self.id} name={self.name!r} public={self.is_public}>"
