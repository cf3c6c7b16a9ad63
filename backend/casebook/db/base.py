"""Declarative base shared by all ORM models."""
import uuid

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def generate_uuid() -> str:
    """Primary keys are UUID strings so ids look the same on SQLite and PostgreSQL."""
    return str(uuid.uuid4())
