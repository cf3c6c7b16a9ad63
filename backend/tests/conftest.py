"""
Pytest fixtures for the casebook test suite.

Provides:
- An in-memory SQLite database, recreated for every test
- Service fixtures wired the way casebook.main wires them at startup
- A small seeded practice (users, clients, cases, invoices, tasks)
- A FastAPI TestClient plus bearer headers for two users

Environment is set before any casebook import: settings are read at import time.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["ALLOWED_HOSTS"] = "testserver,localhost"
os.environ["ENVIRONMENT"] = "test"

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List

import pytest
from fastapi.testclient import TestClient

from casebook.core.security import create_access_token
from casebook.db.base import Base
from casebook.db.database import Database
from casebook.db.init_db import init_db
from casebook.db.session import SessionLocal, engine
from casebook.models import Case, Client, Invoice, Task, User
from casebook.services.data_sources import default_registry
from casebook.services.query_builder import QueryBuilder
from casebook.services.report_service import ReportBuilderService
from casebook.services.tax_service import TaxCalculator


@pytest.fixture(autouse=True)
def _schema():
    """Fresh tables for every test."""
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def builder(registry):
    return QueryBuilder(registry, dialect="sqlite")


@pytest.fixture
def database():
    return Database(engine)


@pytest.fixture
def report_service(session, builder, database):
    return ReportBuilderService(session, builder, database, default_timeout=5)


@pytest.fixture
def calculator():
    return TaxCalculator()


# =============================================================================
# Practice data
# =============================================================================


@pytest.fixture
def owner(session) -> User:
    user = User(email="asha.rao@casebook.test", first_name="Asha", last_name="Rao")
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def other_user(session) -> User:
    user = User(email="vikram.das@casebook.test", first_name="Vikram", last_name="Das")
    session.add(user)
    session.commit()
    return user


@dataclass
class Practice:
    company: Client
    individual: Client
    exporter: Client
    cases: List[Case]
    invoices: Dict[str, Invoice]


@pytest.fixture
def practice(session, owner) -> Practice:
    """
    Clients:  Mehta Textiles (company), Anita Sharma (individual),
              Kaveri Exports (partnership, inter-state)
    Cases:    two open, one closed
    Invoices: paid Jan 1080.00 + 1180.00, draft Feb 590.00, paid Feb 2360.00
    """
    company = Client(name="Mehta Textiles Pvt Ltd", client_type="company", status="active")
    individual = Client(name="Anita Sharma", client_type="individual", status="active")
    exporter = Client(name="Kaveri Exports LLP", client_type="partnership", is_inter_state=True, status="active")
    session.add_all([company, individual, exporter])
    session.flush()

    cases = [
        Case(case_number="CIV-001", title="Recovery suit", case_type="civil", status="open",
             client_id=company.id, assigned_to=owner.id),
        Case(case_number="FAM-002", title="Property partition", case_type="family", status="open",
             client_id=individual.id, assigned_to=owner.id),
        Case(case_number="TAX-003", title="GST notice reply", case_type="tax", status="closed",
             client_id=company.id, assigned_to=owner.id),
    ]
    session.add_all(cases)
    session.flush()

    def invoice(number, client, amount, status, created_at):
        return Invoice(
            invoice_number=number,
            client_id=client.id,
            case_id=None,
            status=status,
            subtotal=amount,
            tax_amount=Decimal("0.00"),
            amount=amount,
            created_by=owner.id,
            created_at=created_at,
        )

    invoices = {
        "jan_company": invoice("INV-2026-0001", company, Decimal("1080.00"), "paid", datetime(2026, 1, 15, 10, 30)),
        "jan_individual": invoice("INV-2026-0002", individual, Decimal("1180.00"), "paid", datetime(2026, 1, 20, 9, 0)),
        "feb_draft": invoice("INV-2026-0003", individual, Decimal("590.00"), "draft", datetime(2026, 2, 3, 12, 0)),
        "feb_company": invoice("INV-2026-0004", company, Decimal("2360.00"), "paid", datetime(2026, 2, 10, 16, 45)),
    }
    session.add_all(invoices.values())

    session.add_all([
        Task(title="Draft plaint", task_type="drafting", status="completed",
             estimated_hours=Decimal("6.00"), actual_hours=Decimal("4.00"),
             due_date=date(2026, 1, 31), case_id=cases[0].id, assigned_to=owner.id),
        Task(title="File reply", task_type="filing", status="pending",
             estimated_hours=Decimal("2.00"), case_id=cases[2].id, assigned_to=owner.id),
    ])
    session.commit()
    return Practice(company=company, individual=individual, exporter=exporter, cases=cases, invoices=invoices)


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture
def api_client():
    from casebook.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(owner) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(owner.id)}"}


@pytest.fixture
def other_headers(other_user) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(other_user.id)}"}
