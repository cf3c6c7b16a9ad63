#!/usr/bin/env python
"""Seed a demo practice (lawyer, clients, cases, invoices, tasks) and print a dev token."""
from datetime import date, timedelta
from decimal import Decimal

from casebook.core.config import settings
from casebook.core.security import create_access_token
from casebook.db.init_db import init_db
from casebook.db.session import SessionLocal
from casebook.models import Case, Client, Task, User
from casebook.schemas.invoice import InvoiceCreate, InvoiceItemIn
from casebook.services.invoice_service import create_invoice
from casebook.services.tax_service import TaxCalculator, TaxRates

CLIENTS = [
    {"name": "Mehta Textiles Pvt Ltd", "client_type": "company", "is_inter_state": False},
    {"name": "Anita Sharma", "client_type": "individual", "is_inter_state": False},
    {"name": "Kaveri Exports LLP", "client_type": "partnership", "is_inter_state": True},
    {"name": "Shri Ram Charitable Trust", "client_type": "trust", "is_inter_state": False},
]

CASES = [
    ("CIV-2026-001", "Recovery suit against distributor", "civil", "open", 0),
    ("COR-2026-002", "Share purchase agreement review", "corporate", "in_progress", 0),
    ("FAM-2026-003", "Property partition", "family", "open", 1),
    ("TAX-2026-004", "GST show-cause notice reply", "tax", "closed", 2),
]


def seed_demo_data():
    init_db()
    db = SessionLocal()
    calculator = TaxCalculator(TaxRates.from_settings(settings))

    try:
        if db.query(User).filter(User.email == "advocate@casebook.local").first():
            print("✓ Demo data already present")
            return

        lawyer = User(email="advocate@casebook.local", first_name="Raghav", last_name="Iyer")
        db.add(lawyer)
        db.flush()

        clients = [Client(email=None, **data) for data in CLIENTS]
        db.add_all(clients)
        db.flush()

        cases = []
        for number, title, case_type, status, client_index in CASES:
            case = Case(
                case_number=number,
                title=title,
                case_type=case_type,
                status=status,
                client_id=clients[client_index].id,
                assigned_to=lawyer.id,
            )
            cases.append(case)
        db.add_all(cases)
        db.flush()

        for case in cases:
            db.add(Task(
                title=f"Draft pleadings: {case.case_number}",
                task_type="drafting",
                status="completed" if case.status == "closed" else "pending",
                estimated_hours=Decimal("6.0"),
                actual_hours=Decimal("4.5") if case.status == "closed" else None,
                due_date=date.today() + timedelta(days=14),
                case_id=case.id,
                assigned_to=lawyer.id,
            ))
        db.commit()

        for case in cases:
            invoice = create_invoice(
                db,
                calculator,
                InvoiceCreate(
                    client_id=case.client_id,
                    case_id=case.id,
                    items=[
                        InvoiceItemIn(description="Professional fees", quantity=Decimal("10"), unit_rate=Decimal("2500")),
                        InvoiceItemIn(description="Court filing", quantity=Decimal("1"), unit_rate=Decimal("1500"),
                                      item_type="expense"),
                    ],
                    due_date=date.today() + timedelta(days=30),
                ),
                lawyer.id,
            )
            print(f"  📌 {invoice.invoice_number}: ₹{invoice.amount:,.2f} (TDS ₹{invoice.tds_amount:,.2f})")

        print(f"\n✅ Seeded {len(clients)} clients, {len(cases)} cases and their invoices")
        print(f"\nDev token for {lawyer.email}:\n{create_access_token(lawyer.id, expires_minutes=24 * 60)}")
    finally:
        db.close()


if __name__ == "__main__":
    seed_demo_data()
