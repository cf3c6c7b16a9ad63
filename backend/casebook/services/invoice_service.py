"""Invoice creation and updates. Tax components are always recomputed server-side."""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from casebook.core.audit import AuditLog
from casebook.core.exceptions import ClientNotFoundError, InvoiceNotFoundError, ResourceNotFoundError
from casebook.models.case import Case
from casebook.models.client import Client
from casebook.models.invoice import Invoice, InvoiceItem
from casebook.schemas.invoice import InvoiceCreate, InvoiceItemIn, InvoiceUpdate
from casebook.schemas.tax import ClientType, TaxCalculationInput, TaxCalculationResult
from casebook.services.tax_service import TaxCalculator, to_money

logger = logging.getLogger(__name__)


def next_invoice_number(db: Session, today: Optional[date] = None) -> str:
    """INV-<year>-<seq>, sequence restarting every calendar year."""
    year = (today or date.today()).year
    prefix = f"INV-{year}-"
    numbers = db.query(Invoice.invoice_number).filter(Invoice.invoice_number.like(f"{prefix}%")).all()
    # Continue after the highest issued number; deleted invoices leave gaps
    last = max((int(number[len(prefix):]) for (number,) in numbers if number[len(prefix):].isdigit()), default=0)
    return f"{prefix}{last + 1:04d}"


def build_items(items: List[InvoiceItemIn]) -> List[InvoiceItem]:
    return [
        InvoiceItem(
            position=position,
            description=item.description.strip(),
            quantity=item.quantity,
            unit_rate=item.unit_rate,
            amount=to_money(item.quantity * item.unit_rate),
            item_type=item.item_type,
        )
        for position, item in enumerate(items)
    ]


def invoice_tax(calculator: TaxCalculator, client: Client, subtotal: Decimal) -> TaxCalculationResult:
    """Tax for an invoice billed to `client`: companies withhold TDS, other states pay IGST."""
    client_type = ClientType(client.client_type)
    return calculator.calculate_invoice_tax(TaxCalculationInput(
        subtotal=subtotal,
        is_inter_state=bool(client.is_inter_state),
        is_tds_applicable=client_type == ClientType.COMPANY,
        client_type=client_type,
    ))


def _apply_tax(invoice: Invoice, tax: TaxCalculationResult) -> None:
    invoice.subtotal = tax.subtotal
    invoice.cgst_amount = tax.cgst_amount
    invoice.sgst_amount = tax.sgst_amount
    invoice.igst_amount = tax.igst_amount
    invoice.cess_amount = tax.cess_amount
    invoice.tds_amount = tax.tds_amount
    invoice.tax_amount = tax.total_tax
    invoice.amount = tax.grand_total


def create_invoice(
    db: Session,
    calculator: TaxCalculator,
    data: InvoiceCreate,
    user_id: str,
    today: Optional[date] = None,
) -> Invoice:
    """Create an invoice with its line items and every tax component."""
    client = db.get(Client, data.client_id)
    if client is None:
        raise ClientNotFoundError()
    if data.case_id is not None:
        case = db.get(Case, data.case_id)
        if case is None or case.client_id != client.id:
            raise ResourceNotFoundError("Case not found")

    items = build_items(data.items)
    subtotal = sum((item.amount for item in items), Decimal("0.00"))
    tax = invoice_tax(calculator, client, subtotal)

    invoice = Invoice(
        invoice_number=next_invoice_number(db, today),
        client_id=client.id,
        case_id=data.case_id,
        status="draft",
        due_date=data.due_date,
        notes=data.notes,
        created_by=user_id,
        items=items,
    )
    _apply_tax(invoice, tax)

    db.add(invoice)
    db.commit()
    db.refresh(invoice)

    AuditLog.log_action("create", "invoice", invoice.id, user_id,
                        changes={"invoice_number": invoice.invoice_number, "amount": str(invoice.amount)})
    logger.info(f"[BILLING] Invoice {invoice.invoice_number} created: total={invoice.amount}")
    return invoice


def get_invoice(db: Session, invoice_id: str) -> Invoice:
    invoice = db.get(Invoice, invoice_id)
    if invoice is None:
        raise InvoiceNotFoundError()
    return invoice


def update_invoice(
    db: Session,
    calculator: TaxCalculator,
    invoice_id: str,
    data: InvoiceUpdate,
    user_id: str,
) -> Invoice:
    """Update status/dates/notes; replacing the items recomputes every tax component."""
    invoice = get_invoice(db, invoice_id)
    changes = data.model_dump(exclude_unset=True)

    if data.items is not None:
        invoice.items = build_items(data.items)
        subtotal = sum((item.amount for item in invoice.items), Decimal("0.00"))
        _apply_tax(invoice, invoice_tax(calculator, invoice.client, subtotal))

    for key in ("status", "due_date", "notes"):
        if key in changes and not (key == "status" and changes[key] is None):
            setattr(invoice, key, changes[key])

    db.commit()
    db.refresh(invoice)

    AuditLog.log_action("update", "invoice", invoice.id, user_id, changes={"fields": sorted(changes)})
    return invoice
