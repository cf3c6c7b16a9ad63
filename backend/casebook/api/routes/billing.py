"""Billing: GST/TDS calculator and invoices."""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from casebook.api.deps import get_current_user, get_db, get_tax_calculator
from casebook.models.user import User
from casebook.schemas.invoice import InvoiceCreate, InvoiceResponse, InvoiceUpdate
from casebook.schemas.tax import (
    ClientType,
    ExpenseTaxInput,
    TaxBreakdownResponse,
    TaxCalculationInput,
    TaxRatesResponse,
)
from casebook.services import invoice_service
from casebook.services.tax_service import TaxCalculator

router = APIRouter()


def _breakdown(calculator: TaxCalculator, result) -> TaxBreakdownResponse:
    return TaxBreakdownResponse(
        result=result,
        summary=calculator.format_breakdown(result),
        is_valid=calculator.validate_result(result),
    )


@router.post("/tax/calculate", response_model=TaxBreakdownResponse)
def calculate_tax(
    body: TaxCalculationInput,
    calculator: TaxCalculator = Depends(get_tax_calculator),
    current_user: User = Depends(get_current_user),
):
    """Preview invoice tax. Nothing is persisted."""
    return _breakdown(calculator, calculator.calculate_invoice_tax(body))


@router.post("/tax/expense", response_model=TaxBreakdownResponse)
def calculate_expense_tax(
    body: ExpenseTaxInput,
    calculator: TaxCalculator = Depends(get_tax_calculator),
    current_user: User = Depends(get_current_user),
):
    return _breakdown(calculator, calculator.calculate_expense_tax(body))


@router.get("/tax/rates", response_model=TaxRatesResponse)
def tax_rates(
    client_type: ClientType = Query(ClientType.INDIVIDUAL, alias="clientType"),
    calculator: TaxCalculator = Depends(get_tax_calculator),
    current_user: User = Depends(get_current_user),
):
    rates = calculator.rates_for(client_type)
    return TaxRatesResponse(
        client_type=client_type,
        gst_rate=rates.gst_rate,
        cgst_rate=rates.cgst_rate,
        sgst_rate=rates.sgst_rate,
        igst_rate=rates.igst_rate,
        tds_rate=rates.tds_rate,
        cess_rate=rates.cess_rate,
    )


@router.post("/invoices", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
def create_invoice(
    body: InvoiceCreate,
    db: Session = Depends(get_db),
    calculator: TaxCalculator = Depends(get_tax_calculator),
    current_user: User = Depends(get_current_user),
):
    """Create an invoice; tax components are computed from the client record."""
    return invoice_service.create_invoice(db, calculator, body, current_user.id)


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return invoice_service.get_invoice(db, invoice_id)


@router.put("/invoices/{invoice_id}", response_model=InvoiceResponse)
def update_invoice(
    invoice_id: str,
    body: InvoiceUpdate,
    db: Session = Depends(get_db),
    calculator: TaxCalculator = Depends(get_tax_calculator),
    current_user: User = Depends(get_current_user),
):
    return invoice_service.update_invoice(db, calculator, invoice_id, body, current_user.id)
