"""
GST/TDS tax engine for invoices and expenses (Indian rules).

RULES:
- GST = subtotal x gst_rate. Intra-state: split into CGST + SGST.
  Inter-state: the whole amount is IGST.
- Cess = subtotal x cess_rate, added to the tax owed.
- TDS = subtotal x tds_rate, only when TDS is applicable AND the client is a
  company. TDS is withheld by the payer: it lowers the grand total and is NOT
  part of total tax.
- grand_total = subtotal + GST + cess - TDS

Every monetary component is rounded half-up to 2 decimals when it is
computed; the subtotal itself is never rounded. All functions are pure.
"""
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Tuple

from casebook.core.exceptions import InvalidTaxInputError
from casebook.schemas.tax import (
    ClientType,
    ExpenseTaxInput,
    TaxCalculationInput,
    TaxCalculationResult,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Non-company payees deduct at the lower rate
NON_COMPANY_TDS_RATE = Decimal("0.05")


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _as_decimal(value, name: str) -> Decimal:
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidTaxInputError(f"{name} must be a number") from exc
    if not result.is_finite():
        raise InvalidTaxInputError(f"{name} must be a finite number")
    return result


def _check_rate(rate, name: str) -> Decimal:
    rate = _as_decimal(rate, name)
    if rate < 0 or rate > 1:
        raise InvalidTaxInputError(f"{name} must be between 0 and 1")
    return rate


def _check_amount(amount, name: str) -> Decimal:
    amount = _as_decimal(amount, name)
    if amount < 0:
        raise InvalidTaxInputError(f"{name} cannot be negative")
    return amount


@dataclass(frozen=True)
class TaxRates:
    gst_rate: Decimal = Decimal("0.18")
    tds_rate: Decimal = Decimal("0.10")
    cess_rate: Decimal = Decimal("0")

    def __post_init__(self):
        for name in ("gst_rate", "tds_rate", "cess_rate"):
            object.__setattr__(self, name, _check_rate(getattr(self, name), name))

    @property
    def cgst_rate(self) -> Decimal:
        return self.gst_rate / 2

    @property
    def sgst_rate(self) -> Decimal:
        return self.gst_rate / 2

    @property
    def igst_rate(self) -> Decimal:
        return self.gst_rate

    @classmethod
    def from_settings(cls, settings) -> "TaxRates":
        return cls(gst_rate=settings.GST_RATE, tds_rate=settings.TDS_RATE, cess_rate=settings.CESS_RATE)


class TaxCalculator:
    """Stateless calculator configured with default rates; per-call overrides win."""

    def __init__(self, rates: Optional[TaxRates] = None):
        self.rates = rates or TaxRates()

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def calculate_gst(self, amount, gst_rate=None) -> Decimal:
        rate = self.rates.gst_rate if gst_rate is None else _check_rate(gst_rate, "gst_rate")
        return to_money(_check_amount(amount, "amount") * rate)

    @staticmethod
    def split_gst(gst_amount: Decimal) -> Tuple[Decimal, Decimal]:
        """CGST gets the rounded half, SGST the remainder, so the pair always sums to the GST."""
        cgst = to_money(gst_amount / 2)
        return cgst, gst_amount - cgst

    def calculate_igst(self, amount, gst_rate=None) -> Decimal:
        return self.calculate_gst(amount, gst_rate)

    def calculate_tds(self, amount, tds_rate=None) -> Decimal:
        rate = self.rates.tds_rate if tds_rate is None else _check_rate(tds_rate, "tds_rate")
        return to_money(_check_amount(amount, "amount") * rate)

    def calculate_cess(self, amount, cess_rate=None) -> Decimal:
        rate = self.rates.cess_rate if cess_rate is None else _check_rate(cess_rate, "cess_rate")
        return to_money(_check_amount(amount, "amount") * rate)

    # ------------------------------------------------------------------
    # Invoices and expenses
    # ------------------------------------------------------------------

    def calculate_invoice_tax(self, data: TaxCalculationInput) -> TaxCalculationResult:
        subtotal = _check_amount(data.subtotal, "subtotal")

        gst_amount = self.calculate_gst(subtotal, data.gst_rate)
        if data.is_inter_state:
            cgst_amount, sgst_amount, igst_amount = ZERO, ZERO, gst_amount
        else:
            cgst_amount, sgst_amount = self.split_gst(gst_amount)
            igst_amount = ZERO

        cess_amount = self.calculate_cess(subtotal, data.cess_rate)

        tds_amount = ZERO
        if data.is_tds_applicable and data.client_type == ClientType.COMPANY:
            tds_amount = self.calculate_tds(subtotal, data.tds_rate)

        total_tax = gst_amount + cess_amount
        # Sub-cent subtotals can round TDS above the payable amount
        grand_total = max(to_money(subtotal + total_tax - tds_amount), ZERO)

        result = TaxCalculationResult(
            subtotal=subtotal,
            gst_amount=gst_amount,
            cgst_amount=cgst_amount,
            sgst_amount=sgst_amount,
            igst_amount=igst_amount,
            cess_amount=cess_amount,
            tds_amount=tds_amount,
            total_tax=total_tax,
            grand_total=grand_total,
            breakdown={
                "subtotal": subtotal,
                "cgst": cgst_amount,
                "sgst": sgst_amount,
                "igst": igst_amount,
                "cess": cess_amount,
                "tds": tds_amount,
                "total": grand_total,
            },
        )
        logger.debug(
            f"[TAX] Invoice tax: subtotal={subtotal} gst={gst_amount} cess={cess_amount} "
            f"tds={tds_amount} total={grand_total}"
        )
        return result

    def calculate_expense_tax(self, data: ExpenseTaxInput) -> TaxCalculationResult:
        """Reimbursable expenses carry no GST; direct expenses pay intra-state GST."""
        amount = _check_amount(data.amount, "amount")

        if data.is_reimbursable:
            gst_amount = cgst_amount = sgst_amount = ZERO
        else:
            gst_amount = self.calculate_gst(amount, data.gst_rate)
            cgst_amount, sgst_amount = self.split_gst(gst_amount)

        grand_total = to_money(amount + gst_amount)
        logger.debug(f"[TAX] Expense tax ({data.expense_type}): amount={amount} gst={gst_amount}")
        return TaxCalculationResult(
            subtotal=amount,
            gst_amount=gst_amount,
            cgst_amount=cgst_amount,
            sgst_amount=sgst_amount,
            igst_amount=ZERO,
            cess_amount=ZERO,
            tds_amount=ZERO,
            total_tax=gst_amount,
            grand_total=grand_total,
            breakdown={
                "subtotal": amount,
                "cgst": cgst_amount,
                "sgst": sgst_amount,
                "total": grand_total,
            },
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def rates_for(self, client_type: ClientType = ClientType.INDIVIDUAL) -> TaxRates:
        tds_rate = self.rates.tds_rate if client_type == ClientType.COMPANY else NON_COMPANY_TDS_RATE
        return TaxRates(gst_rate=self.rates.gst_rate, tds_rate=tds_rate, cess_rate=self.rates.cess_rate)

    @staticmethod
    def validate_result(result: TaxCalculationResult) -> bool:
        """Check that the totals and GST components are consistent."""
        expected_total = result.subtotal + result.total_tax - result.tds_amount
        totals_match = abs(expected_total - result.grand_total) < CENT
        gst_match = result.cgst_amount + result.sgst_amount + result.igst_amount == result.gst_amount
        tax_match = result.gst_amount + result.cess_amount == result.total_tax
        return totals_match and gst_match and tax_match

    @staticmethod
    def format_breakdown(result: TaxCalculationResult) -> str:
        """`CGST: ₹90.00, SGST: ₹90.00` - zero components are left out."""
        lines = [
            ("CGST", result.cgst_amount),
            ("SGST", result.sgst_amount),
            ("IGST", result.igst_amount),
            ("Cess", result.cess_amount),
            ("TDS", result.tds_amount),
        ]
        return ", ".join(f"{label}: ₹{amount:.2f}" for label, amount in lines if amount > 0)
