"""GST/TDS calculation schemas. Rates are fractions (0.18 == 18%)."""
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from casebook.schemas.report import CamelModel


class ClientType(str, Enum):
    INDIVIDUAL = "individual"
    COMPANY = "company"
    PARTNERSHIP = "partnership"
    TRUST = "trust"


def _tax_alias(name: str) -> str:
    # is_tds_applicable -> isTDSApplicable
    return to_camel(name).replace("Tds", "TDS")


class TaxModel(CamelModel):
    model_config = ConfigDict(alias_generator=_tax_alias, populate_by_name=True)


class TaxCalculationInput(TaxModel):
    subtotal: Decimal
    is_inter_state: bool = False
    is_tds_applicable: bool = False
    client_type: ClientType = ClientType.INDIVIDUAL
    gst_rate: Optional[Decimal] = None
    tds_rate: Optional[Decimal] = None
    cess_rate: Optional[Decimal] = None


class TaxCalculationResult(TaxModel):
    subtotal: Decimal
    gst_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    cess_amount: Decimal
    tds_amount: Decimal
    total_tax: Decimal
    grand_total: Decimal
    breakdown: Dict[str, Decimal] = Field(default_factory=dict)


class ExpenseTaxInput(TaxModel):
    amount: Decimal
    expense_type: str = "general"
    is_reimbursable: bool = False
    gst_rate: Optional[Decimal] = None


class TaxRatesResponse(TaxModel):
    client_type: ClientType
    gst_rate: Decimal
    cgst_rate: Decimal
    sgst_rate: Decimal
    igst_rate: Decimal
    tds_rate: Decimal
    cess_rate: Decimal


class TaxBreakdownResponse(TaxModel):
    result: TaxCalculationResult
    summary: str
    is_valid: bool
