from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from casebook.schemas.report import CamelModel


class InvoiceItemIn(CamelModel):
    description: str = Field(..., min_length=1, max_length=512)
    quantity: Decimal = Field(Decimal("1"), gt=0)
    unit_rate: Decimal = Field(..., ge=0)
    item_type: str = "time"


class InvoiceCreate(CamelModel):
    client_id: str
    case_id: Optional[str] = None
    items: List[InvoiceItemIn] = Field(..., min_length=1)
    due_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceUpdate(CamelModel):
    items: Optional[List[InvoiceItemIn]] = Field(None, min_length=1)
    status: Optional[Literal["draft", "sent", "paid", "cancelled"]] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceItemResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    position: int
    description: str
    quantity: Decimal
    unit_rate: Decimal
    amount: Decimal
    item_type: str


class InvoiceResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    invoice_number: str
    client_id: str
    case_id: Optional[str] = None
    status: str
    subtotal: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    cess_amount: Decimal
    tds_amount: Decimal
    tax_amount: Decimal
    amount: Decimal
    currency: str
    due_date: Optional[date] = None
    notes: Optional[str] = None
    items: List[InvoiceItemResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
