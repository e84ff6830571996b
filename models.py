import datetime as dt
import uuid
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


def new_line_id() -> str:
    return uuid.uuid4().hex


class TaxRate(int, Enum):
    """Spanish VAT brackets, in percent"""
    EXEMPT = 0
    SUPER_REDUCED = 4
    REDUCED = 10
    GENERAL = 21

    @property
    def fraction(self) -> Decimal:
        return Decimal(self.value) / Decimal(100)


class DocumentKind(str, Enum):
    ISSUED = "Emitida"
    UPLOADED = "Subida"


class DocumentStatus(str, Enum):
    REGISTERED = "Registrada"
    PENDING = "Pendiente"
    ERROR = "Error"


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str
    line_id: Optional[str] = None


class InvoiceLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_line_id)
    product_ref: Optional[str] = None
    description: str = ""
    quantity: int = Field(default=1, ge=0)
    unit_price: Decimal = Field(default=Decimal("0.00"), ge=0, decimal_places=2)
    tax_rate: TaxRate = TaxRate.GENERAL

    @property
    def base(self) -> Decimal:
        return self.quantity * self.unit_price

    @property
    def tax(self) -> Decimal:
        return self.base * self.tax_rate.fraction


class InvoiceDraft(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_ref: Optional[str] = None
    lines: Tuple[InvoiceLine, ...] = ()
    notes: str = ""

    def find_line(self, line_id: str) -> Optional[InvoiceLine]:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None


class UploadedDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    content_type: str
    payload: bytes = Field(repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.payload)


class TaxBreakdownRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    rate: TaxRate
    base: Decimal
    tax: Decimal


class InvoiceTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    tax_breakdown: List[TaxBreakdownRow]
    total_tax: Decimal
    grand_total: Decimal


class Client(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    name: str = Field(alias="nombre")
    nif: Optional[str] = None


class Product(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    name: str = Field(alias="nombre")
    price: Decimal = Field(alias="precio", ge=0)


class CompanyProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    company_name: str = Field(default="", alias="razonSocial")
    tax_id: str = Field(default="", alias="nif")
    fiscal_address: str = Field(default="", alias="domicilioFiscal")


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))


class SubmissionResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)

    document_id: str = Field(alias="id")
    status: str = DocumentStatus.PENDING.value
    number: Optional[str] = Field(default=None, alias="numero")
    message: Optional[str] = None


class RegistryEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    date: dt.date = Field(alias="fecha")
    kind: DocumentKind = Field(alias="tipo")
    number: str = Field(alias="numero")
    counterparty_name: str = Field(alias="cliente")
    total_amount: Decimal = Field(alias="total")
    status: DocumentStatus = Field(alias="estado")

    @field_validator("date", mode="before")
    @classmethod
    def truncate_to_day(cls, value):
        # Registry bounds are inclusive at day granularity
        if isinstance(value, dt.datetime):
            return value.date()
        if isinstance(value, str) and len(value) > 10:
            return value[:10]
        return value


class RegistryQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    search_text: str = ""
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1)

    def with_search(self, search_text: str) -> "RegistryQuery":
        return self.model_copy(update={"search_text": search_text or "", "page": 1})

    def with_date_range(self, date_from: Optional[dt.date], date_to: Optional[dt.date]) -> "RegistryQuery":
        return self.model_copy(update={"date_from": date_from, "date_to": date_to, "page": 1})

    def with_page(self, page: int) -> "RegistryQuery":
        return self.model_copy(update={"page": max(1, int(page))})

    def cleared(self) -> "RegistryQuery":
        return RegistryQuery(page_size=self.page_size)
