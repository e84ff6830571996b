"""Invoice line set operations.

Drafts are immutable: every operation returns a new ``InvoiceDraft`` and
leaves its input untouched, including when it raises.

Numeric edits follow a reject policy. A quantity below 1, a negative or
sub-cent price, non-numeric input or a rate outside the VAT brackets raises
``InvalidLineValue``; nothing is clamped or silently replaced by zero.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, List, Tuple

from pydantic import ValidationError

from errors import CannotRemoveLastLine, InvalidLineValue, LineNotFound, ProductNotFound
from models import FieldError, InvoiceDraft, InvoiceLine, TaxRate
from tax_calculator import to_cents

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("description", "quantity", "unit_price", "tax_rate")


def blank_line() -> InvoiceLine:
    return InvoiceLine(description="", quantity=1, unit_price=Decimal("0.00"), tax_rate=TaxRate.GENERAL)


def new_draft() -> InvoiceDraft:
    """Create the draft shown when the composition view opens"""
    return InvoiceDraft(lines=(blank_line(),))


def _require_line(draft: InvoiceDraft, line_id: str) -> InvoiceLine:
    line = draft.find_line(line_id)
    if line is None:
        logger.warning(f"Line not found: {line_id}", extra={'line_id': line_id})
        raise LineNotFound(f"Line {line_id} does not exist in this invoice.")
    return line


def _replace_line(draft: InvoiceDraft, updated: InvoiceLine) -> InvoiceDraft:
    lines = tuple(updated if line.id == updated.id else line for line in draft.lines)
    return draft.model_copy(update={"lines": lines})


def add_line(draft: InvoiceDraft) -> Tuple[InvoiceDraft, str]:
    """Append a default line and return the new draft with the line id"""
    line = blank_line()
    return draft.model_copy(update={"lines": draft.lines + (line,)}), line.id


def remove_line(draft: InvoiceDraft, line_id: str) -> InvoiceDraft:
    _require_line(draft, line_id)
    if len(draft.lines) <= 1:
        logger.warning("Refused to remove the last invoice line", extra={'line_id': line_id})
        raise CannotRemoveLastLine("An invoice needs at least one line.")
    lines = tuple(line for line in draft.lines if line.id != line_id)
    return draft.model_copy(update={"lines": lines})


def _parse_tax_rate(value: Any) -> TaxRate:
    if isinstance(value, str):
        value = value.strip().rstrip("%").strip()
    try:
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(value)
        return TaxRate(int(value))
    except (TypeError, ValueError):
        allowed = ", ".join(f"{rate.value}%" for rate in TaxRate)
        raise InvalidLineValue(f"VAT rate must be one of {allowed}.")


def _parse_price(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise InvalidLineValue("Unit price must be a number.")
    if isinstance(value, float):
        value = repr(value)
    if isinstance(value, str):
        # Spanish forms use a decimal comma
        value = value.strip().replace(",", ".")
    try:
        price = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidLineValue(f"Unit price '{value}' is not a number.")
    if not price.is_finite():
        raise InvalidLineValue(f"Unit price '{value}' is not a number.")
    if price < 0:
        raise InvalidLineValue("Unit price cannot be negative.")
    if price != to_cents(price):
        raise InvalidLineValue("Unit price cannot have more than two decimals.")
    return to_cents(price)


def _parse_quantity(value: Any) -> int:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str):
        value = value.strip()
    if isinstance(value, (bool, float)):
        raise InvalidLineValue("Quantity must be a whole number.")
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        raise InvalidLineValue("Quantity must be a whole number.")
    if quantity < 1:
        raise InvalidLineValue("Quantity must be at least 1.")
    return quantity


def update_line(draft: InvoiceDraft, line_id: str, field: str, value: Any) -> InvoiceDraft:
    """Replace a single field of a line"""
    line = _require_line(draft, line_id)

    if field == "quantity":
        value = _parse_quantity(value)
    elif field == "unit_price":
        value = _parse_price(value)
    elif field == "tax_rate":
        value = _parse_tax_rate(value)
    elif field == "description":
        if not isinstance(value, str):
            raise InvalidLineValue("Description must be text.")
    else:
        raise InvalidLineValue(f"Field '{field}' cannot be edited. Editable fields: {', '.join(EDITABLE_FIELDS)}.")

    try:
        updated = InvoiceLine.model_validate({**line.model_dump(), field: value})
    except ValidationError as e:
        raise InvalidLineValue(f"Invalid value for {field}: {e.errors()[0]['msg']}")

    return _replace_line(draft, updated)


async def select_product(draft: InvoiceDraft, line_id: str, product_ref: str, catalog) -> InvoiceDraft:
    """Fill description and unit price of a line from a catalog product"""
    line = _require_line(draft, line_id)
    product = await catalog.find_product(product_ref)
    if product is None:
        logger.warning(f"Product not found in catalog: {product_ref}", extra={'line_id': line_id})
        raise ProductNotFound(f"Product {product_ref} is not in the catalog.")

    updated = line.model_copy(update={
        "product_ref": product.id,
        "description": product.name,
        "unit_price": to_cents(product.price),
    })
    return _replace_line(draft, updated)


def set_client(draft: InvoiceDraft, client_ref) -> InvoiceDraft:
    return draft.model_copy(update={"client_ref": client_ref or None})


def set_notes(draft: InvoiceDraft, notes) -> InvoiceDraft:
    return draft.model_copy(update={"notes": notes or ""})


def validate_draft(draft: InvoiceDraft) -> List[FieldError]:
    """Collect every field-level problem that blocks submission"""
    errors = []
    if not draft.client_ref:
        errors.append(FieldError(field="client_ref", message="Select a client."))
    if not draft.lines:
        errors.append(FieldError(field="lines", message="Add at least one invoice line."))

    for index, line in enumerate(draft.lines, start=1):
        if not line.description.strip():
            errors.append(FieldError(
                field="description", line_id=line.id,
                message=f"Line {index}: description is missing.",
            ))
        if line.quantity < 1:
            errors.append(FieldError(
                field="quantity", line_id=line.id,
                message=f"Line {index}: quantity must be at least 1.",
            ))
        if line.unit_price < 0:
            errors.append(FieldError(
                field="unit_price", line_id=line.id,
                message=f"Line {index}: unit price cannot be negative.",
            ))
    return errors


def is_submittable(draft: InvoiceDraft) -> bool:
    return not validate_draft(draft)
