from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable

from models import InvoiceLine, InvoiceTotals, TaxBreakdownRow, TaxRate

CENT = Decimal("0.01")


def to_cents(amount: Decimal) -> Decimal:
    """Quantize an amount to cent precision"""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(amount: Decimal) -> str:
    """Format amount as euros, Spanish style"""
    text = f"{to_cents(amount):,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".") + " €"


def compute_totals(lines: Iterable[InvoiceLine]) -> InvoiceTotals:
    """Derive subtotal, per-rate tax breakdown and grand total.

    Amounts are accumulated unrounded and quantized once, so the grand total
    equals the sum of quantity x price x (1 + rate) over all lines. Breakdown
    rows are rounded per rate, so their taxes may differ from ``total_tax`` by
    a cent; ``subtotal + total_tax`` always equals ``grand_total``.
    """
    subtotal = Decimal("0")
    total_tax = Decimal("0")
    bases: Dict[TaxRate, Decimal] = {}
    taxes: Dict[TaxRate, Decimal] = {}

    for line in lines:
        base = line.base
        tax = line.tax
        subtotal += base
        total_tax += tax
        bases[line.tax_rate] = bases.get(line.tax_rate, Decimal("0")) + base
        taxes[line.tax_rate] = taxes.get(line.tax_rate, Decimal("0")) + tax

    breakdown = [
        TaxBreakdownRow(rate=rate, base=to_cents(bases[rate]), tax=to_cents(taxes[rate]))
        for rate in sorted(bases, key=lambda r: r.value)
    ]

    return InvoiceTotals(
        subtotal=to_cents(subtotal),
        tax_breakdown=breakdown,
        total_tax=to_cents(total_tax),
        grand_total=to_cents(subtotal + total_tax),
    )
