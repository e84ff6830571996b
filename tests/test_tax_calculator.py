from decimal import Decimal

from models import InvoiceLine, TaxRate
from tax_calculator import compute_totals, format_currency, to_cents


def line(quantity, price, rate, description="Servicio"):
    return InvoiceLine(description=description, quantity=quantity,
                       unit_price=Decimal(price), tax_rate=rate)


def test_three_line_invoice_totals():
    lines = [
        line(2, "150.00", TaxRate.GENERAL),
        line(1, "500.00", TaxRate.REDUCED),
        line(3, "0", TaxRate.GENERAL),
    ]

    totals = compute_totals(lines)

    assert totals.subtotal == Decimal("800.00")
    assert totals.total_tax == Decimal("113.00")
    assert totals.grand_total == Decimal("913.00")


def test_breakdown_groups_tax_by_rate():
    lines = [
        line(2, "150.00", TaxRate.GENERAL),
        line(1, "500.00", TaxRate.REDUCED),
        line(1, "100.00", TaxRate.GENERAL),
    ]

    breakdown = compute_totals(lines).tax_breakdown

    assert [row.rate for row in breakdown] == [TaxRate.REDUCED, TaxRate.GENERAL]
    assert breakdown[0].base == Decimal("500.00")
    assert breakdown[0].tax == Decimal("50.00")
    assert breakdown[1].base == Decimal("400.00")
    assert breakdown[1].tax == Decimal("84.00")


def test_grand_total_matches_exact_formula_without_drift():
    lines = []
    for quantity in (1, 3, 7):
        for price in ("0.10", "0.33", "19.99", "1234.56"):
            for rate in TaxRate:
                lines.append(line(quantity, price, rate))

    expected = sum(
        (l.quantity * l.unit_price * (1 + Decimal(l.tax_rate.value) / 100) for l in lines),
        Decimal("0"),
    )

    assert compute_totals(lines).grand_total == to_cents(expected)


def test_many_small_amounts_do_not_accumulate_float_error():
    lines = [line(1, "0.10", TaxRate.EXEMPT) for _ in range(30)]

    assert compute_totals(lines).grand_total == Decimal("3.00")


def test_incomplete_and_zero_quantity_lines_count_as_zero():
    lines = [
        line(0, "99.99", TaxRate.GENERAL),
        InvoiceLine(),
        line(1, "10.00", TaxRate.SUPER_REDUCED),
    ]

    totals = compute_totals(lines)

    assert totals.subtotal == Decimal("10.00")
    assert totals.grand_total == Decimal("10.40")


def test_empty_line_set():
    totals = compute_totals([])

    assert totals.subtotal == Decimal("0.00")
    assert totals.grand_total == Decimal("0.00")
    assert totals.tax_breakdown == []


def test_format_currency_uses_spanish_separators():
    assert format_currency(Decimal("1234.5")) == "1.234,50 €"
    assert format_currency(Decimal("0")) == "0,00 €"


def test_breakdown_rows_are_rounded_per_rate_while_totals_stay_exact():
    lines = [
        line(1, "0.01", TaxRate.SUPER_REDUCED),
        line(1, "0.01", TaxRate.GENERAL),
        line(1, "0.03", TaxRate.REDUCED),
    ]

    totals = compute_totals(lines)

    assert [row.tax for row in totals.tax_breakdown] == [Decimal("0.00"), Decimal("0.00"), Decimal("0.00")]
    assert totals.total_tax == Decimal("0.01")
    assert totals.subtotal + totals.total_tax == totals.grand_total
