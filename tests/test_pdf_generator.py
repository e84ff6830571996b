from datetime import date
from decimal import Decimal

import line_set
from models import Client, CompanyProfile
from pdf_generator import render_draft_pdf
from tax_calculator import compute_totals


def test_render_draft_preview():
    draft = line_set.new_draft()
    line_id = draft.lines[0].id
    draft = line_set.update_line(draft, line_id, "description", "Desarrollo <web> & soporte")
    draft = line_set.update_line(draft, line_id, "unit_price", Decimal("500"))
    draft = line_set.set_notes(draft, "Pago por transferencia")
    draft = line_set.set_client(draft, "1")

    pdf = render_draft_pdf(
        draft,
        compute_totals(draft.lines),
        client=Client(id="1", name="Empresa ABC S.L.", nif="B12345678"),
        profile=CompanyProfile(company_name="Mi Empresa S.L.", tax_id="B00000000"),
        issue_date=date(2024, 1, 15),
    )

    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 1000


def test_render_without_client_or_profile():
    draft = line_set.new_draft()

    pdf = render_draft_pdf(draft, compute_totals(draft.lines))

    assert pdf.startswith(b"%PDF")
