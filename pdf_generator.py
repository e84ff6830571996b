import logging
from datetime import date
from io import BytesIO
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.lib.colors import HexColor
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER

from models import Client, CompanyProfile, InvoiceDraft, InvoiceTotals
from tax_calculator import format_currency

logger = logging.getLogger(__name__)


def render_draft_pdf(draft: InvoiceDraft, totals: InvoiceTotals,
                     client: Optional[Client] = None,
                     profile: Optional[CompanyProfile] = None,
                     issue_date: Optional[date] = None) -> bytes:
    """Render an unsealed preview of a draft invoice as PDF bytes"""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=54,
        leftMargin=54,
        topMargin=54,
        bottomMargin=36,
        title="Borrador de factura",
    )

    elements = []

    # Define styles
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'PreviewTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=HexColor('#2E3440'),
        spaceAfter=6,
        alignment=TA_CENTER
    )
    subtitle_style = ParagraphStyle(
        'PreviewSubtitle',
        parent=styles['Normal'],
        textColor=HexColor('#BF616A'),
        alignment=TA_CENTER,
        spaceAfter=18,
    )
    heading_style = ParagraphStyle(
        'PreviewHeading',
        parent=styles['Heading2'],
        fontSize=13,
        textColor=HexColor('#2E3440'),
        spaceAfter=8,
    )
    normal_style = styles['Normal']

    elements.append(Paragraph("FACTURA", title_style))
    elements.append(Paragraph("Borrador sin sellar - sin validez fiscal", subtitle_style))

    issued = issue_date or date.today()
    elements.append(Paragraph(f"Fecha: {issued.strftime('%d/%m/%Y')}", normal_style))
    elements.append(Spacer(1, 0.2*inch))

    # Issuer and client blocks
    if profile and profile.company_name:
        elements.append(Paragraph("Emisor:", heading_style))
        elements.append(Paragraph(escape(profile.company_name), normal_style))
        if profile.tax_id:
            elements.append(Paragraph(f"NIF: {escape(profile.tax_id)}", normal_style))
        if profile.fiscal_address:
            elements.append(Paragraph(escape(profile.fiscal_address), normal_style))
        elements.append(Spacer(1, 0.2*inch))

    elements.append(Paragraph("Cliente:", heading_style))
    if client:
        elements.append(Paragraph(escape(client.name), normal_style))
        if client.nif:
            elements.append(Paragraph(f"NIF: {escape(client.nif)}", normal_style))
    else:
        elements.append(Paragraph(escape(draft.client_ref or "(sin cliente)"), normal_style))
    elements.append(Spacer(1, 0.3*inch))

    # Line items
    items_data = [['Descripción', 'Cant.', 'Precio', 'IVA', 'Base']]
    for line in draft.lines:
        items_data.append([
            Paragraph(escape(line.description or "-"), normal_style),
            str(line.quantity),
            format_currency(line.unit_price),
            f"{line.tax_rate.value}%",
            format_currency(line.base),
        ])

    items_table = Table(items_data, colWidths=[2.9*inch, 0.6*inch, 1.1*inch, 0.6*inch, 1.2*inch])
    items_table.setStyle(TableStyle([
        # Header row
        ('BACKGROUND', (0, 0), (-1, 0), HexColor('#E5E9F0')),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),

        # Grid
        ('GRID', (0, 0), (-1, -1), 0.5, HexColor('#D8DEE9')),
        ('BOX', (0, 0), (-1, -1), 1, HexColor('#2E3440')),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.3*inch))

    # VAT breakdown and totals
    summary_data = [['', 'Base imponible', 'Cuota IVA']]
    for row in totals.tax_breakdown:
        summary_data.append([f"IVA {row.rate.value}%", format_currency(row.base), format_currency(row.tax)])
    summary_data.append(['Subtotal', format_currency(totals.subtotal), format_currency(totals.total_tax)])
    summary_data.append(['TOTAL', '', format_currency(totals.grand_total)])

    summary_table = Table(summary_data, colWidths=[1.2*inch, 1.4*inch, 1.4*inch], hAlign='RIGHT')
    summary_table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
        ('LINEABOVE', (0, -2), (-1, -2), 1, colors.black),

        # Final total
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, -1), (-1, -1), 11),
        ('LINEABOVE', (0, -1), (-1, -1), 2, colors.black),
    ]))
    elements.append(summary_table)

    if draft.notes:
        elements.append(Spacer(1, 0.3*inch))
        elements.append(Paragraph("Notas:", heading_style))
        elements.append(Paragraph(escape(draft.notes), normal_style))

    doc.build(elements)
    logger.info(f"Rendered draft preview with {len(draft.lines)} lines")
    return buffer.getvalue()
