"""
PDF generation utilities using ReportLab.
"""

import io
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from libs.common.currency import format_money


def generate_invoice_pdf(
    order_number: str,
    order_date: datetime,
    customer_name: str,
    address_lines: List[str],
    items: List[
        dict
    ],  # [{"name": str, "quantity": int, "original_price": Decimal, "price": Decimal, "total": Decimal}]
    totals: List[tuple],  # [(label, Decimal)], rendered in order
    currency: str,
    payment_method: Optional[str] = None,
    payment_status: Optional[str] = None,
) -> bytes:
    """
    Generate an order invoice PDF.

    Returns PDF as bytes for storage or download.
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75 * inch,
        leftMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title=f"Invoice {order_number}",
    )

    styles = getSampleStyleSheet()
    elements = []

    title_style = ParagraphStyle(
        "InvoiceTitle",
        parent=styles["Heading1"],
        fontSize=22,
        textColor=colors.HexColor("#0f766e"),
        spaceAfter=16,
    )
    heading_style = ParagraphStyle(
        "InvoiceHeading",
        parent=styles["Heading2"],
        fontSize=13,
        textColor=colors.HexColor("#1e293b"),
        spaceBefore=16,
        spaceAfter=8,
    )
    normal_style = styles["Normal"]

    # Header
    elements.append(Paragraph("Tax Invoice", title_style))
    info_data = [
        ["Order:", order_number],
        ["Date:", order_date.strftime("%B %d, %Y %H:%M")],
        ["Customer:", customer_name],
    ]
    if payment_method:
        info_data.append(["Payment:", f"{payment_method} ({payment_status or '-'})"])

    info_table = Table(info_data, colWidths=[1.5 * inch, 4.5 * inch])
    info_table.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 10),
                ("TEXTCOLOR", (0, 0), (0, -1), colors.HexColor("#64748b")),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ]
        )
    )
    elements.append(info_table)

    # Delivery address
    elements.append(Paragraph("Deliver To", heading_style))
    for line in address_lines:
        elements.append(Paragraph(line, normal_style))
    elements.append(Spacer(1, 12))

    # Line items
    elements.append(Paragraph("Items", heading_style))
    item_data = [["Product", "Qty", "Unit Price", "Discounted", "Total"]]
    for item in items:
        name = item.get("name", "Unknown")
        if len(name) > 40:
            name = name[:37] + "..."
        item_data.append(
            [
                name,
                str(item.get("quantity", 0)),
                format_money(item.get("original_price", Decimal("0")), currency),
                format_money(item.get("price", Decimal("0")), currency),
                format_money(item.get("total", Decimal("0")), currency),
            ]
        )

    item_table = Table(
        item_data,
        colWidths=[2.4 * inch, 0.5 * inch, 1.2 * inch, 1.2 * inch, 1.2 * inch],
    )
    item_table.setStyle(
        TableStyle(
            [
                # Header
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#0f766e")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, 0), 10),
                # Body
                ("FONTSIZE", (0, 1), (-1, -1), 9),
                ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#e2e8f0")),
                ("PADDING", (0, 0), (-1, -1), 6),
            ]
        )
    )
    elements.append(item_table)
    elements.append(Spacer(1, 16))

    # Totals
    totals_data = [[label, format_money(amount, currency)] for label, amount in totals]
    totals_table = Table(totals_data, colWidths=[4.5 * inch, 2 * inch])
    totals_table.setStyle(
        TableStyle(
            [
                ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                ("FONTSIZE", (0, 0), (-1, -1), 10),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ("LINEABOVE", (0, -1), (-1, -1), 1, colors.HexColor("#1e293b")),
                ("PADDING", (0, 0), (-1, -1), 6),
            ]
        )
    )
    elements.append(totals_table)
    elements.append(Spacer(1, 24))

    footer_style = ParagraphStyle(
        "Footer",
        parent=normal_style,
        fontSize=8,
        textColor=colors.HexColor("#94a3b8"),
        alignment=1,  # Center
    )
    elements.append(
        Paragraph("Prices include VAT. Delivery fee is not subject to VAT.", footer_style)
    )

    doc.build(elements)
    buffer.seek(0)
    return buffer.getvalue()
