"""Render the weekly payroll report as a landscape PDF."""
import io
from reportlab.lib.pagesizes import letter, landscape
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import (
    SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer,
    HRFlowable, KeepTogether
)
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_RIGHT

from fieldclock.core.config import settings

DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
HEADER_COLOR = colors.HexColor('#0f3d5e')


def generate_payroll_pdf(report: dict) -> bytes:
    """Generate a payroll PDF from ``PayrollReportService.weekly_report`` output."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(letter),
        rightMargin=0.5 * inch,
        leftMargin=0.5 * inch,
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
    )

    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name='CompanyName',
        parent=styles['Heading1'],
        fontSize=18,
        textColor=HEADER_COLOR,
        spaceAfter=2,
    ))
    styles.add(ParagraphStyle(
        name='SheetTitle',
        parent=styles['Heading2'],
        fontSize=13,
        textColor=colors.HexColor('#334155'),
        spaceAfter=4,
    ))
    styles.add(ParagraphStyle(
        name='EmployeeHeader',
        parent=styles['Heading3'],
        fontSize=11,
        textColor=colors.HexColor('#1e293b'),
        spaceBefore=8,
        spaceAfter=4,
    ))
    styles.add(ParagraphStyle(
        name='SmallRight',
        parent=styles['Normal'],
        fontSize=8,
        alignment=TA_RIGHT,
        textColor=colors.HexColor('#64748b'),
    ))

    story = []
    hrs = lambda n: f"{n:.2f}"
    money = lambda n: f"${n:,.2f}"

    # ── Header ────────────────────────────────────────────────────
    story.append(Paragraph(settings.APP_NAME, styles['CompanyName']))
    story.append(Paragraph(f"Payroll Report, Week {report['label']}", styles['SheetTitle']))
    story.append(HRFlowable(width="100%", thickness=1, color=HEADER_COLOR))
    story.append(Spacer(1, 8))

    if not report["employees"]:
        story.append(Paragraph("No timesheet entries for this week.", styles['Normal']))

    # ── One block per employee ────────────────────────────────────
    for emp in report["employees"]:
        block = []
        title = emp["name"]
        if emp.get("classification"):
            title += f" ({emp['classification']})"
        block.append(Paragraph(title, styles['EmployeeHeader']))

        rows = [["", *DAY_NAMES, "Total"]]
        for label, key in (("Reg", "reg"), ("OT", "ot"), ("DT", "dt"), ("Travel", "travel")):
            total_key = "total_travel" if key == "travel" else f"total_{key}"
            rows.append([label, *[hrs(d[key]) for d in emp["days"]], hrs(emp[total_key])])
        rows.append(["Total", *[hrs(d["total"]) for d in emp["days"]], hrs(emp["total_hours"])])
        rows.append(["Job #", *[", ".join(d["estimates"]) or "-" for d in emp["days"]], ""])

        table = Table(rows, colWidths=[0.8 * inch] + [1.05 * inch] * 7 + [0.9 * inch])
        style = [
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#e2e8f0')),
            ('BACKGROUND', (0, -2), (-1, -2), colors.HexColor('#f8fafc')),
            ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
            ('GRID', (0, 0), (-1, -1), 0.25, colors.HexColor('#cbd5e1')),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ]
        for i, day in enumerate(emp["days"], start=1):
            if day["certified"]:
                style.append(('TEXTCOLOR', (i, 0), (i, 0), colors.HexColor('#b45309')))
        table.setStyle(TableStyle(style))
        block.append(table)
        block.append(Spacer(1, 4))
        block.append(Paragraph(
            f"Site rate {money(emp['rate_site'])}/hr · Travel rate {money(emp['rate_travel'])}/hr · "
            f"<b>Amount {money(emp['total_amount'])}</b>",
            styles['SmallRight'],
        ))
        story.append(KeepTogether(block))

    # ── Totals ────────────────────────────────────────────────────
    totals = report["totals"]
    story.append(Spacer(1, 12))
    story.append(HRFlowable(width="100%", thickness=0.5, color=colors.HexColor('#94a3b8')))
    story.append(Paragraph(
        f"Week totals: Reg {hrs(totals['total_reg'])} · OT {hrs(totals['total_ot'])} · "
        f"DT {hrs(totals['total_dt'])} · Travel {hrs(totals['total_travel'])} · "
        f"<b>{money(totals['total_amount'])}</b>",
        styles['SmallRight'],
    ))

    doc.build(story)
    return buffer.getvalue()
