# =====================================================
# FILE: app/services/certificate_service.py
# Identity verification certificate (PDF)
# =====================================================

from io import BytesIO
import logging

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, HRFlowable

from app.services.identity_service import IdentityCertificate
from app.services.validation_service import METHOD_FALLBACK

logger = logging.getLogger(__name__)

DOCUMENT_TYPE_LABELS = {
    "passport": "Passport",
    "national_id": "National ID",
    "drivers_license": "Driver's License",
    "other": "Other",
}


def render_certificate_pdf(certificate: IdentityCertificate) -> bytes:
    """Render the certificate as a single-page A4 PDF"""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=inch,
        rightMargin=inch,
        topMargin=inch,
        bottomMargin=inch,
        title="Identity Verification Certificate",
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "CertificateTitle",
        parent=styles["Title"],
        alignment=TA_CENTER,
        textColor=colors.HexColor("#1e3a5f"),
    )
    note_style = ParagraphStyle(
        "CertificateNote",
        parent=styles["Normal"],
        fontSize=9,
        textColor=colors.HexColor("#6b7280"),
    )

    method = certificate.validation_method
    if method == METHOD_FALLBACK:
        method_label = "Completeness check only (document content NOT verified)"
    else:
        method_label = "Document content verified (OCR)"

    rows = [
        ["Certificate ID", certificate.certificate_id],
        ["Name", certificate.full_name],
        ["Document type", DOCUMENT_TYPE_LABELS.get(certificate.document_type, certificate.document_type)],
        ["Nationality", certificate.nationality],
        ["Validation", method_label],
        ["Score", f"{certificate.validation_score:.2f}"],
        ["Verified at", certificate.verified_at],
        ["Ledger receipt", certificate.ledger_receipt_id],
        ["Ledger sequence", str(certificate.ledger_sequence)],
        ["Verification hash", certificate.verification_hash],
    ]
    table = Table(
        [[Paragraph(label, styles["Normal"]), Paragraph(value, styles["Normal"])] for label, value in rows],
        colWidths=[1.7 * inch, 4.3 * inch],
    )
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#f3f4f6")),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#d1d5db")),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
    ]))

    story = [
        Paragraph("Identity Verification Certificate", title_style),
        HRFlowable(width="100%", color=colors.HexColor("#1e3a5f")),
        Spacer(1, 0.3 * inch),
        table,
        Spacer(1, 0.3 * inch),
        Paragraph(f"Issued at {certificate.issued_at}", note_style),
    ]
    doc.build(story)

    pdf_bytes = buffer.getvalue()
    logger.info(f"Rendered certificate {certificate.certificate_id[:16]}... ({len(pdf_bytes)} bytes)")
    return pdf_bytes
