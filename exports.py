"""
CSV exports and PDF payment receipts
"""
import csv
import io
from datetime import date, datetime

from flask import make_response
from fpdf import FPDF
from fpdf.enums import XPos, YPos

NO_RECORDS_MESSAGE = 'No records to export'


def lookup(record, path):
    """Read a dotted path ('district.name') out of nested dicts"""
    value = record
    for key in path.split('.'):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def format_date(value):
    if not value:
        return ''
    if isinstance(value, (datetime, date)):
        return value.strftime('%Y-%m-%d')
    text = str(value)
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00')).strftime('%Y-%m-%d')
    except ValueError:
        return text[:10]


def field(path):
    return lambda record: lookup(record, path)


def date_field(path):
    return lambda record: format_date(lookup(record, path))


def number_field(path):
    return lambda record: lookup(record, path) or 0


def cell_value(value):
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    if isinstance(value, (datetime, date)):
        return format_date(value)
    return value


def build_csv(columns, records):
    """CSV text with a header row; columns are (header, extractor) pairs"""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([header for header, _ in columns])
    for record in records:
        writer.writerow([cell_value(extract(record)) for _, extract in columns])
    return output.getvalue()


def csv_response(filename, csv_text):
    response = make_response(csv_text)
    response.headers['Content-Type'] = 'text/csv; charset=utf-8'
    response.headers['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def export_filename(prefix, status=None, today=None):
    today = today or date.today()
    status_part = f'_{status}' if status and status != 'all' else ''
    return f'{prefix}{status_part}_{today.strftime("%Y-%m-%d")}.csv'


BENEFICIARY_COLUMNS = [
    ('Beneficiary ID', field('beneficiaryId')),
    ('Name', field('name')),
    ('Phone', field('phone')),
    ('Gender', field('gender')),
    ('Status', field('status')),
    ('Verified', field('isVerified')),
    ('District', field('district.name')),
    ('Area', field('area.name')),
    ('Unit', field('unit.name')),
    ('Registered Date', date_field('createdAt')),
]

APPLICATION_COLUMNS = [
    ('Application Number', field('applicationNumber')),
    ('Beneficiary Name', field('beneficiary.name')),
    ('Phone', field('beneficiary.phone')),
    ('Scheme', field('scheme.name')),
    ('Project', field('project.name')),
    ('Status', field('status')),
    ('Requested Amount', number_field('requestedAmount')),
    ('Approved Amount', number_field('approvedAmount')),
    ('District', field('district.name')),
    ('Area', field('area.name')),
    ('Unit', field('unit.name')),
    ('Applied Date', date_field('createdAt')),
    ('Updated Date', date_field('updatedAt')),
]

PAYMENT_COLUMNS = [
    ('Payment Number', field('paymentNumber')),
    ('Beneficiary Name', field('beneficiaryName')),
    ('Scheme', field('scheme')),
    ('Project', field('project')),
    ('Phase', field('phase')),
    ('Amount', number_field('amount')),
    ('Percentage', number_field('percentage')),
    ('Status', field('status')),
    ('Payment Method', field('method')),
    ('Due Date', date_field('dueDate')),
    ('Payment Date', date_field('paymentDate')),
    ('Cheque Number', field('chequeNumber')),
    ('District', field('district.name')),
    ('Area', field('area.name')),
    ('Unit', field('unit.name')),
]

DONOR_COLUMNS = [
    ('Name', field('name')),
    ('Email', field('email')),
    ('Phone', field('phone')),
    ('Type', field('type')),
    ('Category', field('category')),
    ('Status', field('status')),
    ('Verified', field('isVerified')),
    ('Total Donated', number_field('donationStats.totalDonated')),
    ('Donations', number_field('donationStats.donationCount')),
    ('Last Donation', date_field('donationStats.lastDonation')),
    ('Registered Date', date_field('createdAt')),
]

DONATION_COLUMNS = [
    ('Donation Number', field('donationNumber')),
    ('Donor', field('donor.name')),
    ('Email', field('donor.email')),
    ('Amount', number_field('amount')),
    ('Method', field('method')),
    ('Status', field('status')),
    ('Project', field('project.name')),
    ('Scheme', field('scheme.name')),
    ('Notes', field('notes')),
    ('Donated On', date_field('createdAt')),
    ('Completed On', date_field('completedAt')),
]


def latin1(text):
    """Core PDF fonts only cover Latin-1"""
    return str(text if text is not None else '').encode('latin-1', 'replace').decode('latin-1')


def name_of(value):
    if isinstance(value, dict):
        return value.get('name') or value.get('title') or ''
    return value or ''


def receipt_filename(payment):
    return f"receipt-{payment.get('paymentNumber') or payment.get('id') or 'payment'}.pdf"


def payment_receipt_pdf(payment, organisation='NGO Operations Dashboard'):
    """One-page receipt for a completed payment, as PDF bytes"""
    pdf = FPDF()
    pdf.add_page()

    pdf.set_font('Helvetica', 'B', 16)
    pdf.cell(0, 10, latin1(organisation), new_x=XPos.LMARGIN, new_y=YPos.NEXT, align='C')
    pdf.set_font('Helvetica', '', 12)
    pdf.cell(0, 8, 'Payment Receipt', new_x=XPos.LMARGIN, new_y=YPos.NEXT, align='C')
    pdf.ln(8)

    amount = payment.get('amount') or 0
    try:
        amount_text = f'{float(amount):,.2f}'
    except (TypeError, ValueError):
        amount_text = str(amount)

    beneficiary = payment.get('beneficiary')
    application = payment.get('application') or {}
    rows = [
        ('Receipt No', payment.get('paymentNumber')),
        ('Beneficiary', payment.get('beneficiaryName') or name_of(beneficiary)),
        ('Application No', payment.get('applicationNumber') or application.get('applicationNumber')),
        ('Scheme', name_of(payment.get('scheme'))),
        ('Project', name_of(payment.get('project'))),
        ('Amount', f'Rs. {amount_text}'),
        ('Payment Method', (payment.get('method') or '').replace('_', ' ').title()),
        ('Transaction Ref', payment.get('transactionReference') or payment.get('chequeNumber')),
        ('Payment Date', format_date(payment.get('paymentDate') or payment.get('completedAt'))),
        ('Status', (payment.get('status') or '').title()),
    ]

    for label, value in rows:
        pdf.set_font('Helvetica', 'B', 11)
        pdf.cell(55, 8, latin1(label), border=1)
        pdf.set_font('Helvetica', '', 11)
        pdf.cell(0, 8, latin1(value or '-'), border=1, new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    pdf.ln(10)
    pdf.set_font('Helvetica', 'I', 9)
    pdf.cell(0, 6, 'This is a computer generated receipt and does not require a signature.',
             new_x=XPos.LMARGIN, new_y=YPos.NEXT, align='C')

    return bytes(pdf.output())
