"""
File exports for the finance payments report, the employee list and single payslips.

Rows are built as flat dicts; the renderers turn a list of rows into CSV,
XLSX (openpyxl) or PDF (reportlab) bytes.
"""

import csv
import io
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from django.utils import timezone
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..models import Employee, Payslip
from ..utils import month_label

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    'csv': 'text/csv',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'pdf': 'application/pdf',
}

PAYMENT_COLUMNS = [
    'id',
    'employee_name',
    'employee_id',
    'staff_no',
    'position',
    'department',
    'bank',
    'bank_acc_no',
    'month',
    'gross_salary',
    'net_pay',
    'paid',
    'created_at',
]

PAYMENT_PDF_COLUMNS = [
    ('Employee', 'employee_name'),
    ('Position', 'position'),
    ('Department', 'department'),
    ('Bank', 'bank'),
    ('Gross Salary', 'gross_salary'),
    ('Net Pay', 'net_pay'),
    ('Status', 'paid'),
    ('Date', 'created_at'),
]

EMPLOYEE_COLUMNS = [
    'staff_no',
    'name',
    'email',
    'position',
    'department',
    'salary',
    'bank',
    'bank_acc_no',
    'phone',
    'is_active',
]


class ExportError(Exception):
    """Raised when export parameters cannot be applied"""
    pass


def normalize_format(value: Optional[str]) -> str:
    """
    Map a requested format to csv, xlsx, pdf or json.

    Missing means xlsx; `excel` is an alias for xlsx; anything unknown is json.
    """
    value = (value or 'excel').lower()
    if value in ('excel', 'xlsx'):
        return 'xlsx'
    if value in ('csv', 'pdf'):
        return value
    return 'json'


def report_filename(prefix: str, extension: str, today: Optional[date] = None) -> str:
    today = today or timezone.localdate()
    return f"{prefix}-{today:%Y-%m-%d}.{extension}"


# Row builders

def filter_payslips(params: Dict[str, Any]):
    queryset = Payslip.objects.select_related('employee__user', 'employee__bank').order_by('-month', 'id')

    try:
        if params.get('start_date'):
            queryset = queryset.filter(month__gte=date.fromisoformat(params['start_date']))
        if params.get('end_date'):
            queryset = queryset.filter(month__lte=date.fromisoformat(params['end_date']))
    except ValueError as e:
        raise ExportError(f"Invalid date filter: {e}")

    if params.get('status'):
        queryset = queryset.filter(paid=params['status'] == 'paid')
    if params.get('department'):
        queryset = queryset.filter(employee__department=params['department'])
    if params.get('position'):
        queryset = queryset.filter(employee__position=params['position'])
    if params.get('employee_id'):
        try:
            employee_id = int(params['employee_id'])
        except (TypeError, ValueError):
            raise ExportError(f"Invalid employee_id filter: {params['employee_id']}")
        queryset = queryset.filter(employee_id=employee_id)

    return queryset


def payment_row(payslip: Payslip) -> Dict[str, Any]:
    employee = payslip.employee
    row = {
        'id': payslip.id,
        'employee_name': employee.user.get_full_name() or 'N/A',
        'employee_id': employee.id,
        'staff_no': employee.staff_no or 'N/A',
        'position': employee.position or 'N/A',
        'department': employee.department or 'N/A',
        'bank': employee.bank.name if employee.bank else 'N/A',
        'bank_acc_no': employee.bank_acc_no or 'N/A',
        'month': month_label(payslip.month),
        'gross_salary': float(payslip.gross_salary),
        'net_pay': float(payslip.net_pay),
        'paid': 'Yes' if payslip.paid else 'No',
        'created_at': timezone.localtime(payslip.created_at).strftime('%Y-%m-%d'),
    }
    # Deductions become extra columns
    for name, amount in (payslip.deductions or {}).items():
        row[name] = amount
    return row


def payment_rows(params: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [payment_row(payslip) for payslip in filter_payslips(params)]


def employee_rows(queryset=None) -> List[Dict[str, Any]]:
    queryset = queryset if queryset is not None else Employee.objects.all()
    return [
        {
            'staff_no': employee.staff_no,
            'name': employee.name,
            'email': employee.email,
            'position': employee.position or '',
            'department': employee.department or '',
            'salary': float(employee.salary),
            'bank': employee.bank.name if employee.bank else '',
            'bank_acc_no': employee.bank_acc_no or '',
            'phone': employee.phone or '',
            'is_active': 'Yes' if employee.is_active else 'No',
        }
        for employee in queryset.select_related('user', 'bank')
    ]


def collect_columns(rows: Sequence[Dict[str, Any]], base: Sequence[str]) -> List[str]:
    """Base columns followed by any extra keys, in first-seen order"""
    columns = list(base)
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return columns


# Renderers

def render_csv(rows: Sequence[Dict[str, Any]], columns: Sequence[str]) -> bytes:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=list(columns), restval='', extrasaction='ignore')
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return output.getvalue().encode('utf-8')


def render_xlsx(rows: Sequence[Dict[str, Any]], columns: Sequence[str], title: str) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")

    for col, header in enumerate(columns, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center")

    for row_idx, row in enumerate(rows, 2):
        for col_idx, column in enumerate(columns, 1):
            ws.cell(row=row_idx, column=col_idx, value=row.get(column))

    for column_cells in ws.columns:
        width = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column_cells)
        ws.column_dimensions[get_column_letter(column_cells[0].column)].width = min(width + 2, 50)

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def render_pdf(rows: Sequence[Dict[str, Any]], columns: Sequence, title: str) -> bytes:
    """
    Render a landscape A4 table. `columns` holds (header, key) pairs.
    """
    output = io.BytesIO()
    doc = SimpleDocTemplate(output, pagesize=landscape(A4))
    styles = getSampleStyleSheet()

    elements = [
        Paragraph(title, styles['Heading1']),
        Paragraph(f"Generated on: {timezone.localtime():%Y-%m-%d %H:%M}", styles['Normal']),
        Spacer(1, 12),
    ]

    if not rows:
        elements.append(Paragraph("No data available for the selected criteria.", styles['Normal']))
    else:
        table_data = [[header for header, _ in columns]]
        for row in rows:
            table_data.append([_pdf_cell(key, row.get(key)) for _, key in columns])

        table = Table(table_data, repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.black),
        ]))
        elements.append(table)

    doc.build(elements)
    return output.getvalue()


def _pdf_cell(key, value):
    if key in ('gross_salary', 'net_pay') and value is not None:
        return f"KSH {value:,.2f}"
    return '' if value is None else str(value)


def payslip_lines(payslip: Payslip) -> List[List[str]]:
    """Gross pay, one line per deduction, the deduction total, net pay and status"""
    deductions = payslip.deductions or {}
    total_deductions = sum(float(amount) for amount in deductions.values())

    lines = [['Gross Salary', f"KSH {float(payslip.gross_salary):,.2f}"]]
    for name, amount in deductions.items():
        # paye, nhif and nssf are acronyms
        label = name.upper() if len(name) <= 4 else name.title()
        lines.append([label, f"KSH {float(amount):,.2f}"])
    lines.append(['Total Deductions', f"KSH {total_deductions:,.2f}"])
    lines.append(['Net Pay', f"KSH {float(payslip.net_pay):,.2f}"])
    lines.append(['Status', 'Paid' if payslip.paid else 'Unpaid'])
    return lines


def render_payslip_pdf(payslip: Payslip) -> bytes:
    """
    Render one payslip on a portrait A4 page: employee details, gross pay,
    each deduction line, total deductions, net pay and payment status.
    """
    employee = payslip.employee
    output = io.BytesIO()
    doc = SimpleDocTemplate(output, pagesize=A4)
    styles = getSampleStyleSheet()

    details = [
        ['Employee', employee.user.get_full_name() or employee.user.username],
        ['Staff No', employee.staff_no or 'N/A'],
        ['Position', employee.position or 'N/A'],
        ['Department', employee.department or 'N/A'],
        ['Bank', employee.bank.name if employee.bank else 'N/A'],
        ['Account No', employee.bank_acc_no or 'N/A'],
    ]

    amounts = payslip_lines(payslip)

    grid = TableStyle([
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.black),
    ])
    details_table = Table(details, colWidths=[120, 300])
    details_table.setStyle(grid)
    amounts_table = Table(amounts, colWidths=[120, 300])
    amounts_table.setStyle(grid)

    doc.build([
        Paragraph(f"Payslip for {month_label(payslip.month)}", styles['Heading1']),
        Paragraph(f"Generated on: {timezone.localtime():%Y-%m-%d %H:%M}", styles['Normal']),
        Spacer(1, 12),
        details_table,
        Spacer(1, 12),
        amounts_table,
    ])
    return output.getvalue()


# Entry points

def export_payments(params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build the financial payments report.

    Returns a dict with `format` and either `rows` (json) or `content`,
    `content_type` and `filename`.
    """
    fmt = normalize_format(params.get('format'))
    rows = payment_rows(params)
    logger.info(f"Exporting {len(rows)} payslips as {fmt}")

    if fmt == 'json':
        return {'format': fmt, 'rows': rows}

    title = 'Financial Payments Report'
    if fmt == 'csv':
        content = render_csv(rows, collect_columns(rows, PAYMENT_COLUMNS))
    elif fmt == 'xlsx':
        content = render_xlsx(rows, collect_columns(rows, PAYMENT_COLUMNS), 'Financial Payments')
    else:
        content = render_pdf(rows, PAYMENT_PDF_COLUMNS, title)

    return {
        'format': fmt,
        'content': content,
        'content_type': CONTENT_TYPES[fmt],
        'filename': report_filename('financial-payments-report', fmt),
    }


def export_employees(fmt: Optional[str], queryset=None) -> Dict[str, Any]:
    fmt = 'csv' if (fmt or '').lower() == 'csv' else 'xlsx'
    rows = employee_rows(queryset)
    if fmt == 'csv':
        content = render_csv(rows, EMPLOYEE_COLUMNS)
    else:
        content = render_xlsx(rows, EMPLOYEE_COLUMNS, 'Employees')
    return {
        'format': fmt,
        'content': content,
        'content_type': CONTENT_TYPES[fmt],
        'filename': report_filename('employees', fmt),
    }


def export_payslip(payslip: Payslip) -> Dict[str, Any]:
    logger.info(f"Exporting payslip {payslip.id} for employee {payslip.employee_id}")
    return {
        'format': 'pdf',
        'content': render_payslip_pdf(payslip),
        'content_type': CONTENT_TYPES['pdf'],
        'filename': f"payslip-{payslip.employee.staff_no}-{payslip.month:%Y-%m}.pdf",
    }
