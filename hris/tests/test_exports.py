"""
Tests for the payments report and employee list exports.
"""

import csv
import io
from datetime import date
from decimal import Decimal

from django.test import TestCase
from openpyxl import load_workbook

from hris.models import Bank, Employee, Payslip
from hris.services.exports import (
    ExportError,
    PAYMENT_COLUMNS,
    export_employees,
    export_payments,
    export_payslip,
    normalize_format,
    payslip_lines,
    render_csv,
    report_filename,
)

from .helpers import make_employee


class ExportHelpersTestCase(TestCase):

    def test_normalize_format(self):
        self.assertEqual(normalize_format(None), 'xlsx')
        self.assertEqual(normalize_format('excel'), 'xlsx')
        self.assertEqual(normalize_format('XLSX'), 'xlsx')
        self.assertEqual(normalize_format('csv'), 'csv')
        self.assertEqual(normalize_format('pdf'), 'pdf')
        self.assertEqual(normalize_format('yaml'), 'json')

    def test_report_filename(self):
        self.assertEqual(
            report_filename('financial-payments-report', 'pdf', today=date(2025, 3, 15)),
            'financial-payments-report-2025-03-15.pdf'
        )

    def test_csv_without_rows_keeps_header(self):
        content = render_csv([], PAYMENT_COLUMNS).decode('utf-8')
        self.assertEqual(content.strip(), ','.join(PAYMENT_COLUMNS))


class PaymentExportTestCase(TestCase):

    def setUp(self):
        bank = Bank.objects.create(name='Equity Bank', code='068')
        self.jane = make_employee(department='Finance', position='Accountant', bank=bank, bank_acc_no='0123')
        self.john = make_employee(
            username='jsmith',
            staff_no='UNI-002',
            first_name='John',
            last_name='Smith',
            department='Computing',
            position='Lecturer',
        )
        Payslip.objects.create(
            employee=self.jane,
            month=date(2025, 3, 1),
            gross_salary=Decimal('100000.00'),
            deductions={'paye': 30000.0},
            net_pay=Decimal('70000.00'),
            paid=True,
        )
        Payslip.objects.create(
            employee=self.john,
            month=date(2025, 2, 1),
            gross_salary=Decimal('100000.00'),
            deductions={'paye': 30000.0, 'nhif': 1700.0},
            net_pay=Decimal('68300.00'),
        )

    def test_json_rows(self):
        result = export_payments({'format': 'json'})

        self.assertEqual(result['format'], 'json')
        rows = result['rows']
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]['employee_name'], 'Jane Doe')
        self.assertEqual(rows[0]['bank'], 'Equity Bank')
        self.assertEqual(rows[0]['month'], 'March 2025')
        self.assertEqual(rows[0]['paid'], 'Yes')
        self.assertEqual(rows[0]['paye'], 30000.0)
        self.assertEqual(rows[1]['bank'], 'N/A')
        self.assertEqual(rows[1]['nhif'], 1700.0)

    def test_filters(self):
        self.assertEqual(len(export_payments({'format': 'json', 'status': 'paid'})['rows']), 1)
        self.assertEqual(len(export_payments({'format': 'json', 'status': 'unpaid'})['rows']), 1)
        self.assertEqual(len(export_payments({'format': 'json', 'department': 'Computing'})['rows']), 1)
        self.assertEqual(len(export_payments({'format': 'json', 'position': 'Accountant'})['rows']), 1)
        self.assertEqual(len(export_payments({'format': 'json', 'employee_id': self.john.id})['rows']), 1)
        self.assertEqual(len(export_payments({'format': 'json', 'start_date': '2025-03-01'})['rows']), 1)
        self.assertEqual(
            len(export_payments({'format': 'json', 'start_date': '2025-01-01', 'end_date': '2025-02-28'})['rows']),
            1
        )

    def test_invalid_date_filter(self):
        with self.assertRaises(ExportError):
            export_payments({'format': 'json', 'start_date': '03/2025'})

    def test_invalid_employee_filter(self):
        with self.assertRaises(ExportError) as ctx:
            export_payments({'format': 'json', 'employee_id': 'abc'})

        self.assertIn('employee_id', str(ctx.exception))

    def test_csv_export(self):
        result = export_payments({'format': 'csv'})

        self.assertEqual(result['content_type'], 'text/csv')
        self.assertTrue(result['filename'].startswith('financial-payments-report-'))
        self.assertTrue(result['filename'].endswith('.csv'))

        rows = list(csv.DictReader(io.StringIO(result['content'].decode('utf-8'))))
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]['staff_no'], 'UNI-001')
        self.assertEqual(rows[0]['nhif'], '')
        self.assertEqual(rows[1]['nhif'], '1700.0')

    def test_xlsx_export(self):
        result = export_payments({})

        self.assertEqual(result['format'], 'xlsx')
        self.assertTrue(result['filename'].endswith('.xlsx'))

        ws = load_workbook(io.BytesIO(result['content'])).active
        self.assertEqual(ws.title, 'Financial Payments')
        header = [cell.value for cell in ws[1]]
        self.assertEqual(header[:len(PAYMENT_COLUMNS)], PAYMENT_COLUMNS)
        self.assertIn('paye', header)
        self.assertEqual(ws.max_row, 3)

    def test_pdf_export(self):
        result = export_payments({'format': 'pdf'})

        self.assertEqual(result['content_type'], 'application/pdf')
        self.assertTrue(result['content'].startswith(b'%PDF'))

    def test_pdf_export_without_rows(self):
        result = export_payments({'format': 'pdf', 'department': 'Nowhere'})
        self.assertTrue(result['content'].startswith(b'%PDF'))


class EmployeeExportTestCase(TestCase):

    def setUp(self):
        make_employee(department='Finance', phone='0712345678')

    def test_csv(self):
        result = export_employees('csv', Employee.objects.all())

        rows = list(csv.DictReader(io.StringIO(result['content'].decode('utf-8'))))
        self.assertEqual(rows[0]['name'], 'Jane Doe')
        self.assertEqual(rows[0]['email'], 'jdoe@uni.ac.ke')
        self.assertEqual(rows[0]['phone'], '0712345678')
        self.assertEqual(rows[0]['is_active'], 'Yes')

    def test_defaults_to_xlsx(self):
        result = export_employees(None)

        self.assertEqual(result['format'], 'xlsx')
        ws = load_workbook(io.BytesIO(result['content'])).active
        self.assertEqual(ws.title, 'Employees')
        self.assertEqual(ws.cell(row=2, column=1).value, 'UNI-001')


class PayslipExportTestCase(TestCase):

    def setUp(self):
        self.employee = make_employee(department='Finance', position='Accountant')
        self.payslip = Payslip.objects.create(
            employee=self.employee,
            month=date(2025, 3, 1),
            gross_salary=Decimal('100000.00'),
            deductions={'paye': 30000.0, 'nhif': 1700.0, 'other': 300.0},
            net_pay=Decimal('68000.00'),
        )

    def test_payslip_lines(self):
        """Test the payslip itemises every deduction and totals them."""
        self.assertEqual(payslip_lines(self.payslip), [
            ['Gross Salary', 'KSH 100,000.00'],
            ['PAYE', 'KSH 30,000.00'],
            ['NHIF', 'KSH 1,700.00'],
            ['Other', 'KSH 300.00'],
            ['Total Deductions', 'KSH 32,000.00'],
            ['Net Pay', 'KSH 68,000.00'],
            ['Status', 'Unpaid'],
        ])

    def test_payslip_lines_paid_without_deductions(self):
        self.payslip.deductions = {}
        self.payslip.paid = True

        lines = payslip_lines(self.payslip)

        self.assertEqual(lines[1], ['Total Deductions', 'KSH 0.00'])
        self.assertEqual(lines[-1], ['Status', 'Paid'])

    def test_export_payslip(self):
        result = export_payslip(self.payslip)

        self.assertEqual(result['content_type'], 'application/pdf')
        self.assertEqual(result['filename'], 'payslip-UNI-001-2025-03.pdf')
        self.assertTrue(result['content'].startswith(b'%PDF'))
