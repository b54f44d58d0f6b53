"""
Tests for the create_hris_user and reconcile_payroll management commands.
"""

from datetime import date
from decimal import Decimal
from io import StringIO
from unittest.mock import MagicMock, patch

from django.contrib.auth.models import User
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from hris.models import Employee

from .helpers import make_employee


class CreateHrisUserCommandTestCase(TestCase):

    def test_create_user_with_role(self):
        out = StringIO()

        call_command(
            'create_hris_user',
            username='finance_user',
            email='finance@uni.ac.ke',
            password='testpass123',
            role='finance',
            stdout=out,
        )

        user = User.objects.get(username='finance_user')
        self.assertEqual(user.userprofile.role, 'finance')
        self.assertTrue(user.check_password('testpass123'))
        self.assertFalse(Employee.objects.exists())
        self.assertIn('Successfully created user "finance_user"', out.getvalue())
        self.assertIn('Role: Finance', out.getvalue())

    def test_create_user_with_employee_record(self):
        out = StringIO()

        call_command(
            'create_hris_user',
            username='gwanjiru',
            email='gwanjiru@uni.ac.ke',
            password='testpass123',
            first_name='Grace',
            last_name='Wanjiru',
            staff_no='UNI-020',
            department='Library',
            salary='85000',
            stdout=out,
        )

        employee = Employee.objects.get(staff_no='UNI-020')
        self.assertEqual(employee.user.username, 'gwanjiru')
        self.assertEqual(employee.salary, Decimal('85000'))
        self.assertEqual(employee.user.userprofile.role, 'employee')
        self.assertIn('Staff No: UNI-020', out.getvalue())

    def test_duplicates_are_rejected(self):
        make_employee()

        with self.assertRaises(CommandError):
            call_command('create_hris_user', username='jdoe', email='new@uni.ac.ke', password='x')

        with self.assertRaises(CommandError):
            call_command('create_hris_user', username='new', email='jdoe@uni.ac.ke', password='x')

        with self.assertRaises(CommandError):
            call_command('create_hris_user', username='new', email='new@uni.ac.ke', password='x', staff_no='UNI-001')

    def test_invalid_salary(self):
        with self.assertRaises(CommandError):
            call_command(
                'create_hris_user',
                username='new',
                email='new@uni.ac.ke',
                password='x',
                staff_no='UNI-030',
                salary='lots',
            )
        self.assertFalse(User.objects.filter(username='new').exists())


class ReconcilePayrollCommandTestCase(TestCase):

    @patch('hris.management.commands.reconcile_payroll.reconcile_payroll_month')
    def test_sync_run_prints_issues(self, mock_task):
        mock_task.return_value = {
            'message': 'Reconciliation completed: 2 payouts checked, 1 issues',
            'issues': [{'payout_ref': 'FLW-9', 'reason': 'Payment failed at provider'}],
        }
        out = StringIO()

        call_command('reconcile_payroll', month='2025-03', stdout=out)

        mock_task.assert_called_once_with(date(2025, 3, 1).isoformat())
        self.assertIn('Reconciliation completed: 2 payouts checked, 1 issues', out.getvalue())
        self.assertIn('FLW-9: Payment failed at provider', out.getvalue())

    @patch('hris.management.commands.reconcile_payroll.reconcile_payroll_month')
    def test_async_run_queues_task(self, mock_task):
        mock_task.delay.return_value = MagicMock(id='task-42')
        out = StringIO()

        call_command('reconcile_payroll', '--async', month='2025-03', stdout=out)

        mock_task.delay.assert_called_once_with('2025-03-01')
        self.assertIn('Task queued with ID: task-42', out.getvalue())

    def test_invalid_month(self):
        with self.assertRaises(CommandError):
            call_command('reconcile_payroll', month='March')
