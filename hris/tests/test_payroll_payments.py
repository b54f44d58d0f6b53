"""
Tests for the payroll payment service.

This test module covers:
- Bank (Flutterwave) and M-Pesa (Daraja) salary payments with mocked clients
- Payslip and payout bookkeeping, notifications on success and failure
- Bulk runs, payout verification, reconciliation and M-Pesa result callbacks
"""

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.test import TestCase, override_settings
from django.utils import timezone

from hris.models import Bank, Notification, Payout, Payslip
from hris.services.gateways import GatewayConfigurationError, PaymentGatewayError
from hris.services.payroll_payments import (
    PaymentInstruction,
    PayrollPaymentService,
    normalize_phone,
    process_bulk_payroll,
    process_payroll_payment,
    reconcile_payroll,
    summarize_results,
    verify_payroll_payment,
)

from .helpers import make_employee, make_user


@override_settings(HRIS_PAYE_RATE='0.30')
class PayrollPaymentTestCase(TestCase):

    def setUp(self):
        self.month = date(2025, 3, 1)
        self.bank = Bank.objects.create(name='Equity Bank', code='068')
        self.employee = make_employee(
            bank=self.bank,
            bank_acc_no='0123456789',
            phone='0712345678',
            nhif_rate=Decimal('1700.00'),
            nssf_rate=Decimal('1080.00'),
        )
        self.admin = make_user('admin', role='admin')

        self.flutterwave = MagicMock()
        self.flutterwave.initiate_transfer.return_value = {
            'status': 'success',
            'data': {'id': 9876, 'reference': 'FLW-REF-1', 'status': 'NEW'},
        }
        self.daraja = MagicMock()
        self.daraja.b2c_payment.return_value = {
            'ConversationID': 'AG_20250301_0001',
            'ResponseCode': '0',
        }
        self.service = PayrollPaymentService(flutterwave=self.flutterwave, daraja=self.daraja)

    def bank_instruction(self, **overrides):
        data = {
            'employee_id': self.employee.id,
            'amount': Decimal('67220.00'),
            'payment_method': 'bank',
            'bank_acc_no': '0123456789',
        }
        data.update(overrides)
        return PaymentInstruction.from_dict(data)

    def mpesa_instruction(self, **overrides):
        data = {
            'employee_id': self.employee.id,
            'amount': Decimal('5000.00'),
            'payment_method': 'mpesa',
            'phone': '0712345678',
        }
        data.update(overrides)
        return PaymentInstruction.from_dict(data)

    def admin_failures(self):
        return Notification.objects.filter(recipient=self.admin, title='Payroll Payment Failed')

    # Bank transfers

    def test_bank_payment_success(self):
        """Test a bank transfer records a paid payslip, a payout and a notification."""
        result = self.service.process_payment(self.bank_instruction(), self.month, 'Salary')

        self.assertEqual(result, {
            'success': True,
            'employee_id': self.employee.id,
            'transaction_id': '9876',
            'payout_ref': 'FLW-REF-1',
        })
        self.flutterwave.initiate_transfer.assert_called_once_with(
            Decimal('67220.00'), '0123456789', '068', 'Salary for March 2025', 'Jane Doe'
        )

        payslip = Payslip.objects.get(employee=self.employee, month=self.month)
        self.assertTrue(payslip.paid)
        self.assertEqual(payslip.payout_ref, 'FLW-REF-1')
        self.assertEqual(payslip.gross_salary, Decimal('100000.00'))
        self.assertEqual(payslip.net_pay, Decimal('67220.00'))
        self.assertEqual(payslip.deductions, {'paye': 30000.0, 'nhif': 1700.0, 'nssf': 1080.0})

        payout = Payout.objects.get(ref='FLW-REF-1')
        self.assertEqual(payout.status, Payout.STATUS_PROCESSING)
        self.assertEqual(payout.type, Payout.TYPE_SALARY)
        self.assertEqual(payout.transaction_id, '9876')
        self.assertEqual(payout.bank, 'Equity Bank')
        self.assertEqual(payout.amount, Decimal('67220.00'))

        notification = Notification.objects.get(recipient=self.employee.user)
        self.assertEqual(notification.title, 'Salary Payment Processed')
        self.assertEqual(notification.type, 'PAYMENT')
        self.assertEqual(self.service.processed_count, 1)

    def test_existing_payslip_is_marked_paid(self):
        Payslip.objects.create(
            employee=self.employee,
            month=self.month,
            gross_salary=Decimal('100000.00'),
            deductions={'paye': 30000.0},
            net_pay=Decimal('70000.00'),
        )

        self.service.process_payment(self.bank_instruction(), self.month, 'Salary')

        payslip = Payslip.objects.get(employee=self.employee, month=self.month)
        self.assertTrue(payslip.paid)
        self.assertEqual(payslip.payout_ref, 'FLW-REF-1')
        self.assertEqual(payslip.net_pay, Decimal('70000.00'))
        self.assertEqual(Payslip.objects.count(), 1)

    def test_instruction_bank_used_when_employee_has_none(self):
        self.employee.bank = None
        self.employee.save()

        result = self.service.process_payment(self.bank_instruction(bank_id='01'), self.month, 'Salary')

        self.assertTrue(result['success'])
        self.assertEqual(self.flutterwave.initiate_transfer.call_args[0][2], '01')
        self.assertEqual(Payout.objects.get().bank, '01')

    def test_employee_bank_code_takes_precedence(self):
        self.service.process_payment(self.bank_instruction(bank_id='01'), self.month, 'Salary')
        self.assertEqual(self.flutterwave.initiate_transfer.call_args[0][2], '068')

    def test_beneficiary_falls_back_to_staff_no(self):
        self.employee.user.first_name = ''
        self.employee.user.last_name = ''
        self.employee.user.save()

        self.service.process_payment(self.bank_instruction(), self.month, 'Salary')

        self.assertEqual(self.flutterwave.initiate_transfer.call_args[0][4], 'UNI-001')

    def test_missing_bank_code_fails(self):
        self.employee.bank = None
        self.employee.save()

        result = self.service.process_payment(self.bank_instruction(), self.month, 'Salary')

        self.assertFalse(result['success'])
        self.assertIn('Bank code not found', result['error'])
        self.flutterwave.initiate_transfer.assert_not_called()

    def test_missing_account_number_fails_and_notifies_admin(self):
        result = self.service.process_payment(self.bank_instruction(bank_acc_no=''), self.month, 'Salary')

        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'Bank account number required for bank transfer')
        self.assertFalse(Payout.objects.exists())
        self.assertFalse(Payslip.objects.exists())

        notification = self.admin_failures().get()
        self.assertEqual(notification.type, 'ERROR')
        self.assertEqual(
            notification.message,
            f'Payment failed for employee {self.employee.id}: Bank account number required for bank transfer'
        )

    def test_unknown_employee(self):
        result = self.service.process_payment(self.bank_instruction(employee_id=999999), self.month, 'Salary')

        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'Employee with ID 999999 not found')

    def test_invalid_payment_method(self):
        result = self.service.process_payment(self.bank_instruction(payment_method='cash'), self.month, 'Salary')

        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'Invalid payment method: cash')

    def test_non_positive_amount_rejected(self):
        for amount in [Decimal('0'), Decimal('-100'), 'abc']:
            result = self.service.process_payment(self.bank_instruction(amount=amount), self.month, 'Salary')
            self.assertFalse(result['success'])
            self.assertIn('Amount must be a positive number', result['error'])

        self.flutterwave.initiate_transfer.assert_not_called()

    def test_provider_error_is_reported(self):
        self.flutterwave.initiate_transfer.side_effect = PaymentGatewayError(
            'Flutterwave API error: Insufficient balance'
        )

        result = self.service.process_payment(self.bank_instruction(), self.month, 'Salary')

        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'Flutterwave API error: Insufficient balance')
        self.assertFalse(Payout.objects.exists())
        self.assertEqual(self.admin_failures().count(), 1)
        self.assertEqual(self.service.failed_count, 1)

    def test_failure_without_admin_still_returns_result(self):
        self.admin.delete()

        result = self.service.process_payment(self.bank_instruction(bank_acc_no=None), self.month, 'Salary')

        self.assertFalse(result['success'])

    def test_payout_ref_fallback(self):
        self.flutterwave.initiate_transfer.return_value = {'status': 'success', 'data': {'status': 'NEW'}}

        result = self.service.process_payment(self.bank_instruction(), self.month, 'Salary')

        self.assertTrue(result['success'])
        self.assertTrue(result['payout_ref'].startswith('PAYOUT_'))
        self.assertIsNone(result['transaction_id'])

    # M-Pesa

    def test_mpesa_payment_success(self):
        result = self.service.process_payment(self.mpesa_instruction(), self.month, 'Salary')

        self.assertTrue(result['success'])
        self.assertEqual(result['transaction_id'], 'AG_20250301_0001')
        self.assertEqual(result['payout_ref'], 'AG_20250301_0001')
        self.daraja.b2c_payment.assert_called_once_with(
            Decimal('5000.00'), '254712345678', 'Salary for March 2025'
        )

        payout = Payout.objects.get(ref='AG_20250301_0001')
        self.assertTrue(payout.is_mpesa)
        self.assertEqual(payout.transaction_id, 'AG_20250301_0001')
        self.flutterwave.initiate_transfer.assert_not_called()

    def test_mpesa_requires_phone(self):
        result = self.service.process_payment(self.mpesa_instruction(phone=''), self.month, 'Salary')

        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'Phone number required for M-Pesa payment')

    def test_normalize_phone(self):
        self.assertEqual(normalize_phone('0712345678'), '254712345678')
        self.assertEqual(normalize_phone('+254 712 345 678'), '254712345678')
        self.assertEqual(normalize_phone('712345678'), '254712345678')
        self.assertEqual(normalize_phone('254712345678'), '254712345678')

    # Bulk

    def test_bulk_payroll_keeps_order(self):
        other = make_employee(username='jsmith', staff_no='UNI-002', first_name='John', last_name='Smith')
        instructions = [
            self.bank_instruction(amount='67220.00'),
            PaymentInstruction.from_dict({
                'employee_id': other.id,
                'amount': '-5',
                'payment_method': 'bank',
                'bank_acc_no': '999',
            }),
            self.mpesa_instruction(amount='5000'),
        ]

        results = self.service.process_bulk(instructions, self.month, 'Salary')

        self.assertEqual([r['success'] for r in results], [True, False, True])
        self.assertEqual([r['employee_id'] for r in results], [self.employee.id, other.id, self.employee.id])
        self.assertEqual(summarize_results(results), {'total': 3, 'successful': 2, 'failed': 1})
        self.assertEqual(instructions[0].amount, '67220.00')
        self.assertEqual(Payout.objects.get(employee=self.employee, bank='Equity Bank').amount, Decimal('67220.00'))


class PayoutVerificationTestCase(TestCase):

    def setUp(self):
        self.employee = make_employee()
        self.flutterwave = MagicMock()
        self.daraja = MagicMock()
        self.service = PayrollPaymentService(flutterwave=self.flutterwave, daraja=self.daraja)

        self.bank_payout = Payout.objects.create(
            ref='FLW-REF-1',
            employee=self.employee,
            amount=Decimal('67220.00'),
            bank='Equity Bank',
            transaction_id='9876',
        )
        self.mpesa_payout = Payout.objects.create(
            ref='AG_1',
            employee=self.employee,
            amount=Decimal('5000.00'),
            bank=Payout.MPESA,
            transaction_id='AG_1',
        )
        self.payslip = Payslip.objects.create(
            employee=self.employee,
            month=date(2025, 3, 1),
            gross_salary=Decimal('100000.00'),
            net_pay=Decimal('67220.00'),
            payout_ref='FLW-REF-1',
        )

    def test_flutterwave_success_marks_payslip_paid(self):
        self.flutterwave.verify_transfer.return_value = {'status': 'success', 'data': {'status': 'SUCCESSFUL'}}

        result = self.service.verify_payment('FLW-REF-1')

        self.assertTrue(result['success'])
        self.assertEqual(result['status'], Payout.STATUS_SUCCESS)
        self.flutterwave.verify_transfer.assert_called_once_with('9876')
        self.bank_payout.refresh_from_db()
        self.payslip.refresh_from_db()
        self.assertEqual(self.bank_payout.status, Payout.STATUS_SUCCESS)
        self.assertTrue(self.payslip.paid)

    def test_flutterwave_status_mapping(self):
        cases = [('FAILED', Payout.STATUS_FAILED), ('NEW', Payout.STATUS_PENDING), ('success', Payout.STATUS_SUCCESS)]
        for provider_status, expected in cases:
            self.flutterwave.verify_transfer.return_value = {'data': {'status': provider_status}}
            result = self.service.verify_payment('FLW-REF-1')
            self.assertEqual(result['status'], expected)

    def test_failed_transfer_leaves_payslip_flag(self):
        self.flutterwave.verify_transfer.return_value = {'data': {'status': 'FAILED'}}

        self.service.verify_payment('FLW-REF-1')

        self.payslip.refresh_from_db()
        self.assertFalse(self.payslip.paid)

    def test_flutterwave_error_marks_failed(self):
        self.flutterwave.verify_transfer.side_effect = PaymentGatewayError('Flutterwave unreachable')

        result = self.service.verify_payment('FLW-REF-1')

        self.assertTrue(result['success'])
        self.assertEqual(result['status'], Payout.STATUS_FAILED)
        self.assertEqual(result['verification'], {'error': 'Flutterwave unreachable'})

    def test_missing_flutterwave_configuration(self):
        service = PayrollPaymentService(daraja=self.daraja)
        service._get_flutterwave = MagicMock(side_effect=GatewayConfigurationError('Flutterwave not configured'))

        result = service.verify_payment('FLW-REF-1')

        self.assertFalse(result['success'])
        self.bank_payout.refresh_from_db()
        self.assertEqual(self.bank_payout.status, Payout.STATUS_PROCESSING)

    def test_mpesa_result_codes(self):
        cases = [
            ({'Result': {'ResultCode': 0}}, Payout.STATUS_SUCCESS),
            ({'Result': {'ResultCode': '2001'}}, Payout.STATUS_FAILED),
            ({'ResponseCode': '0'}, Payout.STATUS_PENDING),
        ]
        for response, expected in cases:
            self.daraja.transaction_status.return_value = response
            result = self.service.verify_payment('AG_1')
            self.assertEqual(result['status'], expected)

        self.daraja.transaction_status.assert_called_with('AG_1')

    def test_mpesa_error_is_reported(self):
        self.daraja.transaction_status.side_effect = PaymentGatewayError('Daraja unreachable')

        result = self.service.verify_payment('AG_1')

        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'Daraja unreachable')

    def test_unknown_payout(self):
        result = self.service.verify_payment('NOPE')

        self.assertFalse(result['success'])
        self.assertIn('not found', result['error'])

    def test_settle_mpesa_result(self):
        payout = self.service.settle_mpesa_result({
            'Result': {'ConversationID': 'AG_1', 'ResultCode': 0, 'ResultDesc': 'Success'}
        })

        self.assertEqual(payout, self.mpesa_payout)
        self.mpesa_payout.refresh_from_db()
        self.assertEqual(self.mpesa_payout.status, Payout.STATUS_SUCCESS)

    def test_settle_mpesa_result_unknown_conversation(self):
        self.assertIsNone(self.service.settle_mpesa_result({'Result': {'ConversationID': 'AG_X', 'ResultCode': 0}}))
        self.assertIsNone(self.service.settle_mpesa_result({}))


class ReconciliationTestCase(TestCase):

    def setUp(self):
        self.employee = make_employee()
        self.flutterwave = MagicMock()
        self.daraja = MagicMock()
        self.service = PayrollPaymentService(flutterwave=self.flutterwave, daraja=self.daraja)
        self.today = timezone.localdate()

    def make_payout(self, ref, status=Payout.STATUS_PROCESSING, bank='Equity Bank'):
        return Payout.objects.create(
            ref=ref,
            employee=self.employee,
            amount=Decimal('1000.00'),
            status=status,
            bank=bank,
            transaction_id=ref,
        )

    def test_reconcile_checks_outstanding_payouts_of_month(self):
        self.make_payout('OK-1')
        self.make_payout('BAD-1', status=Payout.STATUS_PENDING)
        self.make_payout('DONE-1', status=Payout.STATUS_SUCCESS)
        old = self.make_payout('OLD-1')
        Payout.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=62))

        def verify(transfer_id):
            status = 'SUCCESSFUL' if transfer_id.startswith('OK') else 'FAILED'
            return {'data': {'status': status}}

        self.flutterwave.verify_transfer.side_effect = verify

        result = self.service.reconcile(self.today)

        self.assertEqual(result['checked'], 2)
        statuses = {row['payout_ref']: row['status'] for row in result['results']}
        self.assertEqual(statuses, {'OK-1': Payout.STATUS_SUCCESS, 'BAD-1': Payout.STATUS_FAILED})
        self.assertEqual(result['issues'], [{'payout_ref': 'BAD-1', 'reason': 'Payment failed at provider'}])
        self.assertEqual(result['month'], f'{self.today:%Y-%m}')
        self.assertEqual(Payout.objects.get(ref='OLD-1').status, Payout.STATUS_PROCESSING)

    def test_verification_errors_become_issues(self):
        self.make_payout('AG_1', bank=Payout.MPESA)
        self.daraja.transaction_status.side_effect = PaymentGatewayError('Daraja unreachable')

        result = self.service.reconcile(self.today)

        self.assertEqual(result['results'], [])
        self.assertEqual(result['issues'], [{'payout_ref': 'AG_1', 'reason': 'Daraja unreachable'}])

    def test_nothing_to_reconcile(self):
        result = self.service.reconcile(self.today)
        self.assertEqual(result['checked'], 0)
        self.assertIn('0 payouts checked', result['message'])


@patch('hris.services.payroll_payments.get_daraja_client')
@patch('hris.services.payroll_payments.get_flutterwave_client')
class PaymentFunctionsTestCase(TestCase):
    """Test the module-level entry points build their clients from settings."""

    def setUp(self):
        self.employee = make_employee(bank=Bank.objects.create(name='KCB', code='01'), bank_acc_no='555')
        self.month = timezone.localdate()

    def test_process_payroll_payment(self, mock_flutterwave, mock_daraja):
        mock_flutterwave.return_value.initiate_transfer.return_value = {'data': {'id': 5, 'reference': 'FLW-5'}}
        instruction = PaymentInstruction.from_dict({
            'employee_id': self.employee.id,
            'amount': Decimal('1000.00'),
            'payment_method': 'bank',
            'bank_acc_no': '555',
        })

        result = process_payroll_payment(instruction, self.month, 'Salary')

        self.assertTrue(result['success'])
        mock_daraja.assert_not_called()
        mock_flutterwave.return_value.close.assert_called_once()

    def test_process_bulk_and_verify(self, mock_flutterwave, mock_daraja):
        mock_daraja.return_value.b2c_payment.return_value = {'ConversationID': 'AG_9'}
        mock_daraja.return_value.transaction_status.return_value = {'Result': {'ResultCode': 0}}
        instruction = PaymentInstruction.from_dict({
            'employee_id': self.employee.id,
            'amount': '2500',
            'payment_method': 'mpesa',
            'phone': '0722000000',
        })

        results = process_bulk_payroll([instruction], self.month, 'Salary')
        self.assertEqual(results[0]['payout_ref'], 'AG_9')

        verification = verify_payroll_payment('AG_9')
        self.assertEqual(verification['status'], Payout.STATUS_SUCCESS)
        self.assertTrue(Payslip.objects.get(payout_ref='AG_9').paid)
        mock_flutterwave.assert_not_called()
        self.assertEqual(mock_daraja.return_value.close.call_count, 2)

    def test_reconcile_payroll(self, mock_flutterwave, mock_daraja):
        result = reconcile_payroll(self.month)

        self.assertEqual(result['checked'], 0)
        self.assertEqual(result['issues'], [])

    def test_verify_closes_client_on_error(self, mock_flutterwave, mock_daraja):
        """Test the provider client is released even when verification fails."""
        Payout.objects.create(
            ref='FLW-9',
            employee=self.employee,
            amount=Decimal('1000.00'),
            bank='KCB',
            transaction_id='9',
        )
        mock_flutterwave.return_value.verify_transfer.side_effect = RuntimeError('connection reset')

        result = verify_payroll_payment('FLW-9')

        self.assertFalse(result['success'])
        mock_flutterwave.return_value.close.assert_called_once()


class ServiceClientLifecycleTestCase(TestCase):

    @patch('hris.services.payroll_payments.get_flutterwave_client')
    def test_close_releases_only_clients_it_built(self, mock_flutterwave):
        injected = MagicMock()
        service = PayrollPaymentService(daraja=injected)
        service._get_flutterwave()
        service._get_daraja()

        service.close()
        service.close()

        mock_flutterwave.return_value.close.assert_called_once()
        injected.close.assert_not_called()
