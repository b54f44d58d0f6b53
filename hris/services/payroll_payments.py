"""
Payroll payment orchestration.

This service handles:
1. Paying an employee's salary by bank transfer (Flutterwave) or M-Pesa (Daraja)
2. Recording the payslip and a payout row for every disbursement
3. Verifying payouts against the provider and settling their status
4. Reconciling all outstanding salary payouts of a month
"""

import logging
import re
import time
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from django.db import transaction

from ..models import Employee, Payout, Payslip
from ..utils import first_of_month, month_bounds, month_label
from .calculators import allocate_deductions
from .gateways import (
    PaymentGatewayError,
    get_daraja_client,
    get_flutterwave_client,
)
from .notifications import notify, notify_admin

logger = logging.getLogger(__name__)

PAYMENT_METHOD_BANK = 'bank'
PAYMENT_METHOD_MPESA = 'mpesa'
PAYMENT_METHODS = (PAYMENT_METHOD_BANK, PAYMENT_METHOD_MPESA)

OUTSTANDING_STATUSES = [Payout.STATUS_PROCESSING, Payout.STATUS_PENDING]


class PayrollPaymentError(Exception):
    """Custom exception for payroll payment errors"""
    pass


@dataclass
class PaymentInstruction:
    """One salary payment to make"""
    employee_id: int
    amount: Decimal
    payment_method: str
    bank_id: Optional[str] = None
    bank_acc_no: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaymentInstruction':
        return cls(
            employee_id=data.get('employee_id'),
            amount=data.get('amount'),
            payment_method=data.get('payment_method'),
            bank_id=data.get('bank_id'),
            bank_acc_no=data.get('bank_acc_no'),
            phone=data.get('phone'),
        )


def coerce_amount(value) -> Decimal:
    """
    Convert an amount given as number or string to Decimal.

    Unparseable input becomes NaN so that validation rejects it downstream.
    """
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return Decimal('NaN')


def normalize_phone(phone: str) -> str:
    """
    Reduce a phone number to the 2547XXXXXXXX form M-Pesa expects.
    """
    digits = re.sub(r'\D', '', phone or '')
    if digits.startswith('0'):
        digits = '254' + digits[1:]
    elif len(digits) == 9 and digits[0] in '71':
        digits = '254' + digits
    return digits


def summarize_results(results: List[Dict]) -> Dict[str, int]:
    successful = sum(1 for result in results if result.get('success'))
    return {
        'total': len(results),
        'successful': successful,
        'failed': len(results) - successful,
    }


class PayrollPaymentService:
    """
    Service class for paying salaries and following the payouts to settlement.

    Provider clients are built lazily so that a missing M-Pesa configuration
    does not block bank transfers and vice versa. Clients built here are
    released by close(); injected clients belong to the caller.
    """

    def __init__(self, flutterwave=None, daraja=None):
        self._flutterwave = flutterwave
        self._daraja = daraja
        self._owned_clients = []
        self.processed_count = 0
        self.failed_count = 0
        self.errors = []

    def _get_flutterwave(self):
        if self._flutterwave is None:
            self._flutterwave = get_flutterwave_client()
            self._owned_clients.append(self._flutterwave)
        return self._flutterwave

    def _get_daraja(self):
        if self._daraja is None:
            self._daraja = get_daraja_client()
            self._owned_clients.append(self._daraja)
        return self._daraja

    def close(self) -> None:
        """Close the HTTP connections of the provider clients this service built"""
        while self._owned_clients:
            client = self._owned_clients.pop()
            try:
                client.close()
            except Exception as e:
                logger.warning(f"Error closing provider client: {e}")

    # Payment

    def process_payment(self, instruction: PaymentInstruction, month, description: str) -> Dict:
        """
        Pay one employee for the given month.

        Returns a dict with `success` and either `transaction_id`/`payout_ref`
        or `error`. Failures never raise; they are logged and reported to the
        first admin user.
        """
        month = first_of_month(month)
        try:
            employee = self._get_employee(instruction.employee_id)
            narration = f"{description} for {month_label(month)}"

            if instruction.payment_method == PAYMENT_METHOD_BANK:
                transaction_id, payout_ref = self._pay_by_bank(employee, instruction, narration)
            elif instruction.payment_method == PAYMENT_METHOD_MPESA:
                transaction_id, payout_ref = self._pay_by_mpesa(employee, instruction, narration)
            else:
                raise PayrollPaymentError(f"Invalid payment method: {instruction.payment_method}")

            with transaction.atomic():
                self._record_payslip(employee, month, instruction.amount, payout_ref)
                payout = self._create_payout(employee, instruction, transaction_id, payout_ref)

            self._notify_employee(employee, month)
            self.processed_count += 1

            logger.info(f"Salary payment {payout.ref} started for employee {employee.id}")
            return {
                'success': True,
                'employee_id': employee.id,
                'transaction_id': transaction_id,
                'payout_ref': payout.ref,
            }

        except Exception as e:
            logger.error(f"Error processing payroll payment for employee {instruction.employee_id}: {e}")
            self.failed_count += 1
            self.errors.append(f"Employee {instruction.employee_id}: {e}")
            self._notify_failure(instruction.employee_id, e)
            return {
                'success': False,
                'employee_id': instruction.employee_id,
                'error': str(e),
            }

    def process_bulk(self, instructions: List[PaymentInstruction], month, description: str) -> List[Dict]:
        """
        Pay several employees one after another; one result per instruction, in order.
        """
        logger.info(f"Starting bulk payroll for {len(instructions)} employees ({month_label(month)})")
        results = []
        for instruction in instructions:
            instruction = replace(instruction, amount=coerce_amount(instruction.amount))
            results.append(self.process_payment(instruction, month, description))

        logger.info(f"Bulk payroll finished: {summarize_results(results)}")
        return results

    def _get_employee(self, employee_id) -> Employee:
        try:
            return Employee.objects.select_related('user', 'bank').get(pk=employee_id)
        except (Employee.DoesNotExist, ValueError, TypeError):
            raise PayrollPaymentError(f"Employee with ID {employee_id} not found")

    def _validate_amount(self, employee: Employee, amount) -> Decimal:
        amount = coerce_amount(amount)
        if amount.is_nan() or amount <= 0:
            raise PayrollPaymentError(
                f"Invalid payment amount for employee {employee.id}: {amount}. "
                "Amount must be a positive number."
            )
        return amount

    def _pay_by_bank(self, employee: Employee, instruction: PaymentInstruction, narration: str):
        if not instruction.bank_acc_no:
            raise PayrollPaymentError('Bank account number required for bank transfer')

        bank_code = instruction.bank_id
        if employee.bank:
            bank_code = employee.bank.code or employee.bank.name
        if not bank_code:
            raise PayrollPaymentError(f"Bank code not found for employee {employee.id}")

        amount = self._validate_amount(employee, instruction.amount)
        beneficiary = employee.user.get_full_name() or employee.staff_no or 'Employee'

        response = self._get_flutterwave().initiate_transfer(
            amount,
            instruction.bank_acc_no,
            bank_code,
            narration,
            beneficiary,
        )

        data = response.get('data') or response
        transaction_id = data.get('id')
        payout_ref = data.get('reference') or data.get('id') or data.get('flw_ref')
        return (
            str(transaction_id) if transaction_id is not None else None,
            str(payout_ref) if payout_ref is not None else None,
        )

    def _pay_by_mpesa(self, employee: Employee, instruction: PaymentInstruction, narration: str):
        if not instruction.phone:
            raise PayrollPaymentError('Phone number required for M-Pesa payment')

        amount = self._validate_amount(employee, instruction.amount)
        phone = normalize_phone(instruction.phone)

        response = self._get_daraja().b2c_payment(amount, phone, narration)
        conversation_id = response.get('ConversationID')
        return conversation_id, conversation_id

    def _record_payslip(self, employee: Employee, month, amount, payout_ref) -> Payslip:
        """
        Mark the month's payslip paid, creating it from the employee's salary if missing.
        """
        payslip = Payslip.objects.filter(employee=employee, month=month).first()
        if payslip:
            payslip.paid = True
            payslip.payout_ref = payout_ref
            payslip.save(update_fields=['paid', 'payout_ref', 'updated_at'])
            return payslip

        net_pay = coerce_amount(amount)
        return Payslip.objects.create(
            employee=employee,
            month=month,
            gross_salary=employee.salary,
            deductions=allocate_deductions(employee, employee.salary, net_pay),
            net_pay=net_pay,
            paid=True,
            payout_ref=payout_ref,
        )

    def _create_payout(self, employee: Employee, instruction: PaymentInstruction,
                       transaction_id, payout_ref) -> Payout:
        if instruction.payment_method == PAYMENT_METHOD_MPESA:
            bank = Payout.MPESA
        else:
            bank = instruction.bank_id or (employee.bank.name if employee.bank else None)

        return Payout.objects.create(
            ref=payout_ref or f"PAYOUT_{int(time.time() * 1000)}",
            employee=employee,
            amount=coerce_amount(instruction.amount),
            status=Payout.STATUS_PROCESSING,
            type=Payout.TYPE_SALARY,
            bank=bank,
            transaction_id=transaction_id,
        )

    def _notify_employee(self, employee: Employee, month) -> None:
        try:
            notify(
                employee.user,
                'Salary Payment Processed',
                f"Your salary for {month_label(month)} has been processed.",
                type='PAYMENT',
            )
        except Exception as e:
            logger.error(f"Error creating employee notification: {e}")

    def _notify_failure(self, employee_id, error: Exception) -> None:
        try:
            notify_admin(
                'Payroll Payment Failed',
                f"Payment failed for employee {employee_id}: {error}",
                type='ERROR',
            )
        except Exception as e:
            logger.error(f"Error creating notification: {e}")

    # Verification

    def verify_payment(self, payout_ref: str) -> Dict:
        """
        Ask the provider how a payout ended and persist the answer.
        """
        try:
            try:
                payout = Payout.objects.get(ref=payout_ref)
            except Payout.DoesNotExist:
                raise PayrollPaymentError(f"Payout with reference {payout_ref} not found")

            if payout.is_mpesa:
                verification = self._get_daraja().transaction_status(payout.transaction_id)
                status = self._interpret_mpesa_result(verification)
            else:
                client = self._get_flutterwave()
                try:
                    verification = client.verify_transfer(payout.transaction_id)
                    status = self._interpret_flutterwave_status(verification)
                except PaymentGatewayError as e:
                    logger.error(f"Error verifying Flutterwave payment {payout_ref}: {e}")
                    verification = {'error': str(e)}
                    status = Payout.STATUS_FAILED

            self._apply_status(payout, status)

            return {
                'success': True,
                'payout_ref': payout_ref,
                'status': status,
                'verification': verification,
            }

        except Exception as e:
            logger.error(f"Error verifying payroll payment {payout_ref}: {e}")
            return {
                'success': False,
                'payout_ref': payout_ref,
                'error': str(e),
            }

    @staticmethod
    def _interpret_flutterwave_status(verification: Dict) -> str:
        data = verification.get('data') or verification
        provider_status = str(data.get('status') or '').lower()
        if provider_status in ('successful', 'success'):
            return Payout.STATUS_SUCCESS
        if provider_status == 'failed':
            return Payout.STATUS_FAILED
        return Payout.STATUS_PENDING

    @staticmethod
    def _interpret_mpesa_result(verification: Dict) -> str:
        result = verification.get('Result')
        if not result or 'ResultCode' not in result:
            return Payout.STATUS_PENDING
        try:
            code = int(result['ResultCode'])
        except (TypeError, ValueError):
            return Payout.STATUS_FAILED
        return Payout.STATUS_SUCCESS if code == 0 else Payout.STATUS_FAILED

    def _apply_status(self, payout: Payout, status: str) -> None:
        with transaction.atomic():
            payout.status = status
            payout.save(update_fields=['status', 'updated_at'])

            if status == Payout.STATUS_SUCCESS:
                Payslip.objects.filter(payout_ref=payout.ref).update(paid=True)

        logger.info(f"Payout {payout.ref} is now {status}")

    def settle_mpesa_result(self, body: Dict) -> Optional[Payout]:
        """
        Apply an M-Pesa B2C result callback to the matching payout.
        """
        result = body.get('Result') or {}
        conversation_id = result.get('ConversationID')
        if not conversation_id:
            logger.warning(f"M-Pesa result without ConversationID: {body}")
            return None

        payout = Payout.objects.filter(bank=Payout.MPESA, transaction_id=conversation_id).first()
        if payout is None:
            logger.warning(f"No payout matches M-Pesa conversation {conversation_id}")
            return None

        self._apply_status(payout, self._interpret_mpesa_result(body))
        return payout

    # Reconciliation

    def reconcile(self, month) -> Dict:
        """
        Verify every salary payout created in `month` that has not settled yet.
        """
        month = first_of_month(month)
        start, end = month_bounds(month)
        try:
            payouts = list(
                Payout.objects.filter(
                    type=Payout.TYPE_SALARY,
                    created_at__gte=start,
                    created_at__lt=end,
                    status__in=OUTSTANDING_STATUSES,
                ).values_list('ref', flat=True)
            )
            logger.info(f"Reconciling {len(payouts)} outstanding payouts for {month:%Y-%m}")

            results = []
            issues = []
            for ref in payouts:
                outcome = self.verify_payment(ref)
                if not outcome['success']:
                    issues.append({'payout_ref': ref, 'reason': outcome['error']})
                    continue

                results.append({'payout_ref': ref, 'status': outcome['status']})
                if outcome['status'] == Payout.STATUS_FAILED:
                    issues.append({'payout_ref': ref, 'reason': 'Payment failed at provider'})

            return {
                'month': f"{month:%Y-%m}",
                'checked': len(payouts),
                'results': results,
                'issues': issues,
                'message': f"Reconciliation completed: {len(payouts)} payouts checked, {len(issues)} issues",
            }
        except Exception as e:
            logger.error(f"Error reconciling payroll for {month:%Y-%m}: {e}")
            raise


# Convenience functions for direct usage

def process_payroll_payment(instruction: PaymentInstruction, month, description: str) -> Dict:
    service = PayrollPaymentService()
    try:
        return service.process_payment(instruction, month, description)
    finally:
        service.close()


def process_bulk_payroll(instructions: List[PaymentInstruction], month, description: str) -> List[Dict]:
    service = PayrollPaymentService()
    try:
        return service.process_bulk(instructions, month, description)
    finally:
        service.close()


def verify_payroll_payment(payout_ref: str) -> Dict:
    service = PayrollPaymentService()
    try:
        return service.verify_payment(payout_ref)
    finally:
        service.close()


def reconcile_payroll(month) -> Dict:
    service = PayrollPaymentService()
    try:
        return service.reconcile(month)
    finally:
        service.close()
