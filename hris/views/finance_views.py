"""
Finance Views Module

This module contains the API views behind the finance dashboard:
- PayrollRunAPIView: POST /finance/payroll/run/ pays a batch of employees
- PayrollHistoryAPIView: GET /finance/payroll/ per-month payroll totals
- PaymentsAPIView: GET /finance/payments/ payouts grouped by reference
- PaymentExportAPIView: GET /finance/payments/export/ PDF, XLSX, CSV or JSON
- FinanceDashboardAPIView: GET /finance/dashboard/
- Reconciliation views: data, run and single payout verification
- MpesaResultAPIView: M-Pesa B2C result callback
"""

import hmac
import logging

from django.conf import settings
from django.http import HttpResponse
from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from ..models import Payout
from ..permissions import IsFinanceAdminOrHR, IsFinanceOrAdmin
from ..serializers.payroll import PayrollRunSerializer, ReconciliationRunSerializer
from ..services import reports
from ..services.exports import ExportError, export_payments
from ..services.notifications import log_user_activity
from ..services.payroll_payments import (
    PaymentInstruction,
    PayrollPaymentService,
    summarize_results,
)
from ..tasks import process_bulk_payroll_task, verify_payout_task

logger = logging.getLogger(__name__)


class PayrollRunAPIView(APIView):
    """
    Pay a batch of employees for one month.

    POST /finance/payroll/run/
    {"employees": [...], "month": "2025-03", "description": "Salary", "async": false}

    Returns {"results": [...], "summary": {"total", "successful", "failed"}},
    or the queued task id when run asynchronously.

    Permissions: Finance or Admin
    """

    permission_classes = [IsFinanceOrAdmin]

    def post(self, request: Request) -> Response:
        serializer = PayrollRunSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid payroll run parameters', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        data = serializer.validated_data
        month = data['month']

        service = PayrollPaymentService()
        try:
            if data['run_async']:
                employees = [
                    {**item, 'amount': str(item['amount'])}
                    for item in data['employees']
                ]
                task = process_bulk_payroll_task.delay(employees, month.isoformat(), data['description'])
                logger.info(f"Queued bulk payroll for {month:%Y-%m} as task {task.id}")
                return Response(
                    {'task_id': task.id, 'status': 'queued'},
                    status=status.HTTP_202_ACCEPTED
                )

            instructions = [PaymentInstruction.from_dict(item) for item in data['employees']]
            results = service.process_bulk(instructions, month, data['description'])
            summary = summarize_results(results)

            log_user_activity(
                request.user,
                'PAYMENT',
                f"Processed payroll for {month:%B %Y}: {summary['successful']}/{summary['total']} paid",
                'payroll',
                details=summary,
            )

            return Response({'results': results, 'summary': summary}, status=status.HTTP_200_OK)

        except Exception as e:
            logger.error(f"Unexpected error during payroll run for {month:%Y-%m}: {e}")
            return Response(
                {'error': 'Unexpected error during payroll run', 'details': str(e)},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )
        finally:
            service.close()


class PayrollHistoryAPIView(APIView):
    permission_classes = [IsFinanceAdminOrHR]

    def get(self, request: Request) -> Response:
        return Response(reports.payroll_history())


class PaymentsAPIView(APIView):
    permission_classes = [IsFinanceAdminOrHR]

    def get(self, request: Request) -> Response:
        return Response(reports.payment_transactions())


class PaymentExportAPIView(APIView):
    """
    Export payslips as a financial payments report.

    GET /finance/payments/export/?format=pdf|excel|xlsx|csv|json

    Query parameters:
    - start_date, end_date: month range (YYYY-MM-DD)
    - status: paid or unpaid
    - department, position, employee_id
    """

    permission_classes = [IsFinanceAdminOrHR]

    def get(self, request: Request):
        try:
            result = export_payments(request.query_params)
        except ExportError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except Exception as e:
            logger.error(f"Error exporting financial payments: {e}")
            return Response(
                {'error': 'Failed to export financial payments'},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        if result['format'] == 'json':
            return Response(result['rows'])

        response = HttpResponse(result['content'], content_type=result['content_type'])
        response['Content-Disposition'] = f'attachment; filename={result["filename"]}'
        return response


class FinanceDashboardAPIView(APIView):
    permission_classes = [IsFinanceAdminOrHR]

    def get(self, request: Request) -> Response:
        return Response(reports.finance_dashboard())


class ReconciliationDataAPIView(APIView):
    permission_classes = [IsFinanceAdminOrHR]

    def get(self, request: Request) -> Response:
        return Response(reports.reconciliation_data())


class ReconciliationRunAPIView(APIView):
    """
    POST /finance/reconciliation/run/ with an optional {"month": "YYYY-MM"}.
    Defaults to the current month.
    """

    permission_classes = [IsFinanceAdminOrHR]

    def post(self, request: Request) -> Response:
        serializer = ReconciliationRunSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid reconciliation parameters', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        month = serializer.validated_data.get('month') or timezone.localdate()
        service = PayrollPaymentService()
        try:
            result = service.reconcile(month)
        except Exception as e:
            logger.error(f"Reconciliation failed: {e}")
            return Response(
                {'error': f'Failed to run reconciliation: {e}'},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )
        finally:
            service.close()

        return Response(result, status=status.HTTP_200_OK)


class PayoutVerifyAPIView(APIView):
    """
    POST /finance/payouts/{ref}/verify/

    With {"async": true} the check is queued and retried while the provider
    still reports the payout as pending.
    """

    permission_classes = [IsFinanceAdminOrHR]

    def post(self, request: Request, payout_ref: str) -> Response:
        if not Payout.objects.filter(ref=payout_ref).exists():
            return Response(
                {'error': f'Payout with reference {payout_ref} not found'},
                status=status.HTTP_404_NOT_FOUND
            )

        if str(request.data.get('async', '')).lower() == 'true':
            task = verify_payout_task.delay(payout_ref)
            logger.info(f"Queued verification of payout {payout_ref} as task {task.id}")
            return Response(
                {'task_id': task.id, 'status': 'queued'},
                status=status.HTTP_202_ACCEPTED
            )

        service = PayrollPaymentService()
        try:
            result = service.verify_payment(payout_ref)
        finally:
            service.close()
        if not result['success']:
            return Response(result, status=status.HTTP_422_UNPROCESSABLE_ENTITY)
        return Response(result, status=status.HTTP_200_OK)


class MpesaResultAPIView(APIView):
    """
    Daraja posts B2C results and timeouts here. Always acknowledges so
    Safaricom does not keep redelivering.

    Only callbacks carrying `?token=` equal to DARAJA_CALLBACK_TOKEN settle a
    payout; anything else is acknowledged and dropped.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def has_valid_token(self, request: Request) -> bool:
        expected = settings.DARAJA_CALLBACK_TOKEN
        supplied = request.query_params.get('token', '')
        if not expected:
            logger.warning("DARAJA_CALLBACK_TOKEN is not configured, ignoring M-Pesa callback")
            return False
        return hmac.compare_digest(supplied.encode(), expected.encode())

    def post(self, request: Request) -> Response:
        if not self.has_valid_token(request):
            logger.warning(f"Rejected M-Pesa callback from {request.META.get('REMOTE_ADDR')}: bad token")
            return Response({'ResultCode': 0, 'ResultDesc': 'Accepted'})

        service = PayrollPaymentService()
        try:
            payout = service.settle_mpesa_result(request.data)
            if payout:
                logger.info(f"M-Pesa result settled payout {payout.ref} as {payout.status}")
        except Exception as e:
            logger.error(f"Error handling M-Pesa result: {e}")
        finally:
            service.close()

        return Response({'ResultCode': 0, 'ResultDesc': 'Accepted'})
