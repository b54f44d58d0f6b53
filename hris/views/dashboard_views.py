"""
Dashboard Views Module

Read-only JSON payloads for the role dashboards:
- AdminDashboardAPIView: GET /admin/dashboard/ (Admin, HR)
- AnalyticsDashboardAPIView: GET /analytics/dashboard/ (Finance, Admin, HR)
- TaxReportAPIView: GET /analytics/tax/ (Finance, Admin, HR)
- EmployeeDashboardAPIView: GET /me/dashboard/ (any role with an employee record)
"""

import logging

from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from ..models import Employee
from ..permissions import IsAdminOrHR, IsEmployeeOrAbove, IsFinanceAdminOrHR
from ..services import reports

logger = logging.getLogger(__name__)


class AdminDashboardAPIView(APIView):
    permission_classes = [IsAdminOrHR]

    def get(self, request: Request) -> Response:
        return Response(reports.admin_dashboard())


class AnalyticsDashboardAPIView(APIView):
    permission_classes = [IsFinanceAdminOrHR]

    def get(self, request: Request) -> Response:
        return Response(reports.analytics_dashboard())


class TaxReportAPIView(APIView):
    """
    PAYE, NHIF and NSSF totals for the current year with a three-month filing breakdown.
    """

    permission_classes = [IsFinanceAdminOrHR]

    def get(self, request: Request) -> Response:
        return Response(reports.tax_report())


class EmployeeDashboardAPIView(APIView):
    permission_classes = [IsEmployeeOrAbove]

    def get(self, request: Request) -> Response:
        try:
            employee = Employee.objects.select_related('user', 'bank').get(user=request.user)
        except Employee.DoesNotExist:
            return Response(
                {'error': 'No employee record is linked to this account.'},
                status=status.HTTP_404_NOT_FOUND
            )
        return Response(reports.employee_dashboard(employee))
