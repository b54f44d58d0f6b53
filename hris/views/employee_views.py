"""
Employee Views Module

- EmployeeViewSet: CRUD over employee records for Admin/HR, plus CSV/XLSX export
- BankViewSet: bank list, and bank creation for Finance/Admin
"""

import logging

from django.db import IntegrityError
from django.db.models import Q, QuerySet
from django.http import HttpResponse
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from ..models import Bank, Employee
from ..permissions import IsAdminOrHR, IsFinanceAdminOrHR, IsFinanceOrAdmin
from ..serializers.employee import BankSerializer, EmployeeSerializer
from ..services.exports import export_employees
from ..services.gateways import get_supported_banks
from ..services.notifications import log_activity, log_user_activity, notify

logger = logging.getLogger(__name__)

TRACKED_FIELDS = [
    'staff_no',
    'position',
    'department',
    'salary',
    'bank_id',
    'bank_acc_no',
    'phone',
    'nhif_rate',
    'nssf_rate',
    'is_active',
]

ORDERING_FIELDS = {'staff_no', 'department', 'position', 'salary', 'created_at'}


class EmployeeViewSet(viewsets.ModelViewSet):
    """
    ModelViewSet for Employee records.

    Provides:
    - list: GET /employees/ (search, department, position, ordering)
    - create: POST /employees/ (creates the user account too)
    - retrieve / update / partial_update / destroy
    - export: GET /employees/export/?format=csv|xlsx

    Permissions: Admin or HR
    """

    serializer_class = EmployeeSerializer
    permission_classes = [IsAdminOrHR]

    def get_queryset(self) -> QuerySet[Employee]:
        queryset = Employee.objects.select_related('user', 'user__userprofile', 'bank')

        search = self.request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(user__first_name__icontains=search) |
                Q(user__last_name__icontains=search) |
                Q(user__email__icontains=search) |
                Q(staff_no__icontains=search)
            )

        department = self.request.query_params.get('department')
        if department:
            queryset = queryset.filter(department=department)

        position = self.request.query_params.get('position')
        if position:
            queryset = queryset.filter(position=position)

        ordering = self.request.query_params.get('ordering', 'staff_no')
        if ordering.lstrip('-') not in ORDERING_FIELDS:
            ordering = 'staff_no'

        return queryset.order_by(ordering)

    def perform_create(self, serializer) -> None:
        employee = serializer.save()
        logger.info(f"Created employee {employee.staff_no}")
        log_user_activity(
            self.request.user,
            'CREATE',
            f"Added employee {employee.name} ({employee.staff_no})",
            'employees',
            details={'employee_id': employee.id},
        )

    def perform_update(self, serializer) -> None:
        """
        Save and record which fields changed on the employee's activity log.
        """
        before = {field: getattr(serializer.instance, field) for field in TRACKED_FIELDS}
        employee = serializer.save()

        changes = {}
        for field in TRACKED_FIELDS:
            new_value = getattr(employee, field)
            if new_value != before[field]:
                changes[field] = {'from': str(before[field]), 'to': str(new_value)}

        logger.info(f"Updated employee {employee.staff_no}: {sorted(changes)}")
        if not changes:
            return

        log_activity(
            employee,
            'UPDATE',
            f"Profile updated: {', '.join(sorted(changes))}",
            'employees',
            details={'changes': changes},
        )
        notify(
            employee.user,
            'Profile Updated',
            'Your employee record has been updated.',
            type='PROFILE',
            details={'changes': changes},
        )

    def perform_destroy(self, instance) -> None:
        logger.info(f"Deleting employee {instance.staff_no}")
        log_user_activity(
            self.request.user,
            'DELETE',
            f"Removed employee {instance.name} ({instance.staff_no})",
            'employees',
        )
        # Removing the account removes the employee record with it
        instance.user.delete()

    @action(detail=False, methods=['get'], url_path='export')
    def export(self, request: Request) -> HttpResponse:
        """
        Export the filtered employee list.

        GET /employees/export/?format=csv|xlsx
        """
        try:
            result = export_employees(request.query_params.get('format'), self.get_queryset())
        except Exception as e:
            logger.error(f"Employee export failed: {e}")
            return Response(
                {'error': f'Employee export failed: {e}'},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        response = HttpResponse(result['content'], content_type=result['content_type'])
        response['Content-Disposition'] = f'attachment; filename="{result["filename"]}"'
        return response


class BankViewSet(viewsets.GenericViewSet):
    """
    GET /banks/ lists banks (Finance, Admin, HR); POST /banks/ adds one (Finance, Admin).
    """

    queryset = Bank.objects.all()
    serializer_class = BankSerializer
    pagination_class = None

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsFinanceOrAdmin()]
        return [IsFinanceAdminOrHR()]

    def list(self, request: Request) -> Response:
        return Response(get_supported_banks())

    def create(self, request: Request) -> Response:
        name = (request.data.get('name') or '').strip()
        code = (request.data.get('code') or '').strip()

        if not name or not code:
            return Response(
                {'error': 'Bank name and code are required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        if Bank.objects.filter(code=code).exists():
            return Response(
                {'error': 'A bank with this code already exists'},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            bank = Bank.objects.create(name=name, code=code)
        except IntegrityError:
            return Response(
                {'error': 'A bank with this code already exists'},
                status=status.HTTP_400_BAD_REQUEST
            )

        log_user_activity(
            request.user,
            'CREATE',
            f"Added new bank: {name}",
            'banks',
            details={'action': 'ADD_BANK', 'bank_id': bank.id, 'bank_name': bank.name, 'bank_code': bank.code},
        )
        logger.info(f"Bank {bank.code} added by user {request.user.pk}")

        return Response(
            {'success': True, 'bank': BankSerializer(bank).data},
            status=status.HTTP_201_CREATED
        )
