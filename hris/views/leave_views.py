"""
Leave Views Module

- LeaveRequestViewSet: Admin/HR review of all leave requests, approve/reject, delete
- MyLeaveRequestViewSet: an employee's own applications
"""

import logging

from django.db.models import Q, QuerySet
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.request import Request
from rest_framework.response import Response

from ..models import Employee, LeaveRequest
from ..permissions import IsAdminOrHR, IsEmployeeOrAbove
from ..serializers.leave import LeaveDecisionSerializer, LeaveRequestSerializer
from ..services.leave import LeaveRequestError, apply_for_leave, decide_leave

logger = logging.getLogger(__name__)


class LeaveRequestViewSet(mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.DestroyModelMixin,
                          viewsets.GenericViewSet):
    """
    Provides:
    - list: GET /leaves/?status=&type=&search=
    - retrieve: GET /leaves/{id}/
    - destroy: DELETE /leaves/{id}/
    - decide: POST /leaves/{id}/decide/ with {"status": "APPROVED" | "REJECTED"}

    Permissions: Admin or HR
    """

    serializer_class = LeaveRequestSerializer
    permission_classes = [IsAdminOrHR]

    def get_queryset(self) -> QuerySet[LeaveRequest]:
        queryset = LeaveRequest.objects.select_related('employee__user')

        status_filter = self.request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter.upper())

        type_filter = self.request.query_params.get('type')
        if type_filter:
            queryset = queryset.filter(type=type_filter.upper())

        search = self.request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(employee__user__first_name__icontains=search) |
                Q(employee__user__last_name__icontains=search) |
                Q(employee__staff_no__icontains=search)
            )

        return queryset.order_by('-applied_at')

    @action(detail=True, methods=['post'])
    def decide(self, request: Request, pk=None) -> Response:
        leave = self.get_object()

        serializer = LeaveDecisionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid decision', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        approve = serializer.validated_data['status'] == LeaveRequest.STATUS_APPROVED
        try:
            leave = decide_leave(leave, approve, decided_by=request.user)
        except LeaveRequestError as e:
            logger.warning(f"Leave decision rejected for request {leave.id}: {e}")
            return Response({'error': str(e)}, status=status.HTTP_422_UNPROCESSABLE_ENTITY)

        return Response(LeaveRequestSerializer(leave).data, status=status.HTTP_200_OK)

    def perform_destroy(self, instance) -> None:
        logger.info(f"Deleting leave request {instance.id}")
        instance.delete()


class MyLeaveRequestViewSet(mixins.ListModelMixin,
                            mixins.CreateModelMixin,
                            viewsets.GenericViewSet):
    """
    GET /me/leaves/ lists, POST /me/leaves/ applies. The applicant is always the caller.
    """

    serializer_class = LeaveRequestSerializer
    permission_classes = [IsEmployeeOrAbove]

    def get_employee(self) -> Employee:
        try:
            return self.request.user.employee
        except Employee.DoesNotExist:
            raise NotFound("No employee record is linked to this account.")

    def get_queryset(self) -> QuerySet[LeaveRequest]:
        return LeaveRequest.objects.filter(employee=self.get_employee()).order_by('-applied_at')

    def perform_create(self, serializer) -> None:
        data = serializer.validated_data
        serializer.instance = apply_for_leave(
            self.get_employee(),
            data.get('type', 'ANNUAL'),
            data['start_date'],
            data['end_date'],
            data.get('reason', ''),
        )
