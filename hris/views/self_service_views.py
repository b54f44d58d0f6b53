"""
Self-service Views Module

- PayslipViewSet: own payslips; staff roles may read everyone's
- NotificationViewSet: own notifications, mark one or all as read
"""

import logging

from django.db.models import QuerySet
from django.http import HttpResponse
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from ..models import Notification, Payslip, UserProfile
from ..permissions import IsEmployeeOrAbove, IsOwnerOrStaffRole
from ..serializers.payslip import NotificationSerializer, PayslipSerializer
from ..services.exports import export_payslip

logger = logging.getLogger(__name__)


class PayslipViewSet(viewsets.ReadOnlyModelViewSet):
    """
    GET /payslips/ and /payslips/{id}/, and /payslips/{id}/export/ for the PDF.

    Staff roles may filter with ?employee_id=; employees only ever see their own.
    """

    serializer_class = PayslipSerializer
    permission_classes = [IsEmployeeOrAbove, IsOwnerOrStaffRole]

    def get_queryset(self) -> QuerySet[Payslip]:
        queryset = Payslip.objects.select_related('employee__user', 'employee__bank')

        try:
            is_staff_role = self.request.user.userprofile.is_staff_role
        except UserProfile.DoesNotExist:
            is_staff_role = False

        if is_staff_role:
            employee_id = self.request.query_params.get('employee_id')
            if employee_id:
                queryset = queryset.filter(employee_id=employee_id)
            # Staff browsing the list see their own payslips unless they ask for someone
            elif self.action == 'list':
                queryset = queryset.filter(employee__user=self.request.user)
        else:
            queryset = queryset.filter(employee__user=self.request.user)

        return queryset.order_by('-month')

    @action(detail=True, methods=['get'], url_path='export')
    def export(self, request: Request, pk=None) -> HttpResponse:
        result = export_payslip(self.get_object())
        response = HttpResponse(result['content'], content_type=result['content_type'])
        response['Content-Disposition'] = f'attachment; filename="{result["filename"]}"'
        return response


class NotificationViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    """
    Provides:
    - list: GET /notifications/?unread=true
    - mark_read: POST /notifications/{id}/read/
    - mark_all_read: POST /notifications/read-all/
    """

    serializer_class = NotificationSerializer
    permission_classes = [IsEmployeeOrAbove]

    def get_queryset(self) -> QuerySet[Notification]:
        queryset = Notification.objects.filter(recipient=self.request.user)
        unread = self.request.query_params.get('unread')
        if unread and unread.lower() == 'true':
            queryset = queryset.filter(is_read=False)
        return queryset.order_by('-created_at')

    @action(detail=True, methods=['post'], url_path='read')
    def mark_read(self, request: Request, pk=None) -> Response:
        notification = self.get_object()
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=['is_read', 'updated_at'])
        return Response(NotificationSerializer(notification).data)

    @action(detail=False, methods=['post'], url_path='read-all')
    def mark_all_read(self, request: Request) -> Response:
        updated = self.get_queryset().filter(is_read=False).update(is_read=True)
        logger.info(f"Marked {updated} notifications read for user {request.user.pk}")
        return Response({'updated': updated}, status=status.HTTP_200_OK)
