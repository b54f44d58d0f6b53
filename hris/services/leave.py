"""
Leave application and decision workflow.
"""

import logging

from django.db import transaction

from ..models import Employee, LeaveAllocation, LeaveRequest
from .notifications import log_user_activity, notify

logger = logging.getLogger(__name__)


class LeaveRequestError(Exception):
    """Raised when a leave request cannot move to the requested state"""
    pass


def get_allocation(employee: Employee, year: int) -> LeaveAllocation:
    allocation, _ = LeaveAllocation.objects.get_or_create(employee=employee, year=year)
    return allocation


def apply_for_leave(employee: Employee, type: str, start_date, end_date, reason: str = '') -> LeaveRequest:
    leave = LeaveRequest.objects.create(
        employee=employee,
        type=type,
        start_date=start_date,
        end_date=end_date,
        reason=reason,
    )
    logger.info(f"Employee {employee.id} applied for {leave.days} days of {type} leave")
    return leave


def decide_leave(leave: LeaveRequest, approve: bool, decided_by=None) -> LeaveRequest:
    """
    Approve or reject a pending leave request and notify the applicant.

    Approval consumes days from the allocation of the year the leave starts in.
    The request row is locked and re-read, so a concurrent decision on the
    same request fails instead of consuming the days twice.
    """
    with transaction.atomic():
        current = LeaveRequest.objects.select_for_update().get(pk=leave.pk)
        if current.status != LeaveRequest.STATUS_PENDING:
            leave.status = current.status
            raise LeaveRequestError(
                f"Leave request {leave.id} is already {current.get_status_display().lower()}"
            )

        if approve:
            allocation = (
                LeaveAllocation.objects.select_for_update()
                .filter(pk=get_allocation(leave.employee, leave.start_date.year).pk)
                .get()
            )
            if allocation.remaining_days < leave.days:
                raise LeaveRequestError(
                    f"Insufficient leave balance: {allocation.remaining_days} days left, "
                    f"{leave.days} requested"
                )
            allocation.used_days += leave.days
            allocation.save(update_fields=['used_days', 'updated_at'])
            leave.status = LeaveRequest.STATUS_APPROVED
        else:
            leave.status = LeaveRequest.STATUS_REJECTED
        leave.save(update_fields=['status', 'updated_at'])

    verdict = leave.get_status_display().lower()
    notify(
        leave.employee.user,
        f"Leave Request {leave.get_status_display()}",
        f"Your {leave.get_type_display().lower()} leave from {leave.start_date} "
        f"to {leave.end_date} has been {verdict}.",
        type='LEAVE',
        details={'leave_id': leave.id, 'status': leave.status},
    )

    if decided_by is not None:
        log_user_activity(
            decided_by,
            'APPROVE' if approve else 'REJECT',
            f"{leave.get_status_display()} leave request {leave.id} for {leave.employee.staff_no}",
            'leave',
            details={'leave_id': leave.id},
        )

    logger.info(f"Leave request {leave.id} {verdict}")
    return leave
