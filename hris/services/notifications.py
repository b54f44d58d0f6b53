"""
Notification and activity-log helpers shared by the API and the payroll services.
"""

import logging
from typing import Any, Dict, Optional

from ..models import Activity, Employee, Notification, UserProfile

logger = logging.getLogger(__name__)


def notify(user, title: str, message: str, type: str = 'INFO',
           details: Optional[Dict[str, Any]] = None) -> Notification:
    return Notification.objects.create(
        recipient=user,
        title=title,
        message=message,
        type=type,
        details=details,
    )


def notify_admin(title: str, message: str, type: str = 'ERROR') -> Optional[Notification]:
    """
    Notify the first admin user. Returns None when no admin exists.
    """
    admin_profile = (
        UserProfile.objects.filter(role=UserProfile.ROLE_ADMIN)
        .select_related('user')
        .order_by('user_id')
        .first()
    )
    if not admin_profile:
        logger.warning(f"No admin user to notify about: {title}")
        return None
    return notify(admin_profile.user, title, message, type=type)


def log_activity(employee: Employee, action_type: str, description: str, module: str,
                 details: Optional[Dict[str, Any]] = None) -> Activity:
    return Activity.objects.create(
        employee=employee,
        action_type=action_type,
        description=description,
        module=module,
        details=details,
    )


def log_user_activity(user, action_type: str, description: str, module: str,
                      details: Optional[Dict[str, Any]] = None) -> Optional[Activity]:
    """
    Record an activity for the acting user.

    Users without an employee record (e.g. a bare admin account) are not audited.
    """
    employee = Employee.objects.filter(user=user).first()
    if employee is None:
        logger.debug(f"User {user.pk} has no employee record, skipping activity log")
        return None
    return log_activity(employee, action_type, description, module, details)
