"""
Shared fixtures for the hris test modules.
"""

from decimal import Decimal

from django.contrib.auth.models import User

from hris.models import Employee


def make_user(username, role='employee', **kwargs):
    kwargs.setdefault('email', f'{username}@uni.ac.ke')
    user = User.objects.create_user(username=username, password='testpass123', **kwargs)
    profile = user.userprofile
    profile.role = role
    profile.save()
    return user


def make_employee(username='jdoe', staff_no='UNI-001', salary='100000.00', role='employee',
                  first_name='Jane', last_name='Doe', **kwargs):
    user = make_user(username, role=role, first_name=first_name, last_name=last_name)
    return Employee.objects.create(
        user=user,
        staff_no=staff_no,
        salary=Decimal(salary),
        **kwargs
    )
