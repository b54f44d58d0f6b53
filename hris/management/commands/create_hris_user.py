"""
Management command to create users with an HR system role.

Usage:
    python manage.py create_hris_user --username finance_user --email finance@uni.ac.ke --role finance
    python manage.py create_hris_user --username jdoe --email jdoe@uni.ac.ke --staff-no UNI-001 --salary 85000
"""

import getpass
from decimal import Decimal, InvalidOperation

from django.contrib.auth.models import User
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from hris.models import Employee, UserProfile


class Command(BaseCommand):
    help = 'Create a new user with an HR system role, optionally with an employee record'

    def add_arguments(self, parser):
        parser.add_argument('--username', type=str, required=True, help='Username for the new user')
        parser.add_argument('--email', type=str, required=True, help='Email address for the new user')
        parser.add_argument(
            '--password',
            type=str,
            help='Password for the new user (will prompt if not provided)'
        )
        parser.add_argument(
            '--role',
            type=str,
            choices=[role for role, _ in UserProfile.ROLE_CHOICES],
            default=UserProfile.ROLE_EMPLOYEE,
            help='Role to assign to the user'
        )
        parser.add_argument('--first-name', type=str, default='', help='First name for the user')
        parser.add_argument('--last-name', type=str, default='', help='Last name for the user')
        parser.add_argument(
            '--staff-no',
            type=str,
            help='Create an employee record with this staff number'
        )
        parser.add_argument('--department', type=str, help='Department of the employee record')
        parser.add_argument('--position', type=str, help='Position of the employee record')
        parser.add_argument('--salary', type=str, default='0', help='Monthly gross salary')
        parser.add_argument(
            '--is-staff',
            action='store_true',
            help='Give the user Django admin access'
        )

    def handle(self, *args, **options):
        username = options['username']
        email = options['email']

        if User.objects.filter(username=username).exists():
            raise CommandError(f'User "{username}" already exists')

        if User.objects.filter(email=email).exists():
            raise CommandError(f'User with email "{email}" already exists')

        staff_no = options.get('staff_no')
        if staff_no and Employee.objects.filter(staff_no=staff_no).exists():
            raise CommandError(f'Employee with staff number "{staff_no}" already exists')

        try:
            salary = Decimal(options['salary'])
        except InvalidOperation:
            raise CommandError(f'Invalid salary: {options["salary"]}')

        password = options.get('password') or self._get_password()

        try:
            with transaction.atomic():
                user = User.objects.create_user(
                    username=username,
                    email=email,
                    password=password,
                    first_name=options['first_name'],
                    last_name=options['last_name'],
                    is_staff=options['is_staff'],
                )

                profile = user.userprofile
                profile.role = options['role']
                profile.save()

                employee = None
                if staff_no:
                    employee = Employee.objects.create(
                        user=user,
                        staff_no=staff_no,
                        department=options.get('department'),
                        position=options.get('position'),
                        salary=salary,
                    )
        except Exception as e:
            raise CommandError(f'Error creating user: {e}')

        self.stdout.write(self.style.SUCCESS(f'Successfully created user "{username}"'))
        self._display_user_summary(user, profile, employee)

    def _get_password(self):
        """Get password from user input with confirmation."""
        while True:
            password = getpass.getpass('Password: ')
            if not password:
                self.stdout.write(self.style.ERROR('Password cannot be empty'))
                continue

            if password != getpass.getpass('Password (again): '):
                self.stdout.write(self.style.ERROR("Passwords don't match"))
                continue

            return password

    def _display_user_summary(self, user, profile, employee):
        self.stdout.write(f'Username: {user.username}')
        self.stdout.write(f'Email: {user.email}')
        if user.first_name or user.last_name:
            self.stdout.write(f'Name: {user.get_full_name()}')
        self.stdout.write(f'Role: {profile.get_role_display()}')
        if employee:
            self.stdout.write(f'Staff No: {employee.staff_no}')
            if employee.department:
                self.stdout.write(f'Department: {employee.department}')
