from decimal import Decimal

from django.db import models
from django.core.exceptions import ValidationError
from django.utils import timezone
from django.contrib.auth.models import User
from django.db.models.signals import post_save
from django.dispatch import receiver

from .utils import first_of_month


class BaseModel(models.Model):
    """
    Base model with common fields for all models
    """
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class UserProfile(BaseModel):
    """
    User profile model to extend the default Django User model with role-based permissions.
    """

    ROLE_EMPLOYEE = 'employee'
    ROLE_HR = 'hr'
    ROLE_FINANCE = 'finance'
    ROLE_ADMIN = 'admin'

    ROLE_CHOICES = [
        (ROLE_EMPLOYEE, 'Employee'),
        (ROLE_HR, 'HR'),
        (ROLE_FINANCE, 'Finance'),
        (ROLE_ADMIN, 'Admin'),
    ]

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        help_text="Associated Django user account"
    )
    role = models.CharField(
        max_length=20,
        choices=ROLE_CHOICES,
        default=ROLE_EMPLOYEE,
        help_text="User role in the HR system"
    )

    class Meta:
        verbose_name = "User Profile"
        verbose_name_plural = "User Profiles"
        ordering = ['user__last_name', 'user__first_name']

    def __str__(self):
        return f"{self.user.get_full_name() or self.user.username} - {self.get_role_display()}"

    @property
    def is_admin(self):
        return self.role == self.ROLE_ADMIN

    @property
    def is_hr(self):
        return self.role == self.ROLE_HR

    @property
    def is_finance(self):
        return self.role == self.ROLE_FINANCE

    @property
    def is_finance_or_admin(self):
        """
        Check if user has finance or admin role
        """
        return self.role in [self.ROLE_FINANCE, self.ROLE_ADMIN]

    @property
    def is_staff_role(self):
        """
        Admin, HR and Finance may read records belonging to other employees
        """
        return self.role in [self.ROLE_ADMIN, self.ROLE_HR, self.ROLE_FINANCE]


@receiver(post_save, sender=User)
def create_or_update_user_profile(sender, instance, created, **kwargs):
    """
    Signal to automatically create UserProfile when User is created
    """
    if created:
        UserProfile.objects.create(user=instance)
    else:
        UserProfile.objects.get_or_create(user=instance)


class Bank(BaseModel):
    name = models.CharField(max_length=120)
    code = models.CharField(
        max_length=20,
        unique=True,
        help_text="Bank code understood by the transfer provider"
    )

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.code})"


class Employee(BaseModel):
    """
    Employment record of a staff member, including payout details.
    """

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='employee',
    )
    staff_no = models.CharField(max_length=50, unique=True)
    position = models.CharField(max_length=100, blank=True, null=True)
    department = models.CharField(max_length=100, blank=True, null=True)
    salary = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Monthly gross salary"
    )

    # Payout details
    bank = models.ForeignKey(
        Bank,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='employees',
    )
    bank_acc_no = models.CharField(max_length=50, blank=True, null=True)
    phone = models.CharField(max_length=20, blank=True, null=True)

    # Statutory deductions, flat monthly amounts
    nhif_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    nssf_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['staff_no']

    def __str__(self):
        return f"{self.staff_no} - {self.name}"

    @property
    def name(self):
        return self.user.get_full_name() or self.user.username

    @property
    def email(self):
        return self.user.email

    def clean(self):
        if self.salary is not None and self.salary < 0:
            raise ValidationError({'salary': 'Salary cannot be negative.'})

    def save(self, *args, **kwargs):
        self.clean()
        super().save(*args, **kwargs)


class LeaveAllocation(BaseModel):
    employee = models.ForeignKey(Employee, on_delete=models.CASCADE, related_name='leave_allocations')
    year = models.PositiveIntegerField()
    total_days = models.PositiveIntegerField(default=21)
    used_days = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['-year']
        constraints = [
            models.UniqueConstraint(fields=['employee', 'year'], name='leave_allocation_employee_year'),
        ]

    def __str__(self):
        return f"{self.employee.staff_no} {self.year}: {self.used_days}/{self.total_days}"

    @property
    def remaining_days(self):
        return self.total_days - self.used_days


class LeaveRequest(BaseModel):
    """
    A leave application awaiting, or carrying, an HR decision.
    """

    TYPE_CHOICES = [
        ('ANNUAL', 'Annual'),
        ('SICK', 'Sick'),
        ('MATERNITY', 'Maternity'),
        ('PATERNITY', 'Paternity'),
        ('COMPASSIONATE', 'Compassionate'),
        ('STUDY', 'Study'),
        ('UNPAID', 'Unpaid'),
    ]

    STATUS_PENDING = 'PENDING'
    STATUS_APPROVED = 'APPROVED'
    STATUS_REJECTED = 'REJECTED'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    employee = models.ForeignKey(Employee, on_delete=models.CASCADE, related_name='leave_requests')
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='ANNUAL')
    start_date = models.DateField()
    end_date = models.DateField()
    reason = models.TextField(blank=True, default='')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    applied_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-applied_at']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gte=models.F('start_date')),
                name='leave_request_end_after_start'
            )
        ]

    def __str__(self):
        return f"{self.employee.staff_no} {self.type} {self.start_date} to {self.end_date} ({self.status})"

    def clean(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError({
                'end_date': 'End date must be on or after start date.'
            })

    def save(self, *args, **kwargs):
        self.clean()
        super().save(*args, **kwargs)

    @property
    def days(self):
        """
        Number of calendar days covered, both ends inclusive
        """
        if self.start_date and self.end_date:
            return (self.end_date - self.start_date).days + 1
        return 0


class Payslip(BaseModel):
    """
    Monthly pay statement. `deductions` maps a deduction name to its amount.
    """

    employee = models.ForeignKey(Employee, on_delete=models.CASCADE, related_name='payslips')
    month = models.DateField(help_text="First day of the month the payslip covers")
    gross_salary = models.DecimalField(max_digits=12, decimal_places=2)
    deductions = models.JSONField(default=dict, blank=True)
    net_pay = models.DecimalField(max_digits=12, decimal_places=2)
    paid = models.BooleanField(default=False)
    payout_ref = models.CharField(max_length=100, blank=True, null=True, db_index=True)

    class Meta:
        ordering = ['-month']
        constraints = [
            models.UniqueConstraint(fields=['employee', 'month'], name='payslip_employee_month'),
        ]

    def __str__(self):
        return f"{self.employee.staff_no} {self.month:%Y-%m}"

    def save(self, *args, **kwargs):
        if self.month:
            self.month = first_of_month(self.month)
        super().save(*args, **kwargs)

    @property
    def total_deductions(self):
        return sum((Decimal(str(v)) for v in (self.deductions or {}).values()), Decimal('0.00'))


class Payout(BaseModel):
    """
    One provider disbursement, tracked until the provider settles it.
    """

    STATUS_PROCESSING = 'PROCESSING'
    STATUS_PENDING = 'PENDING'
    STATUS_SUCCESS = 'SUCCESS'
    STATUS_FAILED = 'FAILED'

    STATUS_CHOICES = [
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_PENDING, 'Pending'),
        (STATUS_SUCCESS, 'Success'),
        (STATUS_FAILED, 'Failed'),
    ]

    TYPE_SALARY = 'SALARY'

    TYPE_CHOICES = [
        (TYPE_SALARY, 'Salary'),
    ]

    MPESA = 'M-Pesa'

    ref = models.CharField(max_length=100, unique=True)
    employee = models.ForeignKey(Employee, on_delete=models.CASCADE, related_name='payouts')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PROCESSING)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_SALARY)
    bank = models.CharField(max_length=120, blank=True, null=True)
    transaction_id = models.CharField(max_length=100, blank=True, null=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.ref} {self.amount} ({self.status})"

    @property
    def is_mpesa(self):
        return self.bank == self.MPESA

    @property
    def is_settled(self):
        return self.status in [self.STATUS_SUCCESS, self.STATUS_FAILED]


class Notification(BaseModel):
    TYPE_CHOICES = [
        ('INFO', 'Info'),
        ('PAYMENT', 'Payment'),
        ('LEAVE', 'Leave'),
        ('PROFILE', 'Profile'),
        ('ERROR', 'Error'),
    ]

    recipient = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notifications')
    title = models.CharField(max_length=200)
    message = models.TextField()
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='INFO')
    is_read = models.BooleanField(default=False)
    details = models.JSONField(blank=True, null=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.recipient} - {self.title}"


class Activity(BaseModel):
    """
    Audit trail entry for actions performed by an employee.
    """

    ACTION_CHOICES = [
        ('CREATE', 'Create'),
        ('UPDATE', 'Update'),
        ('DELETE', 'Delete'),
        ('APPROVE', 'Approve'),
        ('REJECT', 'Reject'),
        ('PAYMENT', 'Payment'),
    ]

    employee = models.ForeignKey(Employee, on_delete=models.CASCADE, related_name='activities')
    action_type = models.CharField(max_length=20, choices=ACTION_CHOICES)
    description = models.CharField(max_length=255)
    module = models.CharField(max_length=50)
    details = models.JSONField(blank=True, null=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name_plural = "Activities"

    def __str__(self):
        return f"{self.module}/{self.action_type}: {self.description}"

    @property
    def timestamp(self):
        return self.created_at
