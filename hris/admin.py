"""
Django Admin configuration for the HR system models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User

from .models import (
    Activity,
    Bank,
    Employee,
    LeaveAllocation,
    LeaveRequest,
    Notification,
    Payout,
    Payslip,
    UserProfile,
)


class UserProfileInline(admin.StackedInline):
    model = UserProfile
    can_delete = False
    verbose_name_plural = 'Profile'
    fields = ['role']


class UserProfileAdmin(admin.ModelAdmin):
    list_display = ['user', 'get_user_email', 'role', 'created_at']
    list_filter = ['role']
    search_fields = ['user__username', 'user__first_name', 'user__last_name', 'user__email']
    readonly_fields = ['created_at', 'updated_at']

    def get_user_email(self, obj):
        """Get the email of the associated user."""
        return obj.user.email
    get_user_email.short_description = 'Email'
    get_user_email.admin_order_field = 'user__email'


class ExtendedUserAdmin(BaseUserAdmin):
    inlines = (UserProfileInline,)

    def get_inline_instances(self, request, obj=None):
        """
        Only show the profile inline if the user object exists.
        """
        if obj is None:
            return []
        return super().get_inline_instances(request, obj)


class EmployeeAdmin(admin.ModelAdmin):
    list_display = ['staff_no', 'name', 'department', 'position', 'salary', 'bank', 'is_active']
    list_filter = ['department', 'is_active', 'bank']
    search_fields = ['staff_no', 'user__first_name', 'user__last_name', 'user__email']
    raw_id_fields = ['user']
    readonly_fields = ['created_at', 'updated_at']

    fieldsets = (
        ('Employment', {
            'fields': ('user', 'staff_no', 'position', 'department', 'salary', 'is_active')
        }),
        ('Payout Details', {
            'fields': ('bank', 'bank_acc_no', 'phone')
        }),
        ('Statutory Deductions', {
            'fields': ('nhif_rate', 'nssf_rate'),
            'classes': ('collapse',),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


class LeaveRequestAdmin(admin.ModelAdmin):
    list_display = ['employee', 'type', 'start_date', 'end_date', 'days', 'status', 'applied_at']
    list_filter = ['status', 'type']
    search_fields = ['employee__staff_no', 'employee__user__first_name', 'employee__user__last_name']
    date_hierarchy = 'start_date'


class PayslipAdmin(admin.ModelAdmin):
    list_display = ['employee', 'month', 'gross_salary', 'net_pay', 'paid', 'payout_ref']
    list_filter = ['paid', 'month']
    search_fields = ['employee__staff_no', 'payout_ref']
    date_hierarchy = 'month'


class PayoutAdmin(admin.ModelAdmin):
    list_display = ['ref', 'employee', 'amount', 'status', 'bank', 'created_at']
    list_filter = ['status', 'type', 'bank']
    search_fields = ['ref', 'transaction_id', 'employee__staff_no']
    readonly_fields = ['created_at', 'updated_at']


class NotificationAdmin(admin.ModelAdmin):
    list_display = ['recipient', 'title', 'type', 'is_read', 'created_at']
    list_filter = ['type', 'is_read']


class ActivityAdmin(admin.ModelAdmin):
    list_display = ['employee', 'module', 'action_type', 'description', 'created_at']
    list_filter = ['module', 'action_type']


admin.site.register(UserProfile, UserProfileAdmin)
admin.site.register(Bank)
admin.site.register(Employee, EmployeeAdmin)
admin.site.register(LeaveAllocation)
admin.site.register(LeaveRequest, LeaveRequestAdmin)
admin.site.register(Payslip, PayslipAdmin)
admin.site.register(Payout, PayoutAdmin)
admin.site.register(Notification, NotificationAdmin)
admin.site.register(Activity, ActivityAdmin)

# Unregister the original User admin and register the extended one
admin.site.unregister(User)
admin.site.register(User, ExtendedUserAdmin)

admin.site.site_header = "University HRIS Administration"
admin.site.site_title = "HRIS Admin"
admin.site.index_title = "HR & Payroll"
