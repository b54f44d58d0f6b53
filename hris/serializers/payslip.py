from rest_framework import serializers

from ..models import Notification, Payslip


class PayslipSerializer(serializers.ModelSerializer):
    employee_name = serializers.CharField(source='employee.name', read_only=True)
    staff_no = serializers.CharField(source='employee.staff_no', read_only=True)
    total_deductions = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Payslip
        fields = [
            'id',
            'employee',
            'employee_name',
            'staff_no',
            'month',
            'gross_salary',
            'deductions',
            'total_deductions',
            'net_pay',
            'paid',
            'payout_ref',
            'created_at',
        ]
        read_only_fields = fields


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'title', 'message', 'type', 'is_read', 'details', 'created_at']
        read_only_fields = ['id', 'title', 'message', 'type', 'details', 'created_at']
