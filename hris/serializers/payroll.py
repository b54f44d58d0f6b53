from rest_framework import serializers

from ..utils import parse_month


class PaymentInstructionSerializer(serializers.Serializer):
    """
    One employee's payment in a payroll run.

    The payment method and its requirements (account number, phone) are
    checked by the payment service so that a bad row fails alone instead of the whole run.
    """

    employee_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    payment_method = serializers.CharField()
    bank_id = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    bank_acc_no = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    phone = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class PayrollRunSerializer(serializers.Serializer):
    """
    Input serializer for a bulk payroll run.
    """

    employees = PaymentInstructionSerializer(many=True, allow_empty=False)
    month = serializers.CharField(help_text="Month to pay, YYYY-MM or an ISO date")
    description = serializers.CharField(max_length=200, default='Salary payment')
    run_async = serializers.BooleanField(default=False, required=False)

    def validate_month(self, value):
        try:
            return parse_month(value)
        except ValueError:
            raise serializers.ValidationError("Month must be YYYY-MM or an ISO date.")

    def to_internal_value(self, data):
        if hasattr(data, 'get') and 'async' in data and 'run_async' not in data:
            data = {**data, 'run_async': data.get('async')}
        return super().to_internal_value(data)


class ReconciliationRunSerializer(serializers.Serializer):
    month = serializers.CharField(required=False, allow_blank=True)

    def validate_month(self, value):
        if not value:
            return None
        try:
            return parse_month(value)
        except ValueError:
            raise serializers.ValidationError("Month must be YYYY-MM or an ISO date.")
