from rest_framework import serializers

from ..models import LeaveRequest


class LeaveRequestSerializer(serializers.ModelSerializer):
    employee_name = serializers.CharField(source='employee.name', read_only=True)
    staff_no = serializers.CharField(source='employee.staff_no', read_only=True)
    days = serializers.ReadOnlyField()

    class Meta:
        model = LeaveRequest
        fields = [
            'id',
            'employee',
            'employee_name',
            'staff_no',
            'type',
            'start_date',
            'end_date',
            'days',
            'reason',
            'status',
            'applied_at',
        ]
        read_only_fields = ['id', 'employee', 'status', 'applied_at']

    def validate(self, data):
        start_date = data.get('start_date', getattr(self.instance, 'start_date', None))
        end_date = data.get('end_date', getattr(self.instance, 'end_date', None))
        if start_date and end_date and end_date < start_date:
            raise serializers.ValidationError({
                'end_date': 'End date must be on or after start date.'
            })
        return data


class LeaveDecisionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[
        (LeaveRequest.STATUS_APPROVED, 'Approved'),
        (LeaveRequest.STATUS_REJECTED, 'Rejected'),
    ])

