from django.contrib.auth.models import User
from django.db import transaction
from rest_framework import serializers

from ..models import Bank, Employee, UserProfile


class BankSerializer(serializers.ModelSerializer):
    class Meta:
        model = Bank
        fields = ['id', 'name', 'code', 'created_at']
        read_only_fields = ['id', 'created_at']


class EmployeeSerializer(serializers.ModelSerializer):
    """
    Employee record together with the identity fields of its user account.

    Creating an employee creates the user; `username` defaults to the staff number.
    """

    username = serializers.CharField(source='user.username', required=False)
    first_name = serializers.CharField(source='user.first_name', required=False, allow_blank=True)
    last_name = serializers.CharField(source='user.last_name', required=False, allow_blank=True)
    email = serializers.EmailField(source='user.email', required=False, allow_blank=True)
    password = serializers.CharField(write_only=True, required=False, min_length=8)
    role = serializers.ChoiceField(
        source='user.userprofile.role',
        choices=UserProfile.ROLE_CHOICES,
        required=False,
    )
    name = serializers.ReadOnlyField()
    bank_name = serializers.CharField(source='bank.name', read_only=True, default=None)

    class Meta:
        model = Employee
        fields = [
            'id',
            'username',
            'first_name',
            'last_name',
            'email',
            'password',
            'role',
            'name',
            'staff_no',
            'position',
            'department',
            'salary',
            'bank',
            'bank_name',
            'bank_acc_no',
            'phone',
            'nhif_rate',
            'nssf_rate',
            'is_active',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_salary(self, value):
        if value < 0:
            raise serializers.ValidationError("Salary cannot be negative.")
        return value

    def validate(self, data):
        user_data = data.get('user', {})
        username = user_data.get('username') or (None if self.instance else data.get('staff_no'))
        if username:
            existing = User.objects.filter(username=username)
            if self.instance:
                existing = existing.exclude(pk=self.instance.user_id)
            if existing.exists():
                raise serializers.ValidationError({'username': f'User "{username}" already exists.'})

        requested_role = user_data.get('userprofile', {}).get('role')
        if requested_role and requested_role != self._current_role() and not self._requester_is_admin():
            raise serializers.ValidationError({'role': 'Only admins can change roles.'})
        return data

    def _current_role(self):
        if self.instance is None:
            return UserProfile.ROLE_EMPLOYEE
        profile = getattr(self.instance.user, 'userprofile', None)
        return profile.role if profile else UserProfile.ROLE_EMPLOYEE

    def _requester_is_admin(self):
        request = self.context.get('request')
        profile = getattr(getattr(request, 'user', None), 'userprofile', None)
        return bool(profile and profile.is_admin)

    @transaction.atomic
    def create(self, validated_data):
        user_data = validated_data.pop('user', {})
        profile_data = user_data.pop('userprofile', {})
        password = validated_data.pop('password', None)

        user = User.objects.create_user(
            username=user_data.get('username') or validated_data['staff_no'],
            email=user_data.get('email', ''),
            password=password,
            first_name=user_data.get('first_name', ''),
            last_name=user_data.get('last_name', ''),
        )
        if profile_data.get('role'):
            user.userprofile.role = profile_data['role']
            user.userprofile.save(update_fields=['role', 'updated_at'])

        return Employee.objects.create(user=user, **validated_data)

    @transaction.atomic
    def update(self, instance, validated_data):
        user_data = validated_data.pop('user', {})
        profile_data = user_data.pop('userprofile', {})
        password = validated_data.pop('password', None)

        user = instance.user
        for field, value in user_data.items():
            setattr(user, field, value)
        if password:
            user.set_password(password)
        if user_data or password:
            user.save()

        if profile_data.get('role'):
            user.userprofile.role = profile_data['role']
            user.userprofile.save(update_fields=['role', 'updated_at'])

        return super().update(instance, validated_data)
