# TOOLTRACK/serializers.py
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from .calc import days_overdue
from .constants import WAREHOUSE, USER_TRANSACTION_KINDS, MANUAL_STATUSES
from .lifecycle import TransactionPayload
from .models import (
    Category, Employee, Toolbox, Tool, ToolTransaction, TransactionImage
)
from .validators import validate_purchase_date


class CategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ['id', 'name', 'description']


class EmployeeSerializer(serializers.ModelSerializer):
    class Meta:
        model = Employee
        fields = '__all__'


class ToolboxSerializer(serializers.ModelSerializer):
    employee = EmployeeSerializer(read_only=True)
    employee_id = serializers.PrimaryKeyRelatedField(
        queryset=Employee.objects.all(),
        source='employee',
        write_only=True,
        required=False,
        allow_null=True
    )
    is_orphaned = serializers.BooleanField(read_only=True)

    class Meta:
        model = Toolbox
        fields = ['id', 'name', 'description', 'employee', 'employee_id', 'is_active', 'is_orphaned']

    def validate_is_active(self, value):
        if self.instance is None or value:
            return value

        # An inactive toolbox cannot be the destination of a transfer
        serials = list(self.instance.tools.active().values_list('serial_number', flat=True))
        if serials:
            raise serializers.ValidationError(
                f"Cannot deactivate the toolbox: active tools are still in this toolbox ({', '.join(serials)}). "
                f"Check them in or transfer them first."
            )
        return value


class ToolboxSimpleSerializer(serializers.ModelSerializer):
    class Meta:
        model = Toolbox
        fields = ['id', 'name']


class ToolSerializer(serializers.ModelSerializer):
    category = CategorySerializer(read_only=True)
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(),
        source='category',
        write_only=True,
        required=False,
        allow_null=True
    )
    toolbox = ToolboxSimpleSerializer(read_only=True)
    location = serializers.SerializerMethodField()
    location_name = serializers.CharField(read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Tool
        fields = [
            'id', 'serial_number', 'name', 'description', 'category', 'category_id',
            'toolbox', 'location', 'location_name', 'status', 'status_display',
            'is_active', 'purchase_date', 'created_at', 'modified_at'
        ]
        # Location, status and activation only change through transactions
        read_only_fields = ['status', 'is_active', 'created_at', 'modified_at']

    def get_location(self, obj):
        return obj.location

    def validate_purchase_date(self, value):
        if value is None:
            return value
        try:
            return validate_purchase_date(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.messages)


class TransactionImageSerializer(serializers.ModelSerializer):
    class Meta:
        model = TransactionImage
        fields = ['id', 'image_url']


class LatestImageSerializer(serializers.ModelSerializer):
    transaction_id = serializers.IntegerField(read_only=True)
    kind = serializers.CharField(source='transaction.kind', read_only=True)
    created_at = serializers.DateTimeField(source='transaction.created_at', read_only=True)

    class Meta:
        model = TransactionImage
        fields = ['id', 'image_url', 'transaction_id', 'kind', 'created_at']


class ToolTransactionSerializer(serializers.ModelSerializer):
    tool = ToolSerializer(read_only=True)
    source_toolbox = ToolboxSimpleSerializer(read_only=True)
    destination_toolbox = ToolboxSimpleSerializer(read_only=True)
    from_employee = EmployeeSerializer(read_only=True)
    to_employee = EmployeeSerializer(read_only=True)
    images = TransactionImageSerializer(many=True, read_only=True)
    kind_display = serializers.CharField(source='get_kind_display', read_only=True)
    source_location = serializers.ReadOnlyField()
    destination_location = serializers.ReadOnlyField()

    class Meta:
        model = ToolTransaction
        fields = '__all__'


class OverdueTransactionSerializer(ToolTransactionSerializer):
    days_overdue = serializers.SerializerMethodField()

    def get_days_overdue(self, obj):
        today = self.context.get('today')
        return days_overdue(obj.expected_return_date, today)


class LocationField(serializers.Field):
    """
    Accepts a toolbox id or the "warehouse" keyword.
    """
    default_error_messages = {
        'invalid': 'Expected a toolbox id or "warehouse".',
    }

    def to_internal_value(self, data):
        if isinstance(data, str) and data.strip().lower() == WAREHOUSE:
            return WAREHOUSE
        try:
            return int(data)
        except (TypeError, ValueError):
            self.fail('invalid')

    def to_representation(self, value):
        return value


class TransactionRequestSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=[(kind.value, kind.label) for kind in USER_TRANSACTION_KINDS])
    destination_employee_id = serializers.IntegerField(required=False, allow_null=True)
    destination = LocationField(required=False, allow_null=True)
    comments = serializers.CharField(required=False, allow_blank=True, default='')
    image_urls = serializers.ListField(
        child=serializers.CharField(max_length=500),
        required=False,
        default=list
    )
    # Validated by the lifecycle engine so the error carries a rejection reason
    expected_return_date = serializers.CharField(required=False, allow_null=True, allow_blank=True)

    def to_payload(self):
        data = self.validated_data
        return TransactionPayload(
            destination_employee_id=data.get('destination_employee_id'),
            destination=data.get('destination'),
            comments=data.get('comments', ''),
            image_urls=tuple(data.get('image_urls', [])),
            expected_return_date=data.get('expected_return_date') or None,
        )


class StatusChangeSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[(status.value, status.label) for status in MANUAL_STATUSES])
    comments = serializers.CharField(required=False, allow_blank=True, default='')


class CommentSerializer(serializers.Serializer):
    comments = serializers.CharField(required=False, allow_blank=True, default='')


class MaintenanceReturnSerializer(CommentSerializer):
    image_urls = serializers.ListField(
        child=serializers.CharField(max_length=500),
        required=False,
        default=list
    )
