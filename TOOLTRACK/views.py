# TOOLTRACK/views.py
from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils import timezone
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError as APIValidationError
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response

from .lifecycle import TransitionRejected
from .models import Category, Employee, Toolbox, Tool, ToolTransaction, TransactionImage
from .serializers import (
    CategorySerializer, EmployeeSerializer, ToolboxSerializer, ToolSerializer,
    ToolTransactionSerializer, OverdueTransactionSerializer,
    TransactionRequestSerializer, StatusChangeSerializer, CommentSerializer,
    MaintenanceReturnSerializer, LatestImageSerializer
)
from .services import ToolLifecycleService


def error_response(error):
    """Translates a ValidationError into the API error body."""
    if isinstance(error, TransitionRejected):
        body = error.as_dict()
    else:
        body = {'error': ' '.join(error.messages), 'reason': None, 'field': None}
    return Response(body, status=status.HTTP_400_BAD_REQUEST)


def _is_true(value):
    return value is not None and value.lower() in ('true', '1', 'yes')


def _id_param(request, name):
    """Reads an integer id from the query string; None when absent."""
    value = request.query_params.get(name, None)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise APIValidationError({name: f"Expected an integer id, got '{value}'."})


# ========== API VIEWSETS ==========

class StandardResultsSetPagination(PageNumberPagination):
    page_size = getattr(settings, 'TOOLTRACK_PAGE_SIZE', 100)
    page_size_query_param = 'page_size'
    max_page_size = 1000


class CategoryViewSet(viewsets.ModelViewSet):
    queryset = Category.objects.all()
    serializer_class = CategorySerializer


class EmployeeViewSet(viewsets.ModelViewSet):
    queryset = Employee.objects.all()
    serializer_class = EmployeeSerializer
    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        queryset = super().get_queryset()
        active = self.request.query_params.get('active', None)

        if active is not None:
            queryset = queryset.filter(is_active=_is_true(active))

        return queryset


class ToolboxViewSet(viewsets.ModelViewSet):
    queryset = Toolbox.objects.with_owner().all()
    serializer_class = ToolboxSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        orphaned = self.request.query_params.get('orphaned', None)

        if orphaned and _is_true(orphaned):
            queryset = queryset.orphaned()

        return queryset

    def destroy(self, request, *args, **kwargs):
        return Response(
            {'error': 'Toolboxes cannot be deleted. Deactivate the toolbox instead.'},
            status=status.HTTP_405_METHOD_NOT_ALLOWED
        )


class ToolViewSet(viewsets.ModelViewSet):
    queryset = Tool.objects.with_relations().all()
    serializer_class = ToolSerializer
    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        queryset = super().get_queryset()
        tool_status = self.request.query_params.get('status', None)
        toolbox_id = self.request.query_params.get('toolbox_id', None)
        active = self.request.query_params.get('active', None)

        if tool_status:
            queryset = queryset.with_status(tool_status)

        if toolbox_id:
            if toolbox_id.lower() == 'warehouse':
                queryset = queryset.in_warehouse()
            else:
                queryset = queryset.in_toolbox(_id_param(self.request, 'toolbox_id'))

        if active is not None:
            queryset = queryset.filter(is_active=_is_true(active))

        return queryset

    @action(detail=True, methods=['get'])
    def eligible(self, request, pk=None):
        """Transaction kinds and status changes allowed for the tool"""
        tool = self.get_object()
        return Response(ToolLifecycleService.eligible_kinds(tool))

    @action(detail=True, methods=['post'])
    def transaction(self, request, pk=None):
        """Performs a transaction chosen in the transaction dialog"""
        tool = self.get_object()
        serializer = TransactionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            record = ToolLifecycleService.perform_transaction(
                tool_id=tool.id,
                kind=serializer.validated_data['kind'],
                payload=serializer.to_payload()
            )
        except ValidationError as e:
            return error_response(e)

        return Response(
            ToolTransactionSerializer(record).data,
            status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['post'], url_path='status')
    def change_status(self, request, pk=None):
        """Marks the tool as Broken or Lost"""
        tool = self.get_object()
        serializer = StatusChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            record = ToolLifecycleService.change_status(
                tool_id=tool.id,
                new_status=serializer.validated_data['status'],
                comments=serializer.validated_data['comments']
            )
        except ValidationError as e:
            return error_response(e)

        return Response(
            ToolTransactionSerializer(record).data,
            status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['post'], url_path='return-from-maintenance')
    def return_from_maintenance(self, request, pk=None):
        tool = self.get_object()
        serializer = MaintenanceReturnSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            record = ToolLifecycleService.return_from_maintenance(
                tool_id=tool.id,
                comments=serializer.validated_data['comments'],
                image_urls=serializer.validated_data['image_urls']
            )
        except ValidationError as e:
            return error_response(e)

        return Response(
            ToolTransactionSerializer(record).data,
            status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['get'], url_path='latest-image')
    def latest_image(self, request, pk=None):
        """Most recent image recorded for the tool"""
        tool = self.get_object()
        image = TransactionImage.objects.latest_for_tool(tool.id)

        if image is None:
            return Response(
                {'error': 'No images have been recorded for this tool.'},
                status=status.HTTP_404_NOT_FOUND
            )

        return Response(LatestImageSerializer(image).data)

    @action(detail=True, methods=['post'], url_path='toggle-activation')
    def toggle_activation(self, request, pk=None):
        """Deactivates or reactivates the tool"""
        tool = self.get_object()
        serializer = CommentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            record = ToolLifecycleService.toggle_activation(
                tool_id=tool.id,
                comments=serializer.validated_data['comments']
            )
        except ValidationError as e:
            return error_response(e)

        return Response(
            ToolTransactionSerializer(record).data,
            status=status.HTTP_201_CREATED
        )

    def destroy(self, request, *args, **kwargs):
        return Response(
            {'error': 'Tools cannot be deleted. Deactivate the tool instead.'},
            status=status.HTTP_405_METHOD_NOT_ALLOWED
        )


class ToolTransactionViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ToolTransaction.objects.with_relations().all()
    serializer_class = ToolTransactionSerializer
    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        queryset = super().get_queryset()
        tool_id = _id_param(self.request, 'tool_id')
        toolbox_id = _id_param(self.request, 'toolbox_id')
        employee_id = _id_param(self.request, 'employee_id')
        kind = self.request.query_params.get('kind', None)

        if tool_id is not None:
            queryset = queryset.for_tool(tool_id)

        if toolbox_id is not None:
            queryset = queryset.for_toolbox(toolbox_id)

        if employee_id is not None:
            queryset = queryset.for_employee(employee_id)

        if kind:
            queryset = queryset.filter(kind=kind)

        return queryset.order_by('-created_at', '-id')

    @action(detail=False, methods=['get'])
    def overdue(self, request):
        """Tools still checked out after their expected return date"""
        today = timezone.localdate()
        queryset = ToolTransaction.objects.with_relations().overdue(today).order_by('expected_return_date')
        serializer = OverdueTransactionSerializer(queryset, many=True, context={'today': today})
        return Response(serializer.data)
