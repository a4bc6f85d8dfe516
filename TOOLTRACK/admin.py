# TOOLTRACK/admin.py
from django.contrib import admin
from .models import (
    Category, Employee, Toolbox, Tool, ToolTransaction, TransactionImage
)


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name']
    search_fields = ['name']


@admin.register(Employee)
class EmployeeAdmin(admin.ModelAdmin):
    list_display = ['last_name', 'first_name', 'email', 'is_active']
    list_filter = ['is_active']
    search_fields = ['last_name', 'first_name', 'email']
    ordering = ['last_name', 'first_name']


@admin.register(Toolbox)
class ToolboxAdmin(admin.ModelAdmin):
    list_display = ['name', 'employee', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name', 'employee__last_name', 'employee__first_name']
    raw_id_fields = ['employee']


@admin.register(Tool)
class ToolAdmin(admin.ModelAdmin):
    list_display = ['serial_number', 'name', 'category', 'toolbox', 'status', 'is_active', 'purchase_date']
    list_filter = ['status', 'is_active', 'category']
    search_fields = ['serial_number', 'name']
    raw_id_fields = ['category']
    # Location and status are owned by the transaction log
    readonly_fields = ['toolbox', 'status', 'is_active']


class TransactionImageInline(admin.TabularInline):
    model = TransactionImage
    extra = 0
    can_delete = False
    readonly_fields = ['image_url']


@admin.register(ToolTransaction)
class ToolTransactionAdmin(admin.ModelAdmin):
    list_display = ['tool', 'kind', 'source_toolbox', 'destination_toolbox', 'resulting_status', 'created_at']
    list_filter = ['kind', 'resulting_status', 'created_at']
    search_fields = ['tool__serial_number', 'tool__name', 'comments']
    date_hierarchy = 'created_at'
    ordering = ['-created_at']
    inlines = [TransactionImageInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
