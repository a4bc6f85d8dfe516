# TOOLTRACK/urls.py
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

router = DefaultRouter()

# Master data
router.register(r'categories', views.CategoryViewSet, basename='category')
router.register(r'employees', views.EmployeeViewSet, basename='employee')
router.register(r'toolboxes', views.ToolboxViewSet, basename='toolbox')

# Tools and transactions
router.register(r'tools', views.ToolViewSet, basename='tool')
router.register(r'transactions', views.ToolTransactionViewSet, basename='transaction')

urlpatterns = [
    path('api/', include(router.urls)),
]
