"""
URL configuration for the hris app.

Router-backed resources:
- employees/, banks/, leaves/, me/leaves/, payslips/, notifications/

Dashboard and finance endpoints:
- admin/dashboard/, analytics/dashboard/, analytics/tax/, me/dashboard/
- finance/dashboard/, finance/payroll/, finance/payroll/run/
- finance/payments/, finance/payments/export/
- finance/reconciliation/data/, finance/reconciliation/run/
- finance/payouts/<ref>/verify/
- payments/mpesa/result/, payments/mpesa/timeout/
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import dashboard_views, employee_views, finance_views, leave_views, self_service_views

router = DefaultRouter()
router.register(r'employees', employee_views.EmployeeViewSet, basename='employee')
router.register(r'banks', employee_views.BankViewSet, basename='bank')
router.register(r'leaves', leave_views.LeaveRequestViewSet, basename='leave')
router.register(r'me/leaves', leave_views.MyLeaveRequestViewSet, basename='my-leave')
router.register(r'payslips', self_service_views.PayslipViewSet, basename='payslip')
router.register(r'notifications', self_service_views.NotificationViewSet, basename='notification')

app_name = 'hris'

urlpatterns = [
    path('', include(router.urls)),

    # Dashboards
    path('admin/dashboard/', dashboard_views.AdminDashboardAPIView.as_view(), name='admin-dashboard'),
    path('analytics/dashboard/', dashboard_views.AnalyticsDashboardAPIView.as_view(), name='analytics-dashboard'),
    path('analytics/tax/', dashboard_views.TaxReportAPIView.as_view(), name='tax-report'),
    path('me/dashboard/', dashboard_views.EmployeeDashboardAPIView.as_view(), name='employee-dashboard'),

    # Finance
    path('finance/dashboard/', finance_views.FinanceDashboardAPIView.as_view(), name='finance-dashboard'),
    path('finance/payroll/', finance_views.PayrollHistoryAPIView.as_view(), name='payroll-history'),
    path('finance/payroll/run/', finance_views.PayrollRunAPIView.as_view(), name='payroll-run'),
    path('finance/payments/', finance_views.PaymentsAPIView.as_view(), name='payments'),
    path('finance/payments/export/', finance_views.PaymentExportAPIView.as_view(), name='payments-export'),
    path('finance/reconciliation/data/', finance_views.ReconciliationDataAPIView.as_view(), name='reconciliation-data'),
    path('finance/reconciliation/run/', finance_views.ReconciliationRunAPIView.as_view(), name='reconciliation-run'),
    path('finance/payouts/<str:payout_ref>/verify/', finance_views.PayoutVerifyAPIView.as_view(), name='payout-verify'),

    # Provider callbacks
    path('payments/mpesa/result/', finance_views.MpesaResultAPIView.as_view(), name='mpesa-result'),
    path('payments/mpesa/timeout/', finance_views.MpesaResultAPIView.as_view(), name='mpesa-timeout'),
]
