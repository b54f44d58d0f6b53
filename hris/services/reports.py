"""
Read-side aggregations behind the admin, finance and analytics dashboards.

Every function returns plain dicts and lists with Decimal money values, so
callers can hand them straight to a DRF Response or to the exporters.
"""

import calendar
import logging
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db.models import Avg, Count, Q, Sum
from django.utils import timezone

from ..models import Activity, Employee, LeaveRequest, Payout, Payslip
from ..utils import add_months, first_of_month, month_label
from .calculators import CENT, ZERO, calculate_nhif, calculate_nssf, calculate_paye, to_decimal
from .leave import get_allocation

logger = logging.getLogger(__name__)

RECONCILED = 'RECONCILED'
PENDING = 'PENDING'
DISCREPANCY = 'DISCREPANCY'


def _today() -> date:
    return timezone.localdate()


def _net_payroll(month: date) -> Decimal:
    return Payslip.objects.filter(month=first_of_month(month)).aggregate(
        total=Sum('net_pay')
    )['total'] or ZERO


def _activity_row(activity: Activity) -> Dict[str, Any]:
    return {
        'id': activity.id,
        'employee': activity.employee.name,
        'action_type': activity.action_type,
        'description': activity.description,
        'module': activity.module,
        'timestamp': activity.timestamp,
    }


# Dashboards

def admin_dashboard() -> Dict[str, Any]:
    activities = Activity.objects.select_related('employee__user')[:20]
    return {
        'stats': {
            'total_employees': Employee.objects.count(),
            'pending_leaves': LeaveRequest.objects.filter(status=LeaveRequest.STATUS_PENDING).count(),
            'monthly_payroll': _net_payroll(_today()),
            'active_contracts': Employee.objects.filter(is_active=True).count(),
        },
        'recent_activities': [_activity_row(activity) for activity in activities],
    }


def analytics_dashboard() -> Dict[str, Any]:
    today = _today()

    departments = list(
        Employee.objects.exclude(department__isnull=True)
        .exclude(department='')
        .values('department')
        .annotate(
            employee_count=Count('id'),
            average_salary=Avg('salary'),
            total_salary=Sum('salary'),
        )
        .order_by('-employee_count', 'department')
    )
    for row in departments:
        row['average_salary'] = to_decimal(row['average_salary']).quantize(CENT)

    trend = []
    for offset in range(5, -1, -1):
        month = add_months(today, -offset)
        trend.append({
            'month': f"{month:%Y-%m}",
            'label': month_label(month),
            'net_payroll': _net_payroll(month),
        })

    leave_counts = dict(
        LeaveRequest.objects.values_list('type').annotate(count=Count('id')).order_by('type')
    )

    return {
        'overview': {
            'total_employees': Employee.objects.count(),
            'total_departments': len(departments),
            'pending_leaves': LeaveRequest.objects.filter(status=LeaveRequest.STATUS_PENDING).count(),
            'monthly_payroll': _net_payroll(today),
        },
        'departments': departments,
        'payroll_trend': trend,
        'leave_by_type': {code: leave_counts.get(code, 0) for code, _ in LeaveRequest.TYPE_CHOICES},
    }


def employee_dashboard(employee: Employee) -> Dict[str, Any]:
    allocation = get_allocation(employee, _today().year)
    return {
        'profile': {
            'id': employee.id,
            'name': employee.name,
            'email': employee.email,
            'staff_no': employee.staff_no,
            'position': employee.position,
            'department': employee.department,
            'phone': employee.phone,
            'bank': employee.bank.name if employee.bank else None,
        },
        'recent_activities': [_activity_row(a) for a in employee.activities.select_related('employee__user')[:5]],
        'leave_allocation': {
            'year': allocation.year,
            'total_days': allocation.total_days,
            'used_days': allocation.used_days,
            'remaining_days': allocation.remaining_days,
        },
    }


def finance_dashboard() -> Dict[str, Any]:
    """
    Net totals of the last three months and a year-to-date summary.
    """
    today = _today()
    since = add_months(today, -2)

    recent = (
        Payslip.objects.filter(month__gte=since)
        .values('month')
        .annotate(net_payroll=Sum('net_pay'))
        .order_by('-month')
    )
    recent_transactions = [
        {
            'id': f"{row['month']:%Y-%m}",
            'month': row['month'],
            'net_payroll': row['net_payroll'],
            'status': 'Completed',
        }
        for row in recent
    ]

    ytd = Payslip.objects.filter(month__gte=date(today.year, 1, 1)).aggregate(
        gross=Sum('gross_salary'),
        net=Sum('net_pay'),
    )
    gross = ytd['gross'] or ZERO
    net = ytd['net'] or ZERO

    return {
        'recent_transactions': recent_transactions,
        'financial_summary': {
            'total_payroll_ytd': net,
            'average_monthly_payroll': (net / today.month).quantize(CENT),
            'total_deductions_ytd': gross - net,
            'net_salary_ytd': net,
        },
    }


# Finance views

def payroll_history() -> List[Dict[str, Any]]:
    """
    One row per payslip month, newest first.
    """
    rows = (
        Payslip.objects.values('month')
        .annotate(
            total_employees=Count('employee', distinct=True),
            gross_payroll=Sum('gross_salary'),
            net_payroll=Sum('net_pay'),
            payslips=Count('id'),
            paid=Count('id', filter=Q(paid=True)),
        )
        .order_by('-month')
    )

    history = []
    for row in rows:
        if row['paid'] == row['payslips']:
            status = 'Completed'
        elif row['paid']:
            status = 'Partial'
        else:
            status = 'Pending'
        history.append({
            'id': f"{row['month']:%Y-%m}",
            'month': row['month'],
            'total_employees': row['total_employees'],
            'gross_payroll': row['gross_payroll'],
            'deductions': row['gross_payroll'] - row['net_payroll'],
            'net_payroll': row['net_payroll'],
            'status': status,
        })
    return history


def payment_transactions(limit: int = 50) -> List[Dict[str, Any]]:
    """
    Latest payslips carrying a payout reference, grouped by that reference.
    """
    payslips = (
        Payslip.objects.exclude(payout_ref__isnull=True)
        .exclude(payout_ref='')
        .select_related('employee__bank')
        .order_by('-updated_at')[:limit]
    )
    payouts = {
        payout.ref: payout
        for payout in Payout.objects.filter(ref__in={p.payout_ref for p in payslips})
    }

    grouped: Dict[str, Dict[str, Any]] = OrderedDict()
    for payslip in payslips:
        entry = grouped.get(payslip.payout_ref)
        if entry is None:
            payout = payouts.get(payslip.payout_ref)
            if payout and payout.bank:
                bank = payout.bank
            elif payslip.employee.bank:
                bank = payslip.employee.bank.name
            else:
                bank = 'N/A'
            entry = grouped[payslip.payout_ref] = {
                'ref': payslip.payout_ref,
                'date': payout.created_at if payout else payslip.updated_at,
                'amount': ZERO,
                'employee_count': 0,
                'bank': bank,
                'status': payout.status if payout else None,
            }
        entry['amount'] += payslip.net_pay
        entry['employee_count'] += 1

    return sorted(grouped.values(), key=lambda entry: entry['date'], reverse=True)


def reconciliation_data(limit: Optional[int] = None) -> Dict[str, Any]:
    """
    Compare each payout with the payslips it paid.

    A settled payout whose amount matches its payslips is RECONCILED; one
    still awaiting the provider is PENDING; anything else is a DISCREPANCY.
    """
    payouts = Payout.objects.filter(type=Payout.TYPE_SALARY).order_by('-created_at')
    if limit:
        payouts = payouts[:limit]
    payouts = list(payouts)

    internal_totals = dict(
        Payslip.objects.filter(payout_ref__in=[p.ref for p in payouts])
        .values_list('payout_ref')
        .annotate(total=Sum('net_pay'))
        .order_by()
    )

    rows = []
    summary = {'total_transactions': 0, 'reconciled': 0, 'pending': 0, 'discrepancies': 0}
    for payout in payouts:
        internal_amount = internal_totals.get(payout.ref, payout.amount)
        settled_amount = payout.amount if payout.status == Payout.STATUS_SUCCESS else ZERO
        difference = internal_amount - settled_amount

        if payout.status in (Payout.STATUS_PROCESSING, Payout.STATUS_PENDING):
            status = PENDING
            summary['pending'] += 1
        elif payout.status == Payout.STATUS_SUCCESS and difference == 0:
            status = RECONCILED
            summary['reconciled'] += 1
        else:
            status = DISCREPANCY
            summary['discrepancies'] += 1

        summary['total_transactions'] += 1
        rows.append({
            'id': payout.id,
            'ref': payout.ref,
            'date': payout.created_at,
            'internal_amount': internal_amount,
            'bank_amount': settled_amount,
            'difference': difference,
            'status': status,
        })

    return {'reconciliation_data': rows, 'summary': summary}


# Tax

def _tax_totals(payslips) -> Dict[str, Decimal]:
    totals = {'paye': ZERO, 'nhif': ZERO, 'nssf': ZERO}
    for payslip in payslips:
        totals['paye'] += calculate_paye(payslip.gross_salary)
        totals['nhif'] += calculate_nhif(payslip.employee)
        totals['nssf'] += calculate_nssf(payslip.employee)
    return totals


def filing_due_date(month) -> date:
    """Filing day of the month after `month`, clamped to that month's last day"""
    following = add_months(month, 1)
    last_day = calendar.monthrange(following.year, following.month)[1]
    return following.replace(day=min(settings.HRIS_TAX_FILING_DAY, last_day))


def tax_report() -> Dict[str, Any]:
    """
    Current-year PAYE, NHIF and NSSF totals plus a three-month filing breakdown.

    A month's return is due on HRIS_TAX_FILING_DAY of the following month;
    once that day has passed the month is reported as Pending.
    """
    today = _today()
    year_start = date(today.year, 1, 1)

    summary = _tax_totals(
        Payslip.objects.filter(month__gte=year_start, month__lt=date(today.year + 1, 1, 1))
        .select_related('employee')
    )

    breakdown = []
    for offset in range(2, -1, -1):
        month = add_months(today, -offset)
        totals = _tax_totals(Payslip.objects.filter(month=month).select_related('employee'))
        due = filing_due_date(month)
        breakdown.append({
            'period': month_label(month),
            'paye': totals['paye'],
            'nhif': totals['nhif'],
            'nssf': totals['nssf'],
            'total': totals['paye'] + totals['nhif'] + totals['nssf'],
            'status': 'Pending' if today > due else 'Submitted',
        })

    return {
        'summary': {
            'total_paye': summary['paye'],
            'total_nhif': summary['nhif'],
            'total_nssf': summary['nssf'],
        },
        'monthly_breakdown': breakdown,
    }
