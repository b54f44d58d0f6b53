"""
Statutory deduction helpers used for payslips and tax reports.

PAYE is a flat share of gross pay (HRIS_PAYE_RATE); NHIF and NSSF are the
flat monthly amounts configured on each employee record.
"""

from decimal import Decimal
from typing import Dict

from django.conf import settings

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

# Order in which a deduction balance is itemised on a payslip
STATUTORY_ORDER = ('paye', 'nhif', 'nssf')


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def paye_rate() -> Decimal:
    return Decimal(str(settings.HRIS_PAYE_RATE))


def calculate_paye(gross_salary) -> Decimal:
    """Calculate PAYE for a gross monthly amount"""
    return (to_decimal(gross_salary) * paye_rate()).quantize(CENT)


def calculate_nhif(employee) -> Decimal:
    return to_decimal(employee.nhif_rate).quantize(CENT)


def calculate_nssf(employee) -> Decimal:
    return to_decimal(employee.nssf_rate).quantize(CENT)


def statutory_deductions(employee, gross_salary) -> Dict[str, Decimal]:
    return {
        'paye': calculate_paye(gross_salary),
        'nhif': calculate_nhif(employee),
        'nssf': calculate_nssf(employee),
    }


def allocate_deductions(employee, gross_salary, net_pay) -> Dict[str, float]:
    """
    Itemise the gap between gross and net pay.

    The statutory amounts are filled in order, each capped at its computed
    value; whatever is left goes to `other`. An overpayment (net above
    gross) is recorded as a negative `adjustment`. The values always sum to
    gross - net.
    """
    balance = (to_decimal(gross_salary) - to_decimal(net_pay)).quantize(CENT)

    if balance < 0:
        return {'adjustment': float(balance)}

    computed = statutory_deductions(employee, gross_salary)
    breakdown = {}
    for name in STATUTORY_ORDER:
        if balance <= 0:
            break
        amount = min(computed[name], balance)
        if amount > 0:
            breakdown[name] = amount
            balance -= amount

    if balance > 0:
        breakdown['other'] = balance

    return {name: float(amount) for name, amount in breakdown.items()}


def calculate_net_salary(gross_salary, deductions: Dict[str, Decimal]) -> Decimal:
    """Calculate net salary after all deductions"""
    return to_decimal(gross_salary) - sum((to_decimal(v) for v in deductions.values()), ZERO)
