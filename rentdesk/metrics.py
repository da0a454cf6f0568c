"""KPI and derived-status calculations.

Everything here is a pure function of the records passed in; the screens
recompute from the snapshot they loaded on every request.
"""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import NamedTuple, Optional

from django.utils import timezone

from .models import AccountingEntry, Contract, MaintenanceRequest, Payment, Property, Subscription, Tenant

OVERDUE = "OVERDUE"
EXPIRING_WINDOW_DAYS = 30
ZERO = Decimal("0")


def _today(today):
    return today or timezone.localdate()


def _sum(values):
    return sum(values, ZERO)


# --- derived payment status ---


def is_overdue(payment: Payment, today: date = None) -> bool:
    return payment.status == Payment.Status.PENDING and payment.due_date < _today(today)


def derive_payment_status(payment: Payment, today: date = None) -> str:
    if is_overdue(payment, today):
        return OVERDUE
    return payment.status


def overdue_payments(payments, today: date = None):
    today = _today(today)
    return [p for p in payments if is_overdue(p, today)]


def active_contract_for_property(property: Property, contracts) -> Optional[Contract]:
    for contract in contracts:
        if contract.property_id == property.pk and contract.status == Contract.Status.ACTIVE:
            return contract
    return None


def overdue_payments_for_property(property: Property, contracts, payments, today: date = None):
    contract = active_contract_for_property(property, contracts)
    if contract is None:
        return []
    return overdue_payments([p for p in payments if p.contract_id == contract.pk], today)


def overdue_payments_for_tenant(tenant: Tenant, payments, today: date = None):
    return overdue_payments([p for p in payments if p.tenant_id == tenant.pk], today)


def filter_by_status(payments, status, today: date = None):
    """Status filter of the payments page; ``OVERDUE`` is matched on the derived status."""
    if not status:
        return list(payments)
    if status == OVERDUE:
        return overdue_payments(payments, today)
    return [p for p in payments if p.status == status]


# --- filters ---


@dataclass(frozen=True)
class KpiFilters:
    month: Optional[int] = None
    year: Optional[int] = None
    unit_id: Optional[int] = None
    property_type: Optional[str] = None


def filter_properties(properties, filters: KpiFilters):
    selected = list(properties)
    if filters.unit_id:
        selected = [p for p in selected if p.unit_id == filters.unit_id]
    if filters.property_type:
        selected = [p for p in selected if p.property_type == filters.property_type]
    return selected


def filter_payments(payments, properties, contracts, filters: KpiFilters):
    selected = list(payments)

    if filters.month and filters.year:
        selected = [
            p for p in selected
            if (p.paid_date or p.due_date).month == filters.month
            and (p.paid_date or p.due_date).year == filters.year
        ]

    if filters.unit_id or filters.property_type:
        property_ids = {p.pk for p in filter_properties(properties, filters)}
        contract_ids = {c.pk for c in contracts if c.property_id in property_ids}
        selected = [p for p in selected if p.contract_id in contract_ids]

    return selected


def overlapping_contracts(contract: Contract, contracts, statuses=(Contract.Status.ACTIVE,)):
    """Other contracts on the same property whose [start, end) range intersects ``contract``'s."""
    return [
        other for other in contracts
        if other.pk != contract.pk
        and other.property_id == contract.property_id
        and other.status in statuses
        and other.start_date < contract.end_date
        and contract.start_date < other.end_date
    ]


# --- payment KPIs ---


class PaymentKpis(NamedTuple):
    total_collected: Decimal
    pending_amount: Decimal
    overdue_amount: Decimal
    this_month_amount: Decimal


def payment_kpis(payments, today: date = None) -> PaymentKpis:
    today = _today(today)
    return PaymentKpis(
        total_collected=_sum(p.amount for p in payments if p.status == Payment.Status.PAID),
        pending_amount=_sum(p.amount for p in payments if p.status == Payment.Status.PENDING),
        overdue_amount=_sum(p.amount for p in payments if is_overdue(p, today)),
        this_month_amount=_sum(
            p.amount for p in payments if p.due_date.month == today.month and p.due_date.year == today.year
        ),
    )


def amount_by_type(payments):
    totals = OrderedDict()
    for payment_type in Payment.PaymentType:
        total = _sum(p.amount for p in payments if p.payment_type == payment_type)
        if total > 0:
            totals[payment_type.value] = total
    return totals


def recent_months(today: date, count: int):
    """First day of each of the last ``count`` months, oldest first, ending with ``today``'s month."""
    months = []
    year, month = today.year, today.month
    for _ in range(count):
        months.append(date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(months))


def _month_end(first: date) -> date:
    if first.month == 12:
        return date(first.year, 12, 31)
    return date(first.year, first.month + 1, 1) - timedelta(days=1)


def _same_month(d: Optional[date], first: date) -> bool:
    return d is not None and d.year == first.year and d.month == first.month


def monthly_trend(payments, today: date = None, months=6):
    rows = []
    for first in recent_months(_today(today), months):
        in_month = [p for p in payments if _same_month(p.due_date, first)]
        rows.append({
            "month": first,
            "collected": _sum(p.amount for p in in_month if p.status == Payment.Status.PAID),
            "pending": _sum(p.amount for p in in_month if p.status == Payment.Status.PENDING),
        })
    return rows


# --- occupancy / dashboard / reports ---


def occupancy_rate(properties) -> float:
    properties = list(properties)
    if not properties:
        return 0.0
    rented = sum(1 for p in properties if p.status == Property.Status.RENTED)
    return rented / len(properties) * 100


class DashboardStats(NamedTuple):
    total_properties: int
    occupied_properties: int
    occupancy_rate: float
    total_tenants: int
    total_revenue: Decimal
    pending_maintenance: int
    overdue_payments: int
    expiring_contracts: int


def expiring_contracts(contracts, today: date = None, window_days=EXPIRING_WINDOW_DAYS):
    today = _today(today)
    horizon = today + timedelta(days=window_days)
    return [
        c for c in contracts
        if c.status == Contract.Status.ACTIVE and today <= c.end_date <= horizon
    ]


def dashboard_stats(properties, tenants, payments, maintenance_requests, contracts, today: date = None):
    today = _today(today)
    return DashboardStats(
        total_properties=len(properties),
        occupied_properties=sum(1 for p in properties if p.status == Property.Status.RENTED),
        occupancy_rate=occupancy_rate(properties),
        total_tenants=sum(1 for t in tenants if t.status == Tenant.Status.ACTIVE),
        total_revenue=_sum(
            p.amount for p in payments
            if p.status == Payment.Status.PAID and p.payment_type == Payment.PaymentType.RENT
        ),
        pending_maintenance=sum(
            1 for m in maintenance_requests
            if m.status in (MaintenanceRequest.Status.OPEN, MaintenanceRequest.Status.IN_PROGRESS)
        ),
        overdue_payments=len(overdue_payments(payments, today)),
        expiring_contracts=len(expiring_contracts(contracts, today)),
    )


class ReportSummary(NamedTuple):
    total_revenue: Decimal
    average_rent: Decimal
    occupancy_rate: float
    maintenance_cost: Decimal


def report_summary(payments, properties, contracts, maintenance_requests, filters: KpiFilters) -> ReportSummary:
    selected_properties = filter_properties(properties, filters)
    selected_payments = filter_payments(payments, properties, contracts, filters)
    property_ids = {p.pk for p in selected_properties}

    if selected_properties:
        average_rent = (_sum(p.rent for p in selected_properties) / len(selected_properties)).quantize(Decimal("0.01"))
    else:
        average_rent = ZERO

    return ReportSummary(
        total_revenue=_sum(p.amount for p in selected_payments if p.status == Payment.Status.PAID),
        average_rent=average_rent,
        occupancy_rate=occupancy_rate(selected_properties),
        maintenance_cost=_sum(m.total_cost() for m in maintenance_requests if m.property_id in property_ids),
    )


def revenue_expense_trend(payments, maintenance_requests, today: date = None, months=12):
    rows = []
    for first in recent_months(_today(today), months):
        revenue = _sum(
            p.amount for p in payments
            if p.status == Payment.Status.PAID and _same_month(p.paid_date, first)
        )
        expenses = _sum(
            m.actual_cost or ZERO for m in maintenance_requests
            if m.status == MaintenanceRequest.Status.COMPLETED and _same_month(m.completed_date, first)
        )
        rows.append({"month": first, "revenue": revenue, "expenses": expenses, "profit": revenue - expenses})
    return rows


def _covers(contract: Contract, day: date) -> bool:
    if contract.status == Contract.Status.DRAFT:
        return False
    end = contract.end_date
    if contract.status == Contract.Status.TERMINATED and contract.termination_date:
        end = min(end, contract.termination_date)
    return contract.start_date <= day < end


def occupancy_trend(contracts, properties, today: date = None, months=12):
    total = len(properties) or 1
    rows = []
    for first in recent_months(_today(today), months):
        day = _month_end(first)
        leased = sum(1 for c in contracts if _covers(c, day))
        rows.append({"month": first, "rate": round(leased / total * 100, 1)})
    return rows


# --- accounting ---


def filter_entries(entries, entry_type=None, date_from=None, date_to=None, concept=None):
    selected = list(entries)
    if entry_type in AccountingEntry.EntryType.values:
        selected = [e for e in selected if e.entry_type == entry_type]
    if date_from:
        selected = [e for e in selected if e.date >= date_from]
    if date_to:
        selected = [e for e in selected if e.date <= date_to]
    if concept:
        needle = concept.casefold()
        selected = [e for e in selected if needle in e.concept.casefold()]
    return selected


def page_total(entries) -> Decimal:
    return _sum(e.amount for e in entries)


def accounting_report(entries, group_by=None):
    income = ZERO
    expense = ZERO
    grouped = {} if group_by in ("month", "day") else None

    for entry in entries:
        is_income = entry.entry_type == AccountingEntry.EntryType.INCOME
        if is_income:
            income += entry.amount
        else:
            expense += entry.amount

        if grouped is not None:
            key = entry.date.strftime("%Y-%m" if group_by == "month" else "%Y-%m-%d")
            bucket = grouped.setdefault(key, {"income": ZERO, "expense": ZERO})
            bucket["income" if is_income else "expense"] += entry.amount

    if grouped is not None:
        grouped = OrderedDict(sorted(grouped.items()))

    return {"income": income, "expense": expense, "balance": income - expense, "grouped": grouped}


# --- super admin ---


def organization_kpis(subscriptions):
    """Revenue KPIs from each organization's current subscription."""
    subscriptions = list(subscriptions)
    mrr = _sum(s.monthly_value for s in subscriptions)
    active = sum(1 for s in subscriptions if s.status == Subscription.Status.ACTIVE)
    trialing = sum(1 for s in subscriptions if s.status == Subscription.Status.TRIALING)

    distribution = OrderedDict()
    for s in subscriptions:
        distribution[s.plan.code] = distribution.get(s.plan.code, 0) + 1

    return {
        "total_mrr": mrr,
        "arr": mrr * 12,
        "active_organizations": active,
        "trialing_organizations": trialing,
        "average_revenue": (mrr / active).quantize(Decimal("0.01")) if active else ZERO,
        "plan_distribution": distribution,
    }
