"""Rent-schedule generation and contract lifecycle transitions.

The month arithmetic follows calendar "add a month" semantics where a day
that does not exist in the target month rolls over into the next one
(Jan 31 + 1 month is Mar 2 in a leap year), and a rent period ends the day
before the next period would start.
"""

import logging
from datetime import date, timedelta

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone

from .exceptions import ActivationError, InvalidTransition
from .models import ActivityLog, Contract, Payment, Property, Tenant

logger = logging.getLogger(__name__)


def add_months(d: date, months: int) -> date:
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, 1) + timedelta(days=d.day - 1)


def period_end_for(period_start: date) -> date:
    return add_months(period_start, 1) - timedelta(days=1)


def rent_periods(start_date: date, end_date: date, today: date):
    """Yield ``(period_start, period_end)`` for every period due by ``today``.

    A period is emitted while its start is on or before ``today`` and
    strictly before the contract end date.
    """
    cursor = start_date
    while cursor <= today and cursor < end_date:
        yield cursor, period_end_for(cursor)
        cursor = add_months(cursor, 1)


def build_rent_schedule(contract: Contract, today: date = None, include_deposit=True):
    """Return the unsaved payments owed under ``contract`` as of ``today``."""
    today = today or timezone.localdate()
    payments = []

    if include_deposit and contract.security_deposit and contract.security_deposit > 0:
        payments.append(
            Payment(
                organization_id=contract.organization_id,
                contract=contract,
                tenant_id=contract.tenant_id,
                amount=contract.security_deposit,
                payment_type=Payment.PaymentType.DEPOSIT,
                due_date=contract.start_date,
                status=Payment.Status.PENDING,
                period_start=contract.start_date,
                period_end=contract.start_date,
            )
        )

    for period_start, period_end in rent_periods(contract.start_date, contract.end_date, today):
        payments.append(
            Payment(
                organization_id=contract.organization_id,
                contract=contract,
                tenant_id=contract.tenant_id,
                amount=contract.monthly_rent,
                payment_type=Payment.PaymentType.RENT,
                due_date=period_start,
                status=Payment.Status.PENDING,
                period_start=period_start,
                period_end=period_end,
            )
        )

    return payments


def _missing_payments(contract, today, include_deposit):
    billed = Payment.objects.filter(contract=contract)
    # one rent row per month, whatever period a manual entry was given
    rent_months = {
        (due.year, due.month)
        for due in billed.filter(payment_type=Payment.PaymentType.RENT).values_list("due_date", flat=True)
    }
    has_deposit = billed.filter(payment_type=Payment.PaymentType.DEPOSIT).exists()

    missing = []
    for payment in build_rent_schedule(contract, today, include_deposit=include_deposit):
        if payment.payment_type == Payment.PaymentType.DEPOSIT and has_deposit:
            continue
        month = (payment.due_date.year, payment.due_date.month)
        if payment.payment_type == Payment.PaymentType.RENT and month in rent_months:
            continue
        missing.append(payment)
    return missing


def activate_contract(store, contract: Contract, property: Property = None, today: date = None):
    """Rent ``property`` under a draft ``contract`` and open its payment ledger.

    Everything happens in one transaction: either the ledger is created and
    the property, contract and tenant statuses are flipped, or nothing is.
    Returns the created payments.
    """
    today = today or timezone.localdate()
    property = property or contract.property

    if contract.status != Contract.Status.DRAFT:
        raise InvalidTransition("contract", contract.status, Contract.Status.ACTIVE)
    if contract.property_id != property.pk:
        raise ActivationError("The selected contract belongs to another property.")
    if property.status != Property.Status.AVAILABLE:
        raise ActivationError(f"{property.name} is not available (currently {property.get_status_display()}).")

    tenant = contract.tenant
    try:
        with transaction.atomic():
            created = Payment.objects.bulk_create(_missing_payments(contract, today, include_deposit=True))

            Property.objects.filter(pk=property.pk).update(status=Property.Status.RENTED, updated_at=timezone.now())

            contract.status = Contract.Status.ACTIVE
            contract.signed_date = contract.signed_date or today
            contract.save(update_fields=["status", "signed_date"])

            if tenant.status != Tenant.Status.ACTIVE:
                tenant.status = Tenant.Status.ACTIVE
                tenant.save(update_fields=["status"])

            store.log(
                ActivityLog.Action.ACTIVATE,
                contract,
                f'Activated contract #{contract.pk} for "{property}" with {len(created)} payment(s).',
            )
    except (DatabaseError, ValidationError) as exc:
        logger.exception("Activation of contract %s failed", contract.pk)
        contract.refresh_from_db()
        tenant.refresh_from_db()
        raise ActivationError("The contract could not be activated; nothing was changed.") from exc

    property.refresh_from_db()
    logger.info("Contract %s activated on property %s, %d payment(s) created", contract.pk, property.pk, len(created))
    store.sync_after_activation(contract, property, tenant, created)
    return created


def terminate_contract(store, contract: Contract, reason="", today: date = None):
    today = today or timezone.localdate()
    if contract.status != Contract.Status.ACTIVE:
        raise InvalidTransition("contract", contract.status, Contract.Status.TERMINATED)

    with transaction.atomic():
        contract.status = Contract.Status.TERMINATED
        contract.termination_date = today
        contract.termination_reason = reason
        contract.save(update_fields=["status", "termination_date", "termination_reason"])
        Property.objects.filter(pk=contract.property_id).update(
            status=Property.Status.AVAILABLE, updated_at=timezone.now()
        )
        store.log(ActivityLog.Action.TERMINATE, contract, f"Terminated contract #{contract.pk}.")

    logger.info("Contract %s terminated", contract.pk)
    contract.property.refresh_from_db()
    store.replace(contract)
    store.replace(contract.property)
    return contract


def generate_pending_payments(today: date = None, dry_run=False):
    """Fill in rent periods that became due for every active contract.

    Returns the number of payments created (or that would be created).
    """
    today = today or timezone.localdate()
    total = 0

    contracts = Contract.objects.filter(status=Contract.Status.ACTIVE).select_related("tenant")
    for contract in contracts:
        with transaction.atomic():
            missing = _missing_payments(contract, today, include_deposit=False)
            if not missing:
                continue
            for payment in missing:
                payment.notes = "Generated automatically."
            if not dry_run:
                Payment.objects.bulk_create(missing)
            total += len(missing)
            logger.info("Contract %s: %d rent period(s) generated", contract.pk, len(missing))

    return total


def expire_contracts(today: date = None, dry_run=False):
    """Mark active contracts whose end date has passed as EXPIRED."""
    today = today or timezone.localdate()
    due = Contract.objects.filter(status=Contract.Status.ACTIVE, end_date__lt=today)

    if dry_run:
        return due.count()

    expired = 0
    for contract in due.select_related("property"):
        with transaction.atomic():
            contract.status = Contract.Status.EXPIRED
            contract.save(update_fields=["status"])
            Property.objects.filter(pk=contract.property_id, status=Property.Status.RENTED).update(
                status=Property.Status.AVAILABLE, updated_at=timezone.now()
            )
            ActivityLog.objects.create(
                organization_id=contract.organization_id,
                entity_type="CONTRACT",
                entity_id=contract.pk,
                action=ActivityLog.Action.EXPIRE,
                description=f'Contract #{contract.pk} for "{contract.property}" expired.',
                is_system_action=True,
            )
        expired += 1

    if expired:
        logger.info("%d contract(s) marked as EXPIRED", expired)
    return expired
