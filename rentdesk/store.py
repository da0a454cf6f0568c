"""Organization-scoped portfolio store.

A ``PortfolioStore`` is created per request for the caller's organization
and passed explicitly to the services that need it. It keeps the snapshots
the screens were rendered from and routes every mutation through one place:
validate, persist, record activity, then splice the saved record into the
loaded snapshot. Failures surface as ``RentdeskError`` subclasses.
"""

import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import ProtectedError

from .exceptions import InvalidTransition, NotFound, RentdeskError, ValidationFailed
from .models import (
    AccountingEntry,
    ActivityLog,
    Contract,
    MaintenanceRequest,
    Payment,
    Property,
    Tenant,
    Unit,
)
from .schedule import period_end_for

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "units": (Unit, ()),
    "properties": (Property, ("unit",)),
    "tenants": (Tenant, ()),
    "contracts": (Contract, ("property", "tenant")),
    "payments": (Payment, ("contract", "tenant")),
    "maintenance_requests": (MaintenanceRequest, ("property", "tenant")),
    "accounting_entries": (AccountingEntry, ("unit", "property")),
}

MODEL_COLLECTIONS = {model: name for name, (model, _) in COLLECTIONS.items()}

PAYMENT_TRANSITIONS = {
    Payment.Status.PENDING: {Payment.Status.PENDING, Payment.Status.PARTIAL, Payment.Status.PAID},
    Payment.Status.PARTIAL: {Payment.Status.PARTIAL, Payment.Status.PAID},
    Payment.Status.PAID: {Payment.Status.PAID},
    Payment.Status.CANCELLED: set(),
    Payment.Status.REFUNDED: set(),
}

VOID_TRANSITIONS = {
    Payment.Status.CANCELLED: {Payment.Status.PENDING, Payment.Status.PARTIAL, Payment.Status.PAID},
    Payment.Status.REFUNDED: {Payment.Status.PAID},
}

REGENERATED_ON_REFUND = (Payment.PaymentType.RENT, Payment.PaymentType.DEPOSIT)


class PortfolioStore:
    def __init__(self, organization, user=None):
        self.organization = organization
        self.user = user
        self.units = None
        self.properties = None
        self.tenants = None
        self.contracts = None
        self.payments = None
        self.maintenance_requests = None
        self.accounting_entries = None

    def __repr__(self):
        return f"<PortfolioStore organization={self.organization.pk}>"

    # --- loading ---

    def queryset(self, collection):
        model, related = COLLECTIONS[collection]
        qs = model.objects.filter(organization=self.organization)
        if related:
            qs = qs.select_related(*related)
        return qs

    def _load(self, collection):
        records = list(self.queryset(collection))
        setattr(self, collection, records)
        return records

    def load_units(self):
        return self._load("units")

    def load_properties(self):
        return self._load("properties")

    def load_tenants(self):
        return self._load("tenants")

    def load_contracts(self):
        return self._load("contracts")

    def load_payments(self):
        return self._load("payments")

    def load_maintenance_requests(self):
        return self._load("maintenance_requests")

    def load_accounting_entries(self):
        return self._load("accounting_entries")

    def load_all(self):
        for collection in COLLECTIONS:
            self._load(collection)
        return self

    def get(self, model, pk):
        try:
            return self.queryset(MODEL_COLLECTIONS[model]).get(pk=pk)
        except model.DoesNotExist:
            raise NotFound(model._meta.verbose_name) from None

    # --- snapshot splicing ---

    def _snapshot(self, instance):
        collection = MODEL_COLLECTIONS.get(type(instance))
        return getattr(self, collection) if collection else None

    def replace(self, instance):
        records = self._snapshot(instance)
        if records is None:
            return
        for index, record in enumerate(records):
            if record.pk == instance.pk:
                records[index] = instance
                return
        records.append(instance)

    def _remove(self, instance, pk):
        records = self._snapshot(instance)
        if records is not None:
            records[:] = [r for r in records if r.pk != pk]

    def sync_after_activation(self, contract, property, tenant, payments):
        self.replace(contract)
        self.replace(property)
        self.replace(tenant)
        if self.payments is not None:
            self.payments.extend(payments)

    # --- activity ---

    def log(self, action, instance, description, system=False):
        return ActivityLog.objects.create(
            organization=self.organization,
            user=self.user if self.user is not None and self.user.is_authenticated else None,
            entity_type=instance._meta.model_name.upper(),
            entity_id=instance.pk,
            action=action,
            description=description,
            is_system_action=system,
        )

    # --- generic mutations ---

    def _save(self, instance, created):
        instance.organization = self.organization
        try:
            instance.full_clean()
        except ValidationError as exc:
            logger.warning("Rejected %s: %s", instance._meta.model_name, exc.messages)
            raise ValidationFailed.from_django(exc) from exc

        with transaction.atomic():
            instance.save()
            action = ActivityLog.Action.CREATE if created else ActivityLog.Action.UPDATE
            verb = "Created" if created else "Updated"
            self.log(action, instance, f'{verb} {instance._meta.verbose_name} "{instance}".')

        logger.info("%s %s %s", verb, instance._meta.model_name, instance.pk)
        self.replace(instance)
        return instance

    def _delete(self, instance):
        pk = instance.pk
        label = str(instance)
        try:
            with transaction.atomic():
                instance.delete()
                instance.pk = pk
                self.log(ActivityLog.Action.DELETE, instance, f'Deleted {instance._meta.verbose_name} "{label}".')
        except ProtectedError as exc:
            raise RentdeskError(
                "RECORD_IN_USE",
                f"{label} still has payments attached and cannot be deleted.",
            ) from exc
        logger.info("Deleted %s %s", instance._meta.model_name, pk)
        self._remove(instance, pk)

    # --- units ---

    def create_unit(self, unit):
        return self._save(unit, created=True)

    def update_unit(self, unit):
        return self._save(unit, created=False)

    def delete_unit(self, unit):
        property_ids = set(unit.properties.values_list("pk", flat=True))
        self._delete(unit)
        if self.properties is not None:
            self.properties[:] = [p for p in self.properties if p.pk not in property_ids]

    # --- properties ---

    def create_property(self, property):
        return self._save(property, created=True)

    def update_property(self, property):
        return self._save(property, created=False)

    def delete_property(self, property):
        self._delete(property)

    # --- tenants ---

    def create_tenant(self, tenant):
        return self._save(tenant, created=True)

    def update_tenant(self, tenant):
        return self._save(tenant, created=False)

    def delete_tenant(self, tenant):
        self._delete(tenant)

    # --- contracts ---

    def create_contract(self, contract):
        contract = self._save(contract, created=True)
        if contract.status == Contract.Status.ACTIVE:
            self._mark_property(contract.property, Property.Status.RENTED)
        return contract

    def update_contract(self, contract):
        return self._save(contract, created=False)

    def delete_contract(self, contract):
        if contract.payments.exists():
            raise RentdeskError("CONTRACT_HAS_PAYMENTS", "Cannot delete a contract with existing payments.")
        property = contract.property
        was_active = contract.status == Contract.Status.ACTIVE
        self._delete(contract)
        if was_active:
            self._mark_property(property, Property.Status.AVAILABLE)

    def _mark_property(self, property, status):
        property.status = status
        property.save(update_fields=["status", "updated_at"])
        self.replace(property)

    # --- payments ---

    def create_payment(self, payment):
        if payment.period_start is None:
            self._fill_period(payment)
        return self._save(payment, created=True)

    def _fill_period(self, payment):
        if payment.payment_type != Payment.PaymentType.RENT:
            payment.period_start = payment.due_date
            payment.period_end = payment.due_date
            return

        last_rent = (
            Payment.objects.filter(contract_id=payment.contract_id, payment_type=Payment.PaymentType.RENT)
            .exclude(period_end__isnull=True)
            .order_by("-due_date", "-pk")
            .first()
        )
        if last_rent is None:
            payment.period_start = payment.due_date
            payment.period_end = period_end_for(payment.due_date)
        else:
            payment.period_start = last_rent.period_end
            payment.period_end = payment.due_date

    def update_payment(self, payment):
        current = Payment.objects.filter(pk=payment.pk).values_list("status", flat=True).first()
        if current is None:
            raise NotFound("payment")
        if payment.status not in PAYMENT_TRANSITIONS[current]:
            raise InvalidTransition("payment", current, payment.status)
        return self._save(payment, created=False)

    def delete_payment(self, payment):
        self._delete(payment)

    def void_payment(self, payment, status):
        """Cancel or refund ``payment``; the only way into a final state.

        A refunded rent or deposit of an active contract is owed again, so a
        fresh pending copy is created alongside. Returns ``(payment, copy)``.
        """
        if status not in VOID_TRANSITIONS:
            raise RentdeskError("INVALID_STATUS", f"{status} is not a cancel or refund status.")
        if payment.status not in VOID_TRANSITIONS[status]:
            raise InvalidTransition("payment", payment.status, status)

        regenerated = None
        with transaction.atomic():
            payment.status = status
            payment.save(update_fields=["status"])
            self.log(ActivityLog.Action.UPDATE, payment, f"Payment #{payment.pk} marked as {status}.")

            if (
                status == Payment.Status.REFUNDED
                and payment.payment_type in REGENERATED_ON_REFUND
                and payment.contract.status == Contract.Status.ACTIVE
            ):
                regenerated = Payment.objects.create(
                    organization=self.organization,
                    contract=payment.contract,
                    tenant=payment.tenant,
                    amount=payment.amount,
                    payment_type=payment.payment_type,
                    due_date=payment.due_date,
                    status=Payment.Status.PENDING,
                    method=payment.method,
                    notes=f"Regenerated after refund of payment #{payment.pk}.",
                    period_start=payment.period_start,
                    period_end=payment.period_end,
                )

        logger.info("Payment %s set to %s", payment.pk, status)
        self.replace(payment)
        if regenerated is not None:
            self.replace(regenerated)
        return payment, regenerated

    # --- maintenance ---

    def create_maintenance_request(self, request):
        return self._save(request, created=True)

    def update_maintenance_request(self, request):
        return self._save(request, created=False)

    def delete_maintenance_request(self, request):
        self._delete(request)

    # --- accounting ---

    def create_accounting_entry(self, entry):
        if entry.created_by_id is None and self.user is not None and self.user.is_authenticated:
            entry.created_by = self.user
        return self._save(entry, created=True)

    def update_accounting_entry(self, entry):
        return self._save(entry, created=False)

    def delete_accounting_entry(self, entry):
        self._delete(entry)
