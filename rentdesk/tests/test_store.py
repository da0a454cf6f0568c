from datetime import date
from decimal import Decimal

from django.test import TestCase

from rentdesk.exceptions import InvalidTransition, NotFound, RentdeskError, ValidationFailed
from rentdesk.models import ActivityLog, Contract, Payment, Property, Tenant, Unit
from rentdesk.store import PortfolioStore

from .helpers import make_contract, make_organization, make_property, make_tenant, make_user


class PortfolioStoreTests(TestCase):
    def setUp(self):
        self.org = make_organization()
        self.other_org = make_organization(name="Other Co", slug="other")
        self.user = make_user("admin", self.org)
        self.store = PortfolioStore(self.org, self.user)
        self.property = make_property(self.org)
        self.tenant = make_tenant(self.org)

    def payment(self, contract, **extra):
        values = {
            "organization": self.org,
            "contract": contract,
            "tenant": contract.tenant,
            "amount": Decimal("1000.00"),
            "due_date": date(2024, 1, 1),
        }
        values.update(extra)
        return Payment.objects.create(**values)

    def test_loads_are_scoped_to_organization(self):
        make_property(self.other_org, name="Foreign Flat")

        names = [p.name for p in self.store.load_properties()]

        self.assertEqual(names, ["Alpha Flat"])
        self.assertEqual(self.store.properties[0].pk, self.property.pk)

    def test_get_raises_not_found_for_other_organization(self):
        foreign = make_property(self.other_org, name="Foreign Flat")
        with self.assertRaises(NotFound) as ctx:
            self.store.get(Property, foreign.pk)
        self.assertEqual(ctx.exception.error, "PROPERTY_NOT_FOUND")

    def test_create_records_activity_and_updates_snapshot(self):
        self.store.load_units()

        unit = self.store.create_unit(Unit(name="Tower A", address="5 High St"))

        self.assertEqual(unit.organization, self.org)
        self.assertIn(unit, self.store.units)
        log = ActivityLog.objects.get(entity_type="UNIT", entity_id=unit.pk)
        self.assertEqual(log.action, ActivityLog.Action.CREATE)
        self.assertEqual(log.user, self.user)

    def test_validation_failure_carries_field_details(self):
        contract = Contract(
            property=self.property,
            tenant=self.tenant,
            start_date=date(2024, 5, 1),
            end_date=date(2024, 4, 1),
            monthly_rent=Decimal("1000.00"),
        )
        with self.assertRaises(ValidationFailed) as ctx:
            self.store.create_contract(contract)

        exc = ctx.exception
        self.assertEqual(exc.error, "VALIDATION_ERROR")
        self.assertIn({"field": "end_date", "message": "End date must be after the start date."}, exc.details)
        self.assertEqual(exc.toast_text(), "end_date: End date must be after the start date.")
        self.assertFalse(Contract.objects.exists())

    def test_second_active_contract_on_property_is_rejected(self):
        make_contract(self.property, self.tenant, status=Contract.Status.ACTIVE)
        other_tenant = make_tenant(self.org, first_name="Olga")

        with self.assertRaises(ValidationFailed):
            self.store.create_contract(
                Contract(
                    property=self.property,
                    tenant=other_tenant,
                    start_date=date(2025, 1, 1),
                    end_date=date(2025, 12, 31),
                    monthly_rent=Decimal("900.00"),
                    status=Contract.Status.ACTIVE,
                )
            )

    def test_active_contract_marks_property_rented(self):
        self.store.create_contract(
            Contract(
                property=self.property,
                tenant=self.tenant,
                start_date=date(2024, 1, 1),
                end_date=date(2024, 12, 31),
                monthly_rent=Decimal("1000.00"),
                status=Contract.Status.ACTIVE,
            )
        )
        self.property.refresh_from_db()
        self.assertEqual(self.property.status, Property.Status.RENTED)

    def test_delete_contract_with_payments_is_refused(self):
        contract = make_contract(self.property, self.tenant)
        self.payment(contract)

        with self.assertRaises(RentdeskError) as ctx:
            self.store.delete_contract(contract)

        self.assertEqual(ctx.exception.error, "CONTRACT_HAS_PAYMENTS")
        self.assertTrue(Contract.objects.filter(pk=contract.pk).exists())

    def test_delete_contract_frees_property(self):
        Property.objects.filter(pk=self.property.pk).update(status=Property.Status.RENTED)
        contract = make_contract(self.property, self.tenant, status=Contract.Status.ACTIVE)

        self.store.delete_contract(contract)

        self.assertFalse(Contract.objects.exists())
        self.property.refresh_from_db()
        self.assertEqual(self.property.status, Property.Status.AVAILABLE)

    def test_delete_draft_keeps_rented_property(self):
        Property.objects.filter(pk=self.property.pk).update(status=Property.Status.RENTED)
        active = make_contract(self.property, self.tenant, status=Contract.Status.ACTIVE)
        spare = make_contract(self.property, make_tenant(self.org, first_name="Olga"), start_date=date(2025, 1, 1),
                              end_date=date(2025, 12, 31))

        self.store.delete_contract(spare)

        self.property.refresh_from_db()
        self.assertEqual(self.property.status, Property.Status.RENTED)
        self.assertEqual(Contract.objects.get().pk, active.pk)

    def test_delete_unit_drops_its_properties_from_snapshot(self):
        unit = Unit.objects.create(organization=self.org, name="Tower A", address="5 High St")
        in_unit = make_property(self.org, name="Tower A 1", unit=unit)
        self.store.load_properties()

        self.store.delete_unit(unit)

        self.assertNotIn(in_unit.pk, [p.pk for p in self.store.properties])
        self.assertFalse(Property.objects.filter(pk=in_unit.pk).exists())

    def test_house_unit_holds_one_property(self):
        house = Unit.objects.create(
            organization=self.org, name="Cottage", address="7 Lane", unit_type=Unit.UnitType.HOUSE
        )
        make_property(self.org, name="Cottage", unit=house)

        with self.assertRaises(ValidationFailed):
            self.store.create_property(Property(unit=house, name="Annex", address="7 Lane", rent=Decimal("500")))


class PaymentLifecycleTests(TestCase):
    def setUp(self):
        self.org = make_organization()
        self.store = PortfolioStore(self.org)
        self.property = make_property(self.org, status=Property.Status.RENTED)
        self.tenant = make_tenant(self.org, status=Tenant.Status.ACTIVE)
        self.contract = make_contract(self.property, self.tenant, status=Contract.Status.ACTIVE)

    def new_payment(self, **extra):
        values = {
            "contract": self.contract,
            "tenant": self.tenant,
            "amount": Decimal("1000.00"),
            "payment_type": Payment.PaymentType.RENT,
            "due_date": date(2024, 1, 1),
        }
        values.update(extra)
        return Payment(**values)

    def test_first_rent_period_spans_one_month(self):
        payment = self.store.create_payment(self.new_payment(due_date=date(2024, 1, 31)))

        self.assertEqual(payment.period_start, date(2024, 1, 31))
        self.assertEqual(payment.period_end, date(2024, 3, 1))

    def test_next_rent_period_starts_at_previous_end(self):
        self.store.create_payment(self.new_payment(due_date=date(2024, 1, 1)))

        second = self.store.create_payment(self.new_payment(due_date=date(2024, 2, 1)))

        self.assertEqual(second.period_start, date(2024, 1, 31))
        self.assertEqual(second.period_end, date(2024, 2, 1))

    def test_non_rent_period_is_the_due_date(self):
        fee = self.store.create_payment(
            self.new_payment(payment_type=Payment.PaymentType.LATE_FEE, amount=Decimal("50.00"), due_date=date(2024, 2, 5))
        )
        self.assertEqual((fee.period_start, fee.period_end), (date(2024, 2, 5), date(2024, 2, 5)))

    def test_paid_needs_paid_date(self):
        with self.assertRaises(ValidationFailed) as ctx:
            self.store.create_payment(self.new_payment(status=Payment.Status.PAID))
        self.assertIn("paid_date", ctx.exception.toast_text())

    def test_tenant_must_match_contract(self):
        stranger = make_tenant(self.org, first_name="Sam")
        with self.assertRaises(ValidationFailed):
            self.store.create_payment(self.new_payment(tenant=stranger))

    def test_pending_can_be_paid(self):
        payment = self.store.create_payment(self.new_payment())
        payment.status = Payment.Status.PAID
        payment.paid_date = date(2024, 1, 3)

        self.store.update_payment(payment)

        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.Status.PAID)

    def test_paid_cannot_go_back_to_pending(self):
        payment = self.store.create_payment(self.new_payment(status=Payment.Status.PAID, paid_date=date(2024, 1, 2)))
        payment.status = Payment.Status.PENDING

        with self.assertRaises(InvalidTransition) as ctx:
            self.store.update_payment(payment)

        self.assertEqual(ctx.exception.error, "INVALID_STATUS_TRANSITION")
        self.assertEqual(Payment.objects.get(pk=payment.pk).status, Payment.Status.PAID)

    def test_refund_of_paid_rent_regenerates_pending_copy(self):
        payment = self.store.create_payment(self.new_payment(status=Payment.Status.PAID, paid_date=date(2024, 1, 2)))

        refunded, copy = self.store.void_payment(payment, Payment.Status.REFUNDED)

        self.assertEqual(refunded.status, Payment.Status.REFUNDED)
        self.assertIsNotNone(copy)
        self.assertEqual(copy.status, Payment.Status.PENDING)
        self.assertEqual(copy.amount, payment.amount)
        self.assertEqual((copy.period_start, copy.period_end), (payment.period_start, payment.period_end))
        self.assertEqual(Payment.objects.count(), 2)

    def test_refund_on_closed_contract_is_not_regenerated(self):
        payment = self.store.create_payment(self.new_payment(status=Payment.Status.PAID, paid_date=date(2024, 1, 2)))
        Contract.objects.filter(pk=self.contract.pk).update(status=Contract.Status.TERMINATED)
        payment.contract.refresh_from_db()

        _, copy = self.store.void_payment(payment, Payment.Status.REFUNDED)

        self.assertIsNone(copy)
        self.assertEqual(Payment.objects.count(), 1)

    def test_only_paid_payments_can_be_refunded(self):
        payment = self.store.create_payment(self.new_payment())
        with self.assertRaises(InvalidTransition):
            self.store.void_payment(payment, Payment.Status.REFUNDED)

    def test_cancelled_payment_is_final(self):
        payment = self.store.create_payment(self.new_payment())
        self.store.void_payment(payment, Payment.Status.CANCELLED)

        payment.status = Payment.Status.PAID
        payment.paid_date = date(2024, 1, 3)
        with self.assertRaises(InvalidTransition):
            self.store.update_payment(payment)
        with self.assertRaises(InvalidTransition):
            self.store.void_payment(Payment.objects.get(pk=payment.pk), Payment.Status.CANCELLED)
