from datetime import date, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from rentdesk.models import Contract, Payment, Plan, Property, Subscription, Tenant, UserProfile
from rentdesk.signals import receipt_requested
from rentdesk.store import PortfolioStore

from .helpers import PASSWORD, make_contract, make_organization, make_property, make_tenant, make_user


class ViewTestCase(TestCase):
    def setUp(self):
        self.org = make_organization()
        self.other_org = make_organization(name="Other Co", slug="other")

        self.admin = make_user("admin", self.org, UserProfile.Role.ADMIN)
        self.manager = make_user("manager", self.org, UserProfile.Role.MANAGER)
        self.viewer = make_user("viewer", self.org, UserProfile.Role.USER)

        self.property = make_property(self.org, name="Alpha Flat")
        self.foreign_property = make_property(self.other_org, name="Foreign Flat")
        self.tenant = make_tenant(self.org)

    def login(self, username):
        self.assertTrue(self.client.login(username=username, password=PASSWORD))


class AccessTests(ViewTestCase):
    def test_dashboard_requires_login(self):
        response = self.client.get(reverse("rentdesk:dashboard"))
        self.assertEqual(response.status_code, 302)
        self.assertIn("/login/", response["Location"])

    def test_user_without_organization_is_forbidden(self):
        get_user_model().objects.create_user(username="drifter", password=PASSWORD)
        self.login("drifter")
        response = self.client.get(reverse("rentdesk:dashboard"))
        self.assertEqual(response.status_code, 403)

    def test_inactive_organization_is_forbidden(self):
        self.org.is_active = False
        self.org.save()
        self.login("admin")
        response = self.client.get(reverse("rentdesk:dashboard"))
        self.assertEqual(response.status_code, 403)

    def test_dashboard_renders(self):
        self.login("viewer")
        response = self.client.get(reverse("rentdesk:dashboard"))
        self.assertContains(response, "Alpha Flat")
        self.assertNotContains(response, "Foreign Flat")

    def test_properties_are_scoped_to_organization(self):
        self.login("viewer")
        response = self.client.get(reverse("rentdesk:properties_list"))
        self.assertContains(response, "Alpha Flat")
        self.assertNotContains(response, "Foreign Flat")

        response = self.client.get(reverse("rentdesk:property_detail", args=[self.foreign_property.pk]))
        self.assertEqual(response.status_code, 404)

    def test_user_role_cannot_create_property(self):
        self.login("viewer")
        response = self.client.get(reverse("rentdesk:property_create"))
        self.assertEqual(response.status_code, 403)

    def test_manager_cannot_void_payments(self):
        contract = make_contract(self.property, self.tenant, status=Contract.Status.ACTIVE)
        payment = Payment.objects.create(
            organization=self.org, contract=contract, tenant=self.tenant, amount=Decimal("1000"), due_date=date(2024, 1, 1)
        )
        self.login("manager")
        response = self.client.get(reverse("rentdesk:payment_void", args=[payment.pk]))
        self.assertEqual(response.status_code, 403)

    def test_healthz(self):
        response = self.client.get(reverse("rentdesk:healthz"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})


class PropertyViewTests(ViewTestCase):
    def test_manager_create_property_success_message(self):
        self.login("manager")
        response = self.client.post(
            reverse("rentdesk:property_create"),
            {
                "unit": "",
                "name": "Gamma Flat",
                "property_type": Property.PropertyType.APARTMENT,
                "address": "3 New St",
                "unit_number": "",
                "floor": "",
                "size": "55.00",
                "rooms": "2",
                "bathrooms": "1",
                "amenities": "Balcony\nElevator",
                "rent": "950.00",
                "status": Property.Status.AVAILABLE,
            },
            follow=True,
        )
        self.assertContains(response, "Property created successfully.")
        created = Property.objects.get(name="Gamma Flat")
        self.assertEqual(created.organization, self.org)
        self.assertEqual(created.amenities, ["Balcony", "Elevator"])

    def test_delete_property_confirmation_is_a_no_op(self):
        self.login("admin")
        response = self.client.get(reverse("rentdesk:property_delete", args=[self.property.pk]))
        self.assertContains(response, "Are you sure")
        self.assertTrue(Property.objects.filter(pk=self.property.pk).exists())

    def test_quick_rent_activates_contract(self):
        today = timezone.localdate()
        contract = make_contract(
            self.property,
            self.tenant,
            start_date=today,
            end_date=today + timedelta(days=365),
            security_deposit=Decimal("500.00"),
        )
        self.login("manager")

        response = self.client.post(
            reverse("rentdesk:property_quick_rent", args=[self.property.pk]),
            {"contract": contract.pk},
            follow=True,
        )

        self.assertContains(response, "Property rented successfully. 2 payment(s) added to the ledger.")
        contract.refresh_from_db()
        self.property.refresh_from_db()
        self.tenant.refresh_from_db()
        self.assertEqual(contract.status, Contract.Status.ACTIVE)
        self.assertEqual(self.property.status, Property.Status.RENTED)
        self.assertEqual(self.tenant.status, Tenant.Status.ACTIVE)
        self.assertEqual(
            sorted(contract.payments.values_list("payment_type", flat=True)),
            [Payment.PaymentType.DEPOSIT, Payment.PaymentType.RENT],
        )

    def test_quick_rent_failure_keeps_form_open(self):
        Property.objects.filter(pk=self.property.pk).update(status=Property.Status.MAINTENANCE)
        contract = make_contract(self.property, self.tenant)
        self.login("manager")

        response = self.client.post(
            reverse("rentdesk:property_quick_rent", args=[self.property.pk]),
            {"contract": contract.pk},
        )

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "is not available")
        self.assertFalse(Payment.objects.exists())

    def test_property_detail_shows_overdue_total(self):
        contract = make_contract(self.property, self.tenant, status=Contract.Status.ACTIVE)
        Payment.objects.create(
            organization=self.org,
            contract=contract,
            tenant=self.tenant,
            amount=Decimal("750.00"),
            due_date=timezone.localdate() - timedelta(days=3),
        )
        self.login("viewer")

        response = self.client.get(reverse("rentdesk:property_detail", args=[self.property.pk]))

        self.assertContains(response, "1 overdue payment(s) totalling 750.00")


class ContractViewTests(ViewTestCase):
    def contract_data(self, **overrides):
        data = {
            "property": self.property.pk,
            "tenant": self.tenant.pk,
            "start_date": "2024-01-01",
            "end_date": "2024-12-31",
            "monthly_rent": "1000.00",
            "security_deposit": "500.00",
            "terms": "No smoking\nPets allowed with deposit\nRent due on the 1st",
            "signed_date": "2023-12-20",
        }
        data.update(overrides)
        return data

    def test_contract_round_trip_keeps_terms_and_dates(self):
        self.login("manager")
        response = self.client.post(reverse("rentdesk:contract_create"), self.contract_data(), follow=True)
        self.assertContains(response, "Contract created successfully.")

        reloaded = PortfolioStore(self.org).load_contracts()[0]
        self.assertEqual(reloaded.terms, ["No smoking", "Pets allowed with deposit", "Rent due on the 1st"])
        self.assertEqual(reloaded.start_date, date(2024, 1, 1))
        self.assertEqual(reloaded.end_date, date(2024, 12, 31))
        self.assertEqual(reloaded.signed_date, date(2023, 12, 20))

        response = self.client.post(
            reverse("rentdesk:contract_edit", args=[reloaded.pk]),
            self.contract_data(terms="Rent due on the 1st\nNo smoking"),
            follow=True,
        )
        self.assertContains(response, "Contract updated successfully.")
        reloaded.refresh_from_db()
        self.assertEqual(reloaded.terms, ["Rent due on the 1st", "No smoking"])

    def test_overlapping_active_contract_is_rejected(self):
        make_contract(self.property, self.tenant, status=Contract.Status.ACTIVE)
        other = make_tenant(self.org, first_name="Olga")
        self.login("manager")

        response = self.client.post(
            reverse("rentdesk:contract_create"),
            self.contract_data(tenant=other.pk, start_date="2024-06-01", end_date="2025-05-31"),
        )

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "overlap active contract")
        self.assertEqual(Contract.objects.count(), 1)

    def test_end_before_start_is_rejected(self):
        self.login("manager")
        response = self.client.post(
            reverse("rentdesk:contract_create"),
            self.contract_data(start_date="2024-05-01", end_date="2024-04-01"),
        )
        self.assertContains(response, "End date must be after the start date.")
        self.assertFalse(Contract.objects.exists())

    def test_posted_status_cannot_activate_contract(self):
        self.login("manager")

        self.client.post(reverse("rentdesk:contract_create"), self.contract_data(status=Contract.Status.ACTIVE))

        contract = Contract.objects.get()
        self.assertEqual(contract.status, Contract.Status.DRAFT)
        self.property.refresh_from_db()
        self.assertEqual(self.property.status, Property.Status.AVAILABLE)

        self.client.post(
            reverse("rentdesk:contract_edit", args=[contract.pk]), self.contract_data(status=Contract.Status.ACTIVE)
        )
        contract.refresh_from_db()
        self.assertEqual(contract.status, Contract.Status.DRAFT)
        self.assertFalse(Payment.objects.exists())

    def test_delete_contract_with_payments_shows_error(self):
        contract = make_contract(self.property, self.tenant)
        Payment.objects.create(
            organization=self.org, contract=contract, tenant=self.tenant, amount=Decimal("1000"), due_date=date(2024, 1, 1)
        )
        self.login("admin")

        response = self.client.post(reverse("rentdesk:contract_delete", args=[contract.pk]), follow=True)

        self.assertContains(response, "Cannot delete a contract with existing payments.")
        self.assertTrue(Contract.objects.filter(pk=contract.pk).exists())

    def test_terminate_contract(self):
        Property.objects.filter(pk=self.property.pk).update(status=Property.Status.RENTED)
        contract = make_contract(self.property, self.tenant, status=Contract.Status.ACTIVE)
        self.login("manager")

        response = self.client.post(
            reverse("rentdesk:contract_terminate", args=[contract.pk]), {"reason": "Early exit"}, follow=True
        )

        self.assertContains(response, "Contract terminated.")
        contract.refresh_from_db()
        self.assertEqual(contract.status, Contract.Status.TERMINATED)
        self.property.refresh_from_db()
        self.assertEqual(self.property.status, Property.Status.AVAILABLE)


class PaymentViewTests(ViewTestCase):
    def setUp(self):
        super().setUp()
        self.contract = make_contract(self.property, self.tenant, status=Contract.Status.ACTIVE)

    def create_payment(self, **extra):
        values = {
            "organization": self.org,
            "contract": self.contract,
            "tenant": self.tenant,
            "amount": Decimal("1000.00"),
            "due_date": date(2024, 1, 1),
        }
        values.update(extra)
        return Payment.objects.create(**values)

    def test_paid_payment_requests_receipt(self):
        received = []

        def handler(sender, payment, is_new_payment, **kwargs):
            received.append((payment.pk, is_new_payment))

        receipt_requested.connect(handler)
        self.addCleanup(receipt_requested.disconnect, handler)
        self.login("manager")

        response = self.client.post(
            reverse("rentdesk:payment_create"),
            {
                "contract": self.contract.pk,
                "amount": "1000.00",
                "payment_type": Payment.PaymentType.RENT,
                "due_date": "2024-01-01",
                "paid_date": "",
                "status": Payment.Status.PAID,
                "method": Payment.Method.CASH,
                "notes": "",
                "generate_receipt": "on",
            },
            follow=True,
        )

        self.assertContains(response, "Payment recorded.")
        payment = Payment.objects.get()
        self.assertEqual(payment.tenant, self.tenant)
        self.assertEqual(payment.paid_date, timezone.localdate())
        self.assertEqual(received, [(payment.pk, True)])

    def test_pending_payment_does_not_request_receipt(self):
        received = []

        def handler(sender, **kwargs):
            received.append(kwargs)

        receipt_requested.connect(handler)
        self.addCleanup(receipt_requested.disconnect, handler)
        self.login("manager")

        self.client.post(
            reverse("rentdesk:payment_create"),
            {
                "contract": self.contract.pk,
                "amount": "1000.00",
                "payment_type": Payment.PaymentType.RENT,
                "due_date": "2024-01-01",
                "status": Payment.Status.PENDING,
                "method": Payment.Method.CASH,
                "generate_receipt": "on",
            },
        )

        self.assertEqual(Payment.objects.count(), 1)
        self.assertEqual(received, [])

    def test_paid_payment_cannot_go_back_to_pending(self):
        payment = self.create_payment(status=Payment.Status.PAID, paid_date=date(2024, 1, 2))
        self.login("manager")

        response = self.client.post(
            reverse("rentdesk:payment_edit", args=[payment.pk]),
            {
                "contract": self.contract.pk,
                "amount": "1000.00",
                "payment_type": Payment.PaymentType.RENT,
                "due_date": "2024-01-01",
                "paid_date": "2024-01-02",
                "status": Payment.Status.PENDING,
                "method": Payment.Method.CASH,
            },
        )

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "Payment cannot move from PAID to PENDING.")
        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.Status.PAID)

    def test_final_payment_is_not_editable(self):
        payment = self.create_payment(status=Payment.Status.CANCELLED)
        self.login("manager")

        response = self.client.get(reverse("rentdesk:payment_edit", args=[payment.pk]), follow=True)

        self.assertContains(response, "already in a final state")

    def test_overdue_filter_uses_derived_status(self):
        overdue = self.create_payment(due_date=timezone.localdate() - timedelta(days=10))
        self.create_payment(due_date=timezone.localdate() + timedelta(days=10))
        self.create_payment(status=Payment.Status.PAID, paid_date=date(2024, 1, 2))
        self.login("viewer")

        response = self.client.get(reverse("rentdesk:payments_list"), {"status": "OVERDUE"})

        rows = response.context["rows"]
        self.assertEqual([(p.pk, status) for p, status in rows], [(overdue.pk, "OVERDUE")])
        self.assertEqual(response.context["kpis"].overdue_amount, Decimal("1000.00"))

    def test_refund_regenerates_pending_payment(self):
        payment = self.create_payment(status=Payment.Status.PAID, paid_date=date(2024, 1, 2))
        self.login("admin")

        response = self.client.post(
            reverse("rentdesk:payment_void", args=[payment.pk]), {"status": Payment.Status.REFUNDED}, follow=True
        )

        self.assertContains(response, "Payment status successfully updated to REFUNDED.")
        self.assertContains(response, "A new pending payment was created.")
        self.assertEqual(
            sorted(Payment.objects.values_list("status", flat=True)),
            [Payment.Status.PENDING, Payment.Status.REFUNDED],
        )


class AccountingAndReportViewTests(ViewTestCase):
    def test_accounting_entry_records_author(self):
        self.login("manager")
        response = self.client.post(
            reverse("rentdesk:accounting_create"),
            {
                "entry_type": "EXPENSE",
                "concept": "Plumber",
                "amount": "150.00",
                "date": "2024-03-04",
                "notes": "",
                "unit": "",
                "property": self.property.pk,
                "contract": "",
            },
            follow=True,
        )
        self.assertContains(response, "Accounting entry created.")
        self.assertContains(response, "Balance: -150.00")
        entry = self.org.accounting_entries.get()
        self.assertEqual(entry.created_by, self.manager)

    def test_accounting_amount_must_be_positive(self):
        self.login("manager")
        response = self.client.post(
            reverse("rentdesk:accounting_create"),
            {"entry_type": "INCOME", "concept": "Nothing", "amount": "0", "date": "2024-03-04"},
        )
        self.assertContains(response, "Amount must be greater than zero.")

    def test_reports_page(self):
        self.login("viewer")
        response = self.client.get(reverse("rentdesk:reports"))
        self.assertContains(response, "Revenue and expenses")
        self.assertEqual(len(response.context["occupancy_trend"]), 12)


class ConsoleViewTests(ViewTestCase):
    def setUp(self):
        super().setUp()
        make_user("root", None, UserProfile.Role.SUPER_ADMIN)
        self.plan = Plan.objects.create(code="pro", name="Pro", price=Decimal("99.00"))
        self.subscription = Subscription.objects.create(
            organization=self.org,
            plan=self.plan,
            status=Subscription.Status.ACTIVE,
            current_period_start=date(2024, 3, 1),
            current_period_end=date(2024, 3, 31),
        )

    def test_org_admin_cannot_open_console(self):
        self.login("admin")
        response = self.client.get(reverse("rentdesk:console"))
        self.assertEqual(response.status_code, 403)

    def test_console_shows_revenue_kpis(self):
        self.login("root")
        response = self.client.get(reverse("rentdesk:console"))
        self.assertContains(response, "MRR: 99.00")
        self.assertContains(response, "Acme Rentals")
        self.assertContains(response, "Other Co")

    def test_console_search(self):
        self.login("root")
        response = self.client.get(reverse("rentdesk:console"), {"q": "other"})
        self.assertNotContains(response, "Acme Rentals")
        self.assertContains(response, "Other Co")

    def test_missing_subscription_is_not_found(self):
        self.login("root")
        response = self.client.get(reverse("rentdesk:organization_subscription", args=[self.other_org.pk]))
        self.assertEqual(response.status_code, 404)

    def test_cancel_subscription(self):
        self.login("root")
        response = self.client.post(
            reverse("rentdesk:organization_subscription", args=[self.org.pk]),
            {"plan": self.plan.pk, "status": Subscription.Status.CANCELED},
            follow=True,
        )
        self.assertContains(response, "Subscription updated.")
        self.subscription.refresh_from_db()
        self.assertEqual(self.subscription.status, Subscription.Status.CANCELED)
        self.assertIsNotNone(self.subscription.canceled_at)

    def test_toggle_organization(self):
        self.login("root")
        self.client.post(reverse("rentdesk:organization_toggle", args=[self.other_org.pk]))
        self.other_org.refresh_from_db()
        self.assertFalse(self.other_org.is_active)
