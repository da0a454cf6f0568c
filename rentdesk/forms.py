from django import forms
from django.utils import timezone

from .metrics import OVERDUE, KpiFilters, overlapping_contracts
from .models import (
    AccountingEntry,
    Contract,
    MaintenanceRequest,
    Payment,
    Plan,
    Property,
    Subscription,
    Tenant,
    Unit,
)


class LineListField(forms.CharField):
    """A list of strings edited as one entry per line; order is kept."""

    widget = forms.Textarea(attrs={"rows": 4})

    def prepare_value(self, value):
        if isinstance(value, (list, tuple)):
            return "\n".join(value)
        return value

    def to_python(self, value):
        if isinstance(value, (list, tuple)):
            return [str(v).strip() for v in value if str(v).strip()]
        text = super().to_python(value)
        return [line.strip() for line in text.splitlines() if line.strip()]


class OrganizationFormMixin:
    """Binds the form instance to an organization and scopes related choices."""

    scoped_fields = {}

    def __init__(self, *args, organization, **kwargs):
        super().__init__(*args, **kwargs)
        self.organization = organization
        self.instance.organization = organization
        for name, model in self.scoped_fields.items():
            if name in self.fields:
                self.fields[name].queryset = model.objects.filter(organization=organization)


class UnitForm(OrganizationFormMixin, forms.ModelForm):
    amenities = LineListField(required=False)

    class Meta:
        model = Unit
        fields = ["name", "unit_type", "address", "description", "total_floors", "floors", "size", "amenities", "manager"]


class PropertyForm(OrganizationFormMixin, forms.ModelForm):
    scoped_fields = {"unit": Unit}
    amenities = LineListField(required=False)

    class Meta:
        model = Property
        fields = [
            "unit",
            "name",
            "property_type",
            "address",
            "unit_number",
            "floor",
            "size",
            "rooms",
            "bathrooms",
            "amenities",
            "rent",
            "status",
        ]


class TenantForm(OrganizationFormMixin, forms.ModelForm):
    class Meta:
        model = Tenant
        fields = [
            "first_name",
            "last_name",
            "email",
            "phone",
            "emergency_contact_name",
            "emergency_contact_phone",
            "emergency_contact_relationship",
            "employer",
            "position",
            "income",
            "application_date",
            "status",
            "credit_score",
        ]


class ContractForm(OrganizationFormMixin, forms.ModelForm):
    scoped_fields = {"property": Property, "tenant": Tenant}
    terms = LineListField(required=False, help_text="One term per line.")

    class Meta:
        model = Contract
        fields = [
            "property",
            "tenant",
            "start_date",
            "end_date",
            "monthly_rent",
            "security_deposit",
            "terms",
            "signed_date",
        ]

    def clean(self):
        cleaned = super().clean()
        prop = cleaned.get("property")
        start, end = cleaned.get("start_date"), cleaned.get("end_date")
        if prop and start and end and end > start:
            candidate = Contract(pk=self.instance.pk, property=prop, start_date=start, end_date=end)
            clashes = overlapping_contracts(candidate, prop.contracts.all())
            if clashes:
                raise forms.ValidationError(
                    "These dates overlap active contract #%(pk)s on this property.",
                    params={"pk": clashes[0].pk},
                )
        return cleaned


class PaymentForm(OrganizationFormMixin, forms.ModelForm):
    scoped_fields = {"contract": Contract}
    status = forms.ChoiceField(
        choices=[(s.value, s.label) for s in (Payment.Status.PENDING, Payment.Status.PARTIAL, Payment.Status.PAID)],
        initial=Payment.Status.PENDING,
    )
    generate_receipt = forms.BooleanField(required=False, initial=True, label="Generate receipt when paid")

    class Meta:
        model = Payment
        fields = ["contract", "amount", "payment_type", "due_date", "paid_date", "status", "method", "notes"]

    def clean(self):
        cleaned = super().clean()
        contract = cleaned.get("contract")
        if contract is not None:
            self.instance.tenant = contract.tenant
        if cleaned.get("status") == Payment.Status.PAID and not cleaned.get("paid_date"):
            cleaned["paid_date"] = timezone.localdate()
            self.instance.paid_date = cleaned["paid_date"]
        return cleaned

    @property
    def wants_receipt(self):
        return (
            self.cleaned_data.get("generate_receipt")
            and self.cleaned_data.get("status") == Payment.Status.PAID
            and self.cleaned_data.get("paid_date") is not None
        )


class MaintenanceRequestForm(OrganizationFormMixin, forms.ModelForm):
    scoped_fields = {"property": Property, "tenant": Tenant}

    class Meta:
        model = MaintenanceRequest
        fields = [
            "property",
            "tenant",
            "title",
            "description",
            "priority",
            "category",
            "status",
            "reported_date",
            "completed_date",
            "assigned_to",
            "estimated_cost",
            "actual_cost",
            "notes",
        ]

    def clean(self):
        cleaned = super().clean()
        if cleaned.get("status") == MaintenanceRequest.Status.COMPLETED and not cleaned.get("completed_date"):
            cleaned["completed_date"] = timezone.localdate()
            self.instance.completed_date = cleaned["completed_date"]
        return cleaned


class AccountingEntryForm(OrganizationFormMixin, forms.ModelForm):
    scoped_fields = {"unit": Unit, "property": Property, "contract": Contract}

    class Meta:
        model = AccountingEntry
        fields = ["entry_type", "concept", "amount", "date", "notes", "unit", "property", "contract"]


class QuickRentForm(forms.Form):
    contract = forms.ModelChoiceField(queryset=Contract.objects.none(), empty_label="Choose a contract...")

    def __init__(self, *args, property, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["contract"].queryset = (
            Contract.objects.filter(property=property, status=Contract.Status.DRAFT)
            .select_related("tenant")
        )


class TerminateContractForm(forms.Form):
    reason = forms.CharField(widget=forms.Textarea(attrs={"rows": 3}), required=False)


class VoidPaymentForm(forms.Form):
    status = forms.ChoiceField(
        choices=[(s.value, s.label) for s in (Payment.Status.CANCELLED, Payment.Status.REFUNDED)],
    )


class KpiFilterForm(forms.Form):
    month = forms.TypedChoiceField(
        choices=[("", "All months")] + [(m, m) for m in range(1, 13)],
        coerce=int,
        empty_value=None,
        required=False,
    )
    year = forms.IntegerField(required=False, min_value=2000, max_value=2100)
    unit = forms.ModelChoiceField(queryset=Unit.objects.none(), required=False, empty_label="All units")
    property_type = forms.ChoiceField(
        choices=[("", "All types")] + list(Property.PropertyType.choices),
        required=False,
    )

    def __init__(self, *args, organization, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["unit"].queryset = Unit.objects.filter(organization=organization)

    def to_filters(self) -> KpiFilters:
        if not self.is_valid():
            return KpiFilters()
        data = self.cleaned_data
        unit = data.get("unit")
        return KpiFilters(
            month=data.get("month"),
            year=data.get("year"),
            unit_id=unit.pk if unit else None,
            property_type=data.get("property_type") or None,
        )


class PaymentFilterForm(KpiFilterForm):
    status = forms.ChoiceField(
        choices=[("", "All")] + list(Payment.Status.choices) + [(OVERDUE, "Overdue")],
        required=False,
    )


class AccountingFilterForm(forms.Form):
    entry_type = forms.ChoiceField(choices=[("", "All")] + list(AccountingEntry.EntryType.choices), required=False)
    date_from = forms.DateField(required=False)
    date_to = forms.DateField(required=False)
    concept = forms.CharField(required=False)
    group_by = forms.ChoiceField(
        choices=[("", "No grouping"), ("month", "Month"), ("day", "Day")],
        required=False,
    )


class SubscriptionForm(forms.ModelForm):
    class Meta:
        model = Subscription
        fields = ["plan", "status"]


class PlanForm(forms.ModelForm):
    features = LineListField(required=False)

    class Meta:
        model = Plan
        fields = [
            "code",
            "name",
            "description",
            "price",
            "billing_cycle",
            "features",
            "max_properties",
            "max_tenants",
            "max_users",
            "storage_gb",
            "is_active",
        ]
