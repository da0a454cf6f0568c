from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q


class Plan(models.Model):
    class BillingCycle(models.TextChoices):
        MONTHLY = "MONTHLY", "Monthly"
        YEARLY = "YEARLY", "Yearly"

    code = models.SlugField(max_length=40, unique=True)
    name = models.CharField(max_length=80)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    billing_cycle = models.CharField(max_length=10, choices=BillingCycle.choices, default=BillingCycle.MONTHLY)
    features = models.JSONField(default=list, blank=True)
    max_properties = models.PositiveIntegerField(default=10)
    max_tenants = models.PositiveIntegerField(default=10)
    max_users = models.PositiveIntegerField(default=1)
    storage_gb = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["price", "code"]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"

    @property
    def monthly_price(self) -> Decimal:
        if self.billing_cycle == self.BillingCycle.YEARLY:
            return (self.price / 12).quantize(Decimal("0.01"))
        return self.price


class Organization(models.Model):
    name = models.CharField(max_length=120)
    slug = models.SlugField(max_length=60, unique=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=40, blank=True)
    address = models.TextField(blank=True)
    currency = models.CharField(max_length=3, default="USD")
    timezone = models.CharField(max_length=60, default="UTC")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    @property
    def current_subscription(self):
        return self.subscriptions.order_by("-created_at", "-pk").select_related("plan").first()


class Subscription(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        TRIALING = "TRIALING", "Trialing"
        PAST_DUE = "PAST_DUE", "Past due"
        CANCELED = "CANCELED", "Canceled"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="subscriptions")
    plan = models.ForeignKey(Plan, on_delete=models.PROTECT, related_name="subscriptions")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.TRIALING)
    current_period_start = models.DateField()
    current_period_end = models.DateField()
    trial_end = models.DateField(null=True, blank=True)
    canceled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.organization.name} - {self.plan.code} ({self.status})"

    @property
    def monthly_value(self) -> Decimal:
        if self.status in (self.Status.ACTIVE, self.Status.PAST_DUE):
            return self.plan.monthly_price
        return Decimal("0")


class UserProfile(models.Model):
    class Role(models.TextChoices):
        SUPER_ADMIN = "SUPER_ADMIN", "Super admin"
        ADMIN = "ADMIN", "Admin"
        MANAGER = "MANAGER", "Manager"
        USER = "USER", "User"

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="profile")
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="members",
        null=True,
        blank=True,
    )
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.USER)

    def __str__(self) -> str:
        return f"{self.user.username} ({self.role})"

    @property
    def can_edit(self) -> bool:
        return self.role in (self.Role.SUPER_ADMIN, self.Role.ADMIN, self.Role.MANAGER)

    @property
    def is_admin(self) -> bool:
        return self.role in (self.Role.SUPER_ADMIN, self.Role.ADMIN)


class Unit(models.Model):
    class UnitType(models.TextChoices):
        BUILDING = "BUILDING", "Building"
        HOUSE = "HOUSE", "House"
        COMMERCIAL = "COMMERCIAL", "Commercial"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="units")
    name = models.CharField(max_length=120)
    unit_type = models.CharField(max_length=20, choices=UnitType.choices, default=UnitType.BUILDING)
    address = models.TextField()
    description = models.TextField(blank=True)
    total_floors = models.PositiveSmallIntegerField(null=True, blank=True)
    floors = models.PositiveSmallIntegerField(null=True, blank=True)
    size = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    amenities = models.JSONField(default=list, blank=True)
    manager = models.CharField(max_length=120, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.get_unit_type_display()})"

    @property
    def holds_single_property(self) -> bool:
        return self.unit_type in (self.UnitType.HOUSE, self.UnitType.COMMERCIAL)


class Property(models.Model):
    class PropertyType(models.TextChoices):
        APARTMENT = "APARTMENT", "Apartment"
        HOUSE = "HOUSE", "House"
        COMMERCIAL = "COMMERCIAL", "Commercial"
        BUILDING = "BUILDING", "Building"

    class Status(models.TextChoices):
        AVAILABLE = "AVAILABLE", "Available"
        RESERVED = "RESERVED", "Reserved"
        RENTED = "RENTED", "Rented"
        MAINTENANCE = "MAINTENANCE", "Maintenance"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="properties")
    unit = models.ForeignKey(
        Unit,
        on_delete=models.CASCADE,
        related_name="properties",
        null=True,
        blank=True,
    )
    name = models.CharField(max_length=120)
    property_type = models.CharField(
        max_length=20,
        choices=PropertyType.choices,
        default=PropertyType.APARTMENT,
    )
    address = models.TextField()
    size = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    rooms = models.PositiveSmallIntegerField(default=0)
    bathrooms = models.PositiveSmallIntegerField(default=0)
    amenities = models.JSONField(default=list, blank=True)
    rent = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(max_length=15, choices=Status.choices, default=Status.AVAILABLE)
    unit_number = models.CharField(max_length=20, blank=True)
    floor = models.SmallIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "properties"
        ordering = ["name"]

    def __str__(self) -> str:
        if self.unit_id:
            return f"{self.unit.name} - {self.name}"
        return self.name

    def clean(self):
        if self.unit_id is None:
            return
        if self.unit.organization_id != self.organization_id:
            raise ValidationError({"unit": "Unit belongs to another organization."})
        if self.unit.holds_single_property:
            siblings = Property.objects.filter(unit_id=self.unit_id).exclude(pk=self.pk)
            if siblings.exists():
                raise ValidationError(
                    {"unit": f"A {self.unit.get_unit_type_display().lower()} unit holds a single property."}
                )


class Tenant(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        ACTIVE = "ACTIVE", "Active"
        FORMER = "FORMER", "Former"
        REJECTED = "REJECTED", "Rejected"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="tenants")
    first_name = models.CharField(max_length=80)
    last_name = models.CharField(max_length=80)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=40, blank=True)

    emergency_contact_name = models.CharField(max_length=120, blank=True)
    emergency_contact_phone = models.CharField(max_length=40, blank=True)
    emergency_contact_relationship = models.CharField(max_length=60, blank=True)

    employer = models.CharField(max_length=120, blank=True)
    position = models.CharField(max_length=120, blank=True)
    income = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    application_date = models.DateField()
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    credit_score = models.PositiveSmallIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["last_name", "first_name"]

    def __str__(self) -> str:
        return self.full_name

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Contract(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        ACTIVE = "ACTIVE", "Active"
        EXPIRED = "EXPIRED", "Expired"
        TERMINATED = "TERMINATED", "Terminated"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="contracts")
    property = models.ForeignKey(Property, on_delete=models.CASCADE, related_name="contracts")
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="contracts")
    start_date = models.DateField()
    end_date = models.DateField()
    monthly_rent = models.DecimalField(max_digits=10, decimal_places=2)
    security_deposit = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    terms = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.DRAFT)
    signed_date = models.DateField(null=True, blank=True)
    termination_date = models.DateField(null=True, blank=True)
    termination_reason = models.TextField(blank=True)
    renewal_notification_sent = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-start_date", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["property"],
                condition=Q(status="ACTIVE"),
                name="one_active_contract_per_property",
            ),
        ]

    def __str__(self) -> str:
        return f"Contract #{self.pk} - {self.tenant.full_name} @ {self.property.name}"

    def clean(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValidationError({"end_date": "End date must be after the start date."})
        if self.monthly_rent is not None and self.monthly_rent < 0:
            raise ValidationError({"monthly_rent": "Monthly rent cannot be negative."})
        if self.security_deposit is not None and self.security_deposit < 0:
            raise ValidationError({"security_deposit": "Security deposit cannot be negative."})
        if not isinstance(self.terms, list) or not all(isinstance(t, str) for t in self.terms):
            raise ValidationError({"terms": "Terms must be a list of strings."})


class Payment(models.Model):
    class PaymentType(models.TextChoices):
        RENT = "RENT", "Rent"
        DEPOSIT = "DEPOSIT", "Deposit"
        LATE_FEE = "LATE_FEE", "Late fee"
        UTILITY = "UTILITY", "Utility"
        MAINTENANCE = "MAINTENANCE", "Maintenance"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PAID = "PAID", "Paid"
        PARTIAL = "PARTIAL", "Partial"
        CANCELLED = "CANCELLED", "Cancelled"
        REFUNDED = "REFUNDED", "Refunded"

    class Method(models.TextChoices):
        CASH = "CASH", "Cash"
        CHECK = "CHECK", "Check"
        BANK_TRANSFER = "BANK_TRANSFER", "Bank transfer"
        ONLINE = "ONLINE", "Online"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="payments")
    contract = models.ForeignKey(Contract, on_delete=models.PROTECT, related_name="payments")
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="payments")
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    payment_type = models.CharField(max_length=12, choices=PaymentType.choices, default=PaymentType.RENT)
    due_date = models.DateField()
    paid_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    method = models.CharField(max_length=15, choices=Method.choices, default=Method.BANK_TRANSFER)
    notes = models.TextField(blank=True)
    period_start = models.DateField(null=True, blank=True)
    period_end = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["due_date", "pk"]

    def __str__(self) -> str:
        return f"{self.tenant.full_name} {self.payment_type} {self.due_date} - {self.status}"

    def clean(self):
        if self.amount is not None and self.amount < 0:
            raise ValidationError({"amount": "Amount cannot be negative."})
        if self.contract_id and self.tenant_id and self.contract.tenant_id != self.tenant_id:
            raise ValidationError({"tenant": "Tenant does not match the contract."})
        if self.status == self.Status.PAID and self.paid_date is None:
            raise ValidationError({"paid_date": "A paid payment needs a paid date."})


class MaintenanceRequest(models.Model):
    class Priority(models.TextChoices):
        LOW = "LOW", "Low"
        MEDIUM = "MEDIUM", "Medium"
        HIGH = "HIGH", "High"
        EMERGENCY = "EMERGENCY", "Emergency"

    class Category(models.TextChoices):
        PLUMBING = "PLUMBING", "Plumbing"
        ELECTRICAL = "ELECTRICAL", "Electrical"
        HVAC = "HVAC", "HVAC"
        APPLIANCE = "APPLIANCE", "Appliance"
        STRUCTURAL = "STRUCTURAL", "Structural"
        OTHER = "OTHER", "Other"

    class Status(models.TextChoices):
        OPEN = "OPEN", "Open"
        IN_PROGRESS = "IN_PROGRESS", "In Progress"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="maintenance_requests")
    property = models.ForeignKey(
        Property,
        on_delete=models.CASCADE,
        related_name="maintenance_requests",
    )
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.SET_NULL,
        related_name="maintenance_requests",
        null=True,
        blank=True,
    )
    title = models.CharField(max_length=120)
    description = models.TextField()
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.MEDIUM)
    category = models.CharField(max_length=12, choices=Category.choices, default=Category.OTHER)
    status = models.CharField(max_length=15, choices=Status.choices, default=Status.OPEN)
    reported_date = models.DateField()
    completed_date = models.DateField(null=True, blank=True)
    assigned_to = models.CharField(max_length=120, blank=True)
    estimated_cost = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    actual_cost = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-reported_date", "-pk"]

    def __str__(self) -> str:
        return f"{self.title} - {self.property.name}"

    def total_cost(self) -> Decimal:
        return self.actual_cost or self.estimated_cost or Decimal("0")


class AccountingEntry(models.Model):
    class EntryType(models.TextChoices):
        INCOME = "INCOME", "Income"
        EXPENSE = "EXPENSE", "Expense"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="accounting_entries")
    entry_type = models.CharField(max_length=10, choices=EntryType.choices)
    concept = models.CharField(max_length=160)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    date = models.DateField()
    notes = models.TextField(blank=True)
    unit = models.ForeignKey(Unit, on_delete=models.SET_NULL, null=True, blank=True, related_name="accounting_entries")
    property = models.ForeignKey(
        Property,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="accounting_entries",
    )
    contract = models.ForeignKey(
        Contract,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="accounting_entries",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="accounting_entries",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "accounting entries"
        ordering = ["-date", "-pk"]

    def __str__(self) -> str:
        return f"{self.date} {self.entry_type} {self.concept} {self.amount}"

    def clean(self):
        if self.amount is not None and self.amount <= 0:
            raise ValidationError({"amount": "Amount must be greater than zero."})


class ActivityLog(models.Model):
    class Action(models.TextChoices):
        CREATE = "CREATE", "Create"
        UPDATE = "UPDATE", "Update"
        DELETE = "DELETE", "Delete"
        ACTIVATE = "ACTIVATE", "Activate"
        EXPIRE = "EXPIRE", "Expire"
        TERMINATE = "TERMINATE", "Terminate"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="activity")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="activity",
    )
    entity_type = models.CharField(max_length=40)
    entity_id = models.PositiveBigIntegerField()
    action = models.CharField(max_length=10, choices=Action.choices)
    description = models.TextField()
    is_system_action = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-pk"]

    def __str__(self) -> str:
        return f"{self.action} {self.entity_type}#{self.entity_id}"
