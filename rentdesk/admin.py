from django.contrib import admin
from .models import (
    AccountingEntry,
    ActivityLog,
    Contract,
    MaintenanceRequest,
    Organization,
    Payment,
    Plan,
    Property,
    Subscription,
    Tenant,
    Unit,
    UserProfile,
)


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "price", "billing_cycle", "is_active")
    list_filter = ("billing_cycle", "is_active")
    search_fields = ("code", "name")


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "email", "currency", "is_active", "created_at")
    list_filter = ("is_active", "currency")
    search_fields = ("name", "slug", "email")
    prepopulated_fields = {"slug": ("name",)}


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ("organization", "plan", "status", "current_period_start", "current_period_end", "created_at")
    list_filter = ("status", "plan")
    search_fields = ("organization__name", "plan__code")


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "organization", "role")
    list_filter = ("role",)
    search_fields = ("user__username", "user__email", "organization__name")


@admin.register(Unit)
class UnitAdmin(admin.ModelAdmin):
    list_display = ("name", "unit_type", "organization", "manager", "created_at")
    list_filter = ("unit_type",)
    search_fields = ("name", "address", "organization__name")


@admin.register(Property)
class PropertyAdmin(admin.ModelAdmin):
    list_display = ("name", "unit", "property_type", "status", "rent", "organization")
    list_filter = ("property_type", "status")
    search_fields = ("name", "address", "unit__name", "organization__name")


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ("full_name", "email", "phone", "status", "application_date")
    list_filter = ("status",)
    search_fields = ("first_name", "last_name", "email", "phone")


@admin.register(Contract)
class ContractAdmin(admin.ModelAdmin):
    list_display = ("pk", "property", "tenant", "status", "start_date", "end_date", "monthly_rent")
    list_filter = ("status", "start_date")
    search_fields = ("property__name", "tenant__first_name", "tenant__last_name")


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("tenant", "payment_type", "amount", "status", "due_date", "paid_date", "period_start", "period_end")
    list_filter = ("status", "payment_type", "method")
    search_fields = ("tenant__first_name", "tenant__last_name", "contract__property__name", "notes")


@admin.register(MaintenanceRequest)
class MaintenanceRequestAdmin(admin.ModelAdmin):
    list_display = ("title", "property", "priority", "category", "status", "reported_date", "completed_date")
    list_filter = ("priority", "category", "status")
    search_fields = ("title", "description", "property__name", "assigned_to")


@admin.register(AccountingEntry)
class AccountingEntryAdmin(admin.ModelAdmin):
    list_display = ("date", "entry_type", "concept", "amount", "organization", "created_by")
    list_filter = ("entry_type", "date")
    search_fields = ("concept", "notes")


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "organization", "user", "action", "entity_type", "entity_id", "is_system_action")
    list_filter = ("action", "entity_type", "is_system_action")
    search_fields = ("description",)
