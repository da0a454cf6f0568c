from django.urls import path
from . import views

app_name = "rentdesk"

urlpatterns = [
    path("healthz/", views.healthz, name="healthz"),
    path("", views.dashboard, name="dashboard"),
    path("activity/", views.activity_list, name="activity_list"),
    path("search/", views.search, name="search"),
    path("reports/", views.reports, name="reports"),
    path("units/", views.units_list, name="units_list"),
    path("properties/", views.properties_list, name="properties_list"),
    path("tenants/", views.tenants_list, name="tenants_list"),
    path("contracts/", views.contracts_list, name="contracts_list"),
    path("payments/", views.payments_list, name="payments_list"),
    path("maintenance/", views.maintenance_list, name="maintenance_list"),
    path("accounting/", views.accounting_list, name="accounting_list"),
    path("units/add/", views.unit_create, name="unit_create"),
    path("properties/add/", views.property_create, name="property_create"),
    path("tenants/add/", views.tenant_create, name="tenant_create"),
    path("contracts/add/", views.contract_create, name="contract_create"),
    path("payments/add/", views.payment_create, name="payment_create"),
    path("maintenance/add/", views.maintenance_create, name="maintenance_create"),
    path("accounting/add/", views.accounting_create, name="accounting_create"),
    path("units/<int:pk>/edit/", views.unit_edit, name="unit_edit"),
    path("properties/<int:pk>/edit/", views.property_edit, name="property_edit"),
    path("tenants/<int:pk>/edit/", views.tenant_edit, name="tenant_edit"),
    path("contracts/<int:pk>/edit/", views.contract_edit, name="contract_edit"),
    path("payments/<int:pk>/edit/", views.payment_edit, name="payment_edit"),
    path("maintenance/<int:pk>/edit/", views.maintenance_edit, name="maintenance_edit"),
    path("accounting/<int:pk>/edit/", views.accounting_edit, name="accounting_edit"),
    path("units/<int:pk>/delete/", views.unit_delete, name="unit_delete"),
    path("properties/<int:pk>/delete/", views.property_delete, name="property_delete"),
    path("tenants/<int:pk>/delete/", views.tenant_delete, name="tenant_delete"),
    path("contracts/<int:pk>/delete/", views.contract_delete, name="contract_delete"),
    path("payments/<int:pk>/delete/", views.payment_delete, name="payment_delete"),
    path("maintenance/<int:pk>/delete/", views.maintenance_delete, name="maintenance_delete"),
    path("accounting/<int:pk>/delete/", views.accounting_delete, name="accounting_delete"),
    path("units/<int:pk>/", views.unit_detail, name="unit_detail"),
    path("properties/<int:pk>/", views.property_detail, name="property_detail"),
    path("properties/<int:pk>/rent/", views.property_quick_rent, name="property_quick_rent"),
    path("tenants/<int:pk>/", views.tenant_detail, name="tenant_detail"),
    path("contracts/<int:pk>/", views.contract_detail, name="contract_detail"),
    path("contracts/<int:pk>/terminate/", views.contract_terminate, name="contract_terminate"),
    path("payments/<int:pk>/void/", views.payment_void, name="payment_void"),
    path("console/", views.console, name="console"),
    path("console/organizations/<int:pk>/subscription/", views.organization_subscription, name="organization_subscription"),
    path("console/organizations/<int:pk>/toggle/", views.organization_toggle, name="organization_toggle"),
    path("console/plans/", views.plans_list, name="plans_list"),
    path("console/plans/add/", views.plan_create, name="plan_create"),
    path("console/plans/<int:pk>/edit/", views.plan_edit, name="plan_edit"),
]
