import logging

from django.contrib import messages
from django.db import connection
from django.db.models import Q
from django.http import Http404, JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.utils import timezone
from django.views.decorators.http import require_POST

from . import conf, metrics
from .access import admin_required, editor_required, organization_required, super_admin_required
from .exceptions import RentdeskError
from .forms import (
    AccountingEntryForm,
    AccountingFilterForm,
    ContractForm,
    KpiFilterForm,
    MaintenanceRequestForm,
    PaymentFilterForm,
    PaymentForm,
    PlanForm,
    PropertyForm,
    QuickRentForm,
    SubscriptionForm,
    TenantForm,
    TerminateContractForm,
    UnitForm,
    VoidPaymentForm,
)
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
)
from .schedule import activate_contract, terminate_contract
from .signals import receipt_requested

logger = logging.getLogger(__name__)

FINAL_PAYMENT_STATUSES = (Payment.Status.CANCELLED, Payment.Status.REFUNDED)


def healthz(request):
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except Exception:
        logger.exception("Health check failed")
        return JsonResponse({"status": "error"}, status=503)
    return JsonResponse({"status": "ok"})


# --- shared form handling ---


def _form_page(request, form, title, persist, success_message, redirect_to):
    """Validate ``form`` and hand the instance to ``persist``; keep the form open on failure."""
    if request.method == "POST" and form.is_valid():
        obj = form.save(commit=False)
        try:
            saved = persist(obj)
        except RentdeskError as exc:
            logger.warning("%s failed: %s", title, exc.as_dict())
            messages.error(request, exc.toast_text())
        else:
            messages.success(request, success_message)
            if callable(redirect_to):
                return redirect_to(saved)
            return redirect(redirect_to)
    return render(request, "rentdesk/form.html", {"form": form, "title": title})


def _confirm_delete(request, obj, remove, title, success_message, redirect_to):
    if request.method == "POST":
        try:
            remove(obj)
        except RentdeskError as exc:
            logger.warning("%s failed: %s", title, exc.as_dict())
            messages.error(request, exc.toast_text())
        else:
            messages.success(request, success_message)
        return redirect(redirect_to)
    return render(request, "rentdesk/confirm_delete.html", {"object": obj, "title": title})


def _kpi_filter_data(request):
    if request.GET:
        return request.GET
    today = timezone.localdate()
    return {"month": today.month, "year": today.year}


# --- dashboard ---


@organization_required
def dashboard(request):
    store = request.store.load_all()
    today = timezone.localdate()

    property_summaries = []
    for p in store.properties:
        overdue = metrics.overdue_payments_for_property(p, store.contracts, store.payments, today)
        property_summaries.append({
            "property": p,
            "active_contract": metrics.active_contract_for_property(p, store.contracts),
            "overdue_count": len(overdue),
            "overdue_total": sum((o.amount for o in overdue), metrics.ZERO),
            "open_maintenance": sum(
                1 for m in store.maintenance_requests
                if m.property_id == p.pk and m.status == MaintenanceRequest.Status.OPEN
            ),
        })

    context = {
        "stats": metrics.dashboard_stats(
            store.properties,
            store.tenants,
            store.payments,
            store.maintenance_requests,
            store.contracts,
            today,
        ),
        "property_summaries": property_summaries,
        "expiring_contracts": metrics.expiring_contracts(store.contracts, today),
        "recent_activity": ActivityLog.objects.filter(organization=request.organization)
        .select_related("user")[: conf.get("RECENT_ACTIVITY_LIMIT")],
        "trend": metrics.monthly_trend(store.payments, today, conf.get("OVERVIEW_TREND_MONTHS")),
    }
    return render(request, "rentdesk/dashboard.html", context)


@organization_required
def activity_list(request):
    entries = ActivityLog.objects.filter(organization=request.organization).select_related("user")[:100]
    return render(request, "rentdesk/activity_list.html", {"entries": entries})


# --- units ---


@organization_required
def units_list(request):
    store = request.store
    units = store.load_units()
    properties = store.load_properties()
    rows = []
    for u in units:
        in_unit = [p for p in properties if p.unit_id == u.pk]
        rows.append({
            "unit": u,
            "property_count": len(in_unit),
            "occupancy_rate": metrics.occupancy_rate(in_unit),
        })
    return render(request, "rentdesk/units_list.html", {"rows": rows})


@organization_required
def unit_detail(request, pk):
    unit = get_object_or_404(Unit, pk=pk, organization=request.organization)
    properties = list(unit.properties.all())
    context = {
        "unit": unit,
        "properties": properties,
        "occupancy_rate": metrics.occupancy_rate(properties),
    }
    return render(request, "rentdesk/unit_detail.html", context)


@editor_required
def unit_create(request):
    form = UnitForm(request.POST or None, organization=request.organization)
    return _form_page(
        request, form, "Add Unit", request.store.create_unit, "Unit created successfully.", "rentdesk:units_list"
    )


@editor_required
def unit_edit(request, pk):
    unit = get_object_or_404(Unit, pk=pk, organization=request.organization)
    form = UnitForm(request.POST or None, instance=unit, organization=request.organization)
    return _form_page(
        request, form, "Edit Unit", request.store.update_unit, "Unit updated successfully.", "rentdesk:units_list"
    )


@admin_required
def unit_delete(request, pk):
    unit = get_object_or_404(Unit, pk=pk, organization=request.organization)
    return _confirm_delete(
        request, unit, request.store.delete_unit, "Delete Unit", "Unit and its properties deleted.", "rentdesk:units_list"
    )


# --- properties ---


@organization_required
def properties_list(request):
    store = request.store
    properties = store.load_properties()
    status = request.GET.get("status")
    if status in Property.Status.values:
        properties = [p for p in properties if p.status == status]
    return render(
        request,
        "rentdesk/properties_list.html",
        {"properties": properties, "status": status, "statuses": Property.Status.choices},
    )


@organization_required
def property_detail(request, pk):
    prop = get_object_or_404(Property.objects.select_related("unit"), pk=pk, organization=request.organization)
    today = timezone.localdate()
    limit = conf.get("DETAIL_LIST_LIMIT")

    contracts = list(prop.contracts.select_related("tenant"))
    payments = list(Payment.objects.filter(contract__property=prop).select_related("tenant").order_by("-due_date"))
    maintenance = list(prop.maintenance_requests.all())
    overdue = metrics.overdue_payments_for_property(prop, contracts, payments, today)

    context = {
        "property": prop,
        "active_contract": metrics.active_contract_for_property(prop, contracts),
        "draft_contracts": [c for c in contracts if c.status == Contract.Status.DRAFT],
        "contracts": contracts,
        "payments": [(p, metrics.derive_payment_status(p, today)) for p in payments[:limit]],
        "maintenance": maintenance[:limit],
        "overdue_payments": overdue,
        "overdue_total": sum((p.amount for p in overdue), metrics.ZERO),
        "kpis": metrics.payment_kpis(payments, today),
    }
    return render(request, "rentdesk/property_detail.html", context)


@editor_required
def property_create(request):
    form = PropertyForm(request.POST or None, organization=request.organization)
    return _form_page(
        request,
        form,
        "Add Property",
        request.store.create_property,
        "Property created successfully.",
        "rentdesk:properties_list",
    )


@editor_required
def property_edit(request, pk):
    obj = get_object_or_404(Property, pk=pk, organization=request.organization)
    form = PropertyForm(request.POST or None, instance=obj, organization=request.organization)
    return _form_page(
        request,
        form,
        "Edit Property",
        request.store.update_property,
        "Property updated successfully.",
        "rentdesk:properties_list",
    )


@admin_required
def property_delete(request, pk):
    obj = get_object_or_404(Property, pk=pk, organization=request.organization)
    return _confirm_delete(
        request,
        obj,
        request.store.delete_property,
        "Delete Property",
        "Property deleted.",
        "rentdesk:properties_list",
    )


@editor_required
def property_quick_rent(request, pk):
    prop = get_object_or_404(Property, pk=pk, organization=request.organization)
    form = QuickRentForm(request.POST or None, property=prop)

    if request.method == "POST" and form.is_valid():
        contract = form.cleaned_data["contract"]
        try:
            created = activate_contract(request.store, contract, prop)
        except RentdeskError as exc:
            logger.warning("Quick rent of property %s failed: %s", prop.pk, exc.as_dict())
            messages.error(request, exc.toast_text())
        else:
            messages.success(
                request,
                f"Property rented successfully. {len(created)} payment(s) added to the ledger.",
            )
            return redirect("rentdesk:property_detail", pk=prop.pk)

    return render(request, "rentdesk/quick_rent.html", {"form": form, "property": prop})


# --- tenants ---


@organization_required
def tenants_list(request):
    store = request.store
    tenants = store.load_tenants()
    payments = store.load_payments()
    today = timezone.localdate()
    rows = []
    for t in tenants:
        overdue = metrics.overdue_payments_for_tenant(t, payments, today)
        rows.append({"tenant": t, "overdue_count": len(overdue), "overdue_total": sum((p.amount for p in overdue), metrics.ZERO)})
    return render(request, "rentdesk/tenants_list.html", {"rows": rows})


@organization_required
def tenant_detail(request, pk):
    tenant = get_object_or_404(Tenant, pk=pk, organization=request.organization)
    today = timezone.localdate()
    contracts = list(tenant.contracts.select_related("property"))
    payments = list(tenant.payments.order_by("-due_date"))
    overdue = metrics.overdue_payments_for_tenant(tenant, payments, today)
    active_contract = next((c for c in contracts if c.status == Contract.Status.ACTIVE), None)

    context = {
        "tenant": tenant,
        "active_contract": active_contract,
        "contracts": contracts,
        "payments": [(p, metrics.derive_payment_status(p, today)) for p in payments[: conf.get("DETAIL_LIST_LIMIT")]],
        "overdue_payments": overdue,
        "overdue_total": sum((p.amount for p in overdue), metrics.ZERO),
    }
    return render(request, "rentdesk/tenant_detail.html", context)


@editor_required
def tenant_create(request):
    form = TenantForm(request.POST or None, organization=request.organization)
    return _form_page(
        request, form, "Add Tenant", request.store.create_tenant, "Tenant added successfully.", "rentdesk:tenants_list"
    )


@editor_required
def tenant_edit(request, pk):
    tenant = get_object_or_404(Tenant, pk=pk, organization=request.organization)
    form = TenantForm(request.POST or None, instance=tenant, organization=request.organization)
    return _form_page(
        request, form, "Edit Tenant", request.store.update_tenant, "Tenant updated successfully.", "rentdesk:tenants_list"
    )


@admin_required
def tenant_delete(request, pk):
    obj = get_object_or_404(Tenant, pk=pk, organization=request.organization)
    return _confirm_delete(
        request, obj, request.store.delete_tenant, "Delete Tenant", "Tenant deleted.", "rentdesk:tenants_list"
    )


# --- contracts ---


@organization_required
def contracts_list(request):
    contracts = request.store.load_contracts()
    status = request.GET.get("status")
    if status in Contract.Status.values:
        contracts = [c for c in contracts if c.status == status]
    return render(
        request,
        "rentdesk/contracts_list.html",
        {"contracts": contracts, "status": status, "statuses": Contract.Status.choices},
    )


@organization_required
def contract_detail(request, pk):
    contract = get_object_or_404(
        Contract.objects.select_related("property", "tenant"), pk=pk, organization=request.organization
    )
    today = timezone.localdate()
    payments = list(contract.payments.all())
    context = {
        "contract": contract,
        "payments": [(p, metrics.derive_payment_status(p, today)) for p in payments],
        "kpis": metrics.payment_kpis(payments, today),
    }
    return render(request, "rentdesk/contract_detail.html", context)


@editor_required
def contract_create(request):
    form = ContractForm(request.POST or None, organization=request.organization)
    return _form_page(
        request,
        form,
        "Add Contract",
        request.store.create_contract,
        "Contract created successfully.",
        lambda contract: redirect("rentdesk:contract_detail", pk=contract.pk),
    )


@editor_required
def contract_edit(request, pk):
    contract = get_object_or_404(Contract, pk=pk, organization=request.organization)
    form = ContractForm(request.POST or None, instance=contract, organization=request.organization)
    return _form_page(
        request,
        form,
        "Edit Contract",
        request.store.update_contract,
        "Contract updated successfully.",
        lambda contract: redirect("rentdesk:contract_detail", pk=contract.pk),
    )


@admin_required
def contract_delete(request, pk):
    contract = get_object_or_404(Contract, pk=pk, organization=request.organization)
    return _confirm_delete(
        request,
        contract,
        request.store.delete_contract,
        "Delete Contract",
        "Contract deleted.",
        "rentdesk:contracts_list",
    )


@editor_required
def contract_terminate(request, pk):
    contract = get_object_or_404(
        Contract.objects.select_related("property"), pk=pk, organization=request.organization
    )
    form = TerminateContractForm(request.POST or None)
    if request.method == "POST" and form.is_valid():
        try:
            terminate_contract(request.store, contract, form.cleaned_data["reason"])
        except RentdeskError as exc:
            logger.warning("Terminating contract %s failed: %s", contract.pk, exc.as_dict())
            messages.error(request, exc.toast_text())
        else:
            messages.success(request, "Contract terminated.")
        return redirect("rentdesk:contract_detail", pk=contract.pk)
    return render(request, "rentdesk/form.html", {"form": form, "title": f"Terminate contract #{contract.pk}"})


# --- payments ---


@organization_required
def payments_list(request):
    store = request.store
    payments = store.load_payments()
    properties = store.load_properties()
    contracts = store.load_contracts()
    today = timezone.localdate()

    filter_form = PaymentFilterForm(_kpi_filter_data(request), organization=request.organization)
    status = filter_form.cleaned_data.get("status") if filter_form.is_valid() else ""
    kpi_payments = metrics.filter_payments(payments, properties, contracts, filter_form.to_filters())

    context = {
        "filter_form": filter_form,
        "rows": [(p, metrics.derive_payment_status(p, today)) for p in metrics.filter_by_status(kpi_payments, status, today)],
        "kpis": metrics.payment_kpis(kpi_payments, today),
        "by_type": metrics.amount_by_type(kpi_payments),
        "trend": metrics.monthly_trend(payments, today, conf.get("OVERVIEW_TREND_MONTHS")),
    }
    return render(request, "rentdesk/payments_list.html", context)


def _request_receipt(form, payment, is_new):
    if conf.get("RECEIPTS_ENABLED") and form.wants_receipt:
        receipt_requested.send(sender=Payment, payment=payment, is_new_payment=is_new)


@editor_required
def payment_create(request):
    form = PaymentForm(request.POST or None, organization=request.organization)

    def persist(payment):
        saved = request.store.create_payment(payment)
        _request_receipt(form, saved, is_new=True)
        return saved

    return _form_page(request, form, "Add Payment", persist, "Payment recorded.", "rentdesk:payments_list")


@editor_required
def payment_edit(request, pk):
    payment = get_object_or_404(Payment, pk=pk, organization=request.organization)
    if payment.status in FINAL_PAYMENT_STATUSES:
        messages.error(request, f"Payment is already in a final state ({payment.status}).")
        return redirect("rentdesk:payments_list")

    form = PaymentForm(request.POST or None, instance=payment, organization=request.organization)

    def persist(obj):
        saved = request.store.update_payment(obj)
        _request_receipt(form, saved, is_new=False)
        return saved

    return _form_page(request, form, "Edit Payment", persist, "Payment updated.", "rentdesk:payments_list")


@admin_required
def payment_delete(request, pk):
    obj = get_object_or_404(Payment, pk=pk, organization=request.organization)
    return _confirm_delete(
        request, obj, request.store.delete_payment, "Delete Payment", "Payment deleted.", "rentdesk:payments_list"
    )


@admin_required
def payment_void(request, pk):
    payment = get_object_or_404(
        Payment.objects.select_related("contract", "tenant"), pk=pk, organization=request.organization
    )
    form = VoidPaymentForm(request.POST or None)
    if request.method == "POST" and form.is_valid():
        status = form.cleaned_data["status"]
        try:
            _, regenerated = request.store.void_payment(payment, status)
        except RentdeskError as exc:
            logger.warning("Voiding payment %s failed: %s", payment.pk, exc.as_dict())
            messages.error(request, exc.toast_text())
        else:
            text = f"Payment status successfully updated to {status}."
            if regenerated is not None:
                text += " A new pending payment was created."
            messages.success(request, text)
            return redirect("rentdesk:payments_list")
    return render(request, "rentdesk/form.html", {"form": form, "title": f"Cancel or refund payment #{payment.pk}"})


# --- maintenance ---


@organization_required
def maintenance_list(request):
    requests = request.store.load_maintenance_requests()
    status = request.GET.get("status")
    if status in MaintenanceRequest.Status.values:
        requests = [r for r in requests if r.status == status]
    return render(
        request,
        "rentdesk/maintenance_list.html",
        {"requests": requests, "status": status, "statuses": MaintenanceRequest.Status.choices},
    )


@editor_required
def maintenance_create(request):
    form = MaintenanceRequestForm(
        request.POST or None,
        organization=request.organization,
        initial={"reported_date": timezone.localdate()},
    )
    return _form_page(
        request,
        form,
        "Add Maintenance Request",
        request.store.create_maintenance_request,
        "Maintenance request created.",
        "rentdesk:maintenance_list",
    )


@editor_required
def maintenance_edit(request, pk):
    req = get_object_or_404(MaintenanceRequest, pk=pk, organization=request.organization)
    form = MaintenanceRequestForm(request.POST or None, instance=req, organization=request.organization)
    return _form_page(
        request,
        form,
        "Edit Maintenance Request",
        request.store.update_maintenance_request,
        "Maintenance request updated.",
        "rentdesk:maintenance_list",
    )


@admin_required
def maintenance_delete(request, pk):
    obj = get_object_or_404(MaintenanceRequest, pk=pk, organization=request.organization)
    return _confirm_delete(
        request,
        obj,
        request.store.delete_maintenance_request,
        "Delete Maintenance Request",
        "Maintenance request deleted.",
        "rentdesk:maintenance_list",
    )


# --- accounting ---


@organization_required
def accounting_list(request):
    entries = request.store.load_accounting_entries()
    filter_form = AccountingFilterForm(request.GET or None)
    criteria = filter_form.cleaned_data if filter_form.is_valid() else {}

    selected = metrics.filter_entries(
        entries,
        entry_type=criteria.get("entry_type") or None,
        date_from=criteria.get("date_from"),
        date_to=criteria.get("date_to"),
        concept=criteria.get("concept") or None,
    )
    context = {
        "filter_form": filter_form,
        "entries": selected,
        "page_total": metrics.page_total(selected),
        "report": metrics.accounting_report(selected, criteria.get("group_by") or None),
    }
    return render(request, "rentdesk/accounting_list.html", context)


@editor_required
def accounting_create(request):
    form = AccountingEntryForm(
        request.POST or None,
        organization=request.organization,
        initial={"date": timezone.localdate()},
    )
    return _form_page(
        request,
        form,
        "Add Accounting Entry",
        request.store.create_accounting_entry,
        "Accounting entry created.",
        "rentdesk:accounting_list",
    )


@editor_required
def accounting_edit(request, pk):
    entry = get_object_or_404(AccountingEntry, pk=pk, organization=request.organization)
    form = AccountingEntryForm(request.POST or None, instance=entry, organization=request.organization)
    return _form_page(
        request,
        form,
        "Edit Accounting Entry",
        request.store.update_accounting_entry,
        "Accounting entry updated.",
        "rentdesk:accounting_list",
    )


@editor_required
def accounting_delete(request, pk):
    entry = get_object_or_404(AccountingEntry, pk=pk, organization=request.organization)
    return _confirm_delete(
        request,
        entry,
        request.store.delete_accounting_entry,
        "Delete Accounting Entry",
        "Accounting entry deleted.",
        "rentdesk:accounting_list",
    )


# --- reports ---


@organization_required
def reports(request):
    store = request.store.load_all()
    today = timezone.localdate()
    filter_form = KpiFilterForm(_kpi_filter_data(request), organization=request.organization)
    filters = filter_form.to_filters()
    selected_properties = metrics.filter_properties(store.properties, filters)
    months = conf.get("REPORT_TREND_MONTHS")

    context = {
        "filter_form": filter_form,
        "summary": metrics.report_summary(
            store.payments, store.properties, store.contracts, store.maintenance_requests, filters
        ),
        "revenue_trend": metrics.revenue_expense_trend(store.payments, store.maintenance_requests, today, months),
        "occupancy_trend": metrics.occupancy_trend(store.contracts, store.properties, today, months),
        "property_types": [
            (label, sum(1 for p in selected_properties if p.property_type == value))
            for value, label in Property.PropertyType.choices
        ],
    }
    return render(request, "rentdesk/reports.html", context)


# --- super admin console ---


@super_admin_required
def console(request):
    organizations = list(Organization.objects.prefetch_related("subscriptions__plan"))
    q = request.GET.get("q", "").strip()
    status = request.GET.get("status", "")

    rows = []
    current = []
    for org in organizations:
        subscription = max(org.subscriptions.all(), key=lambda s: (s.created_at, s.pk), default=None)
        if subscription is not None:
            current.append(subscription)
        if q and q.casefold() not in org.name.casefold() and q.casefold() not in org.slug:
            continue
        if status and (subscription is None or subscription.status != status):
            continue
        rows.append({"organization": org, "subscription": subscription})

    context = {
        "rows": rows,
        "q": q,
        "status": status,
        "kpis": metrics.organization_kpis(current),
        "statuses": Subscription.Status.choices,
    }
    return render(request, "rentdesk/console.html", context)


@super_admin_required
def organization_subscription(request, pk):
    org = get_object_or_404(Organization, pk=pk)
    subscription = org.current_subscription
    if subscription is None:
        raise Http404("No subscription found for this organization")

    form = SubscriptionForm(request.POST or None, instance=subscription)
    if request.method == "POST" and form.is_valid():
        updated = form.save(commit=False)
        if updated.status == Subscription.Status.CANCELED and updated.canceled_at is None:
            updated.canceled_at = timezone.now()
        updated.save()
        logger.info("Subscription %s of organization %s updated to %s/%s", updated.pk, org.pk, updated.plan.code, updated.status)
        messages.success(request, "Subscription updated.")
        return redirect("rentdesk:console")
    return render(request, "rentdesk/form.html", {"form": form, "title": f"Subscription: {org.name}"})


@super_admin_required
@require_POST
def organization_toggle(request, pk):
    org = get_object_or_404(Organization, pk=pk)
    org.is_active = not org.is_active
    org.save(update_fields=["is_active"])
    logger.info("Organization %s %s", org.pk, "activated" if org.is_active else "deactivated")
    messages.success(request, f"{org.name} {'activated' if org.is_active else 'deactivated'}.")
    return redirect("rentdesk:console")


@super_admin_required
def plans_list(request):
    return render(request, "rentdesk/plans_list.html", {"plans": Plan.objects.all()})


@super_admin_required
def plan_create(request):
    form = PlanForm(request.POST or None)
    if request.method == "POST" and form.is_valid():
        plan = form.save()
        logger.info("Plan %s created", plan.code)
        messages.success(request, "Plan created.")
        return redirect("rentdesk:plans_list")
    return render(request, "rentdesk/form.html", {"form": form, "title": "Add Plan"})


@super_admin_required
def plan_edit(request, pk):
    plan = get_object_or_404(Plan, pk=pk)
    form = PlanForm(request.POST or None, instance=plan)
    if request.method == "POST" and form.is_valid():
        form.save()
        logger.info("Plan %s updated", plan.code)
        messages.success(request, "Plan updated.")
        return redirect("rentdesk:plans_list")
    return render(request, "rentdesk/form.html", {"form": form, "title": f"Edit Plan {plan.name}"})


@organization_required
def search(request):
    q = request.GET.get("q", "").strip()
    results = {}
    if q:
        org = request.organization
        results = {
            "properties": Property.objects.filter(organization=org).filter(Q(name__icontains=q) | Q(address__icontains=q)),
            "tenants": Tenant.objects.filter(organization=org).filter(
                Q(first_name__icontains=q) | Q(last_name__icontains=q) | Q(email__icontains=q)
            ),
        }
    return render(request, "rentdesk/search.html", {"q": q, "results": results})
