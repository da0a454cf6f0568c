from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model

from rentdesk.models import Contract, Organization, Property, Tenant, UserProfile

PASSWORD = "pass12345"


def make_user(username, organization=None, role=UserProfile.Role.USER, **extra):
    user = get_user_model().objects.create_user(username=username, password=PASSWORD, **extra)
    UserProfile.objects.create(user=user, organization=organization, role=role)
    return user


def make_organization(name="Acme Rentals", slug="acme"):
    return Organization.objects.create(name=name, slug=slug)


def make_property(organization, name="Alpha Flat", rent=Decimal("1000.00"), **extra):
    return Property.objects.create(organization=organization, name=name, address="1 Main St", rent=rent, **extra)


def make_tenant(organization, first_name="Tina", last_name="Tenant", **extra):
    extra.setdefault("application_date", date(2023, 12, 1))
    return Tenant.objects.create(
        organization=organization,
        first_name=first_name,
        last_name=last_name,
        email=f"{first_name.lower()}@example.com",
        **extra,
    )


def make_contract(property, tenant, start_date=date(2024, 1, 1), end_date=date(2024, 12, 31), **extra):
    extra.setdefault("monthly_rent", Decimal("1000.00"))
    return Contract.objects.create(
        organization=property.organization,
        property=property,
        tenant=tenant,
        start_date=start_date,
        end_date=end_date,
        **extra,
    )
