from django.conf import settings

DEFAULTS = {
    "OVERVIEW_TREND_MONTHS": 6,
    "REPORT_TREND_MONTHS": 12,
    "DETAIL_LIST_LIMIT": 25,
    "RECENT_ACTIVITY_LIMIT": 10,
    "RECEIPTS_ENABLED": True,
}


def get(name):
    """Read a ``RENTDESK`` setting, falling back to the package default."""
    return getattr(settings, "RENTDESK", {}).get(name, DEFAULTS[name])
