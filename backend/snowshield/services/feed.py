"""
Display rules for incident and warning lists.

Every rule that depends on what a record *is* (SOS alert, ordinary
incident, warning) goes through kind_of and KIND_RULES, so ordering
priority and role visibility are decided in one place.

All functions work on already-fetched records and never touch the store.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

from snowshield.schemas import ADMIN, INCIDENT_SOS, RESCUE_TEAM, USER_TYPES
from snowshield.timeutils import as_utc, utcnow


class FeedKind(str, Enum):
    REGULAR_INCIDENT = "regularIncident"
    SOS_ALERT = "sosAlert"
    WARNING = "warning"


@dataclass(frozen=True)
class KindRule:
    priority: int                   # lower sorts first
    listed_for: FrozenSet[str]      # roles that see it in general listings
    dedicated_for: FrozenSet[str]   # roles that may open the dedicated list


ALL_ROLES = frozenset(USER_TYPES)

KIND_RULES: Dict[FeedKind, KindRule] = {
    FeedKind.SOS_ALERT: KindRule(
        priority=0,
        listed_for=frozenset({ADMIN}),
        dedicated_for=frozenset({ADMIN, RESCUE_TEAM}),
    ),
    FeedKind.REGULAR_INCIDENT: KindRule(
        priority=1,
        listed_for=ALL_ROLES,
        dedicated_for=ALL_ROLES,
    ),
    FeedKind.WARNING: KindRule(
        priority=1,
        listed_for=ALL_ROLES,
        dedicated_for=ALL_ROLES,
    ),
}


def kind_of(record) -> FeedKind:
    """Classify a fetched record. Warnings are recognised by their severity field."""
    if hasattr(record, "severity"):
        return FeedKind.WARNING
    if getattr(record, "type", None) == INCIDENT_SOS:
        return FeedKind.SOS_ALERT
    return FeedKind.REGULAR_INCIDENT


def listed_for(record, user_type: Optional[str]) -> bool:
    return user_type in KIND_RULES[kind_of(record)].listed_for


def can_open_list(kind: FeedKind, user_type: Optional[str]) -> bool:
    return user_type in KIND_RULES[kind].dedicated_for


def sos_visible_to(user_type: Optional[str]) -> bool:
    """Whether SOS alerts appear in this role's general listings."""
    return user_type in KIND_RULES[FeedKind.SOS_ALERT].listed_for


# -------------------- Ordering --------------------

def sort_incidents(items: Iterable, now: Optional[datetime] = None) -> List:
    """
    SOS alerts first, then newest first within each group.

    A record without a timestamp (written but not yet stamped) sorts
    as if created at `now`.
    """
    now = as_utc(now) or utcnow()

    def sort_key(record):
        created = as_utc(getattr(record, "timestamp", None)) or now
        return (KIND_RULES[kind_of(record)].priority, -created.timestamp())

    return sorted(items, key=sort_key)


def merge_incidents(*lists: Iterable) -> List:
    """Concatenate lists, keeping the first record seen for each id."""
    seen = set()
    merged = []
    for items in lists:
        for record in items:
            if record.id in seen:
                continue
            seen.add(record.id)
            merged.append(record)
    return merged


# -------------------- Filtering --------------------

def visible_incidents(items: Iterable, user_type: Optional[str]) -> List:
    """Drop records this role must not see in a general listing."""
    return [record for record in items if listed_for(record, user_type)]


def only_sos(items: Iterable) -> List:
    return [record for record in items if kind_of(record) == FeedKind.SOS_ALERT]


def local_incidents(items: Iterable, pincode: Optional[str]) -> List:
    """Near-You view: exact pincode match, or everything when no pincode is known."""
    items = list(items)
    if not pincode:
        return items
    return [record for record in items if record.pincode == pincode]


def search_incidents(items: Iterable, term: Optional[str]) -> List:
    """Substring match on title and description (any case) or pincode."""
    items = list(items)
    if not term:
        return items
    needle = term.lower()
    return [
        record for record in items
        if needle in (record.title or "").lower()
        or needle in (record.description or "").lower()
        or term in (record.pincode or "")
    ]


def is_expired(warning, now: Optional[datetime] = None) -> bool:
    expiry = as_utc(getattr(warning, "expiry_time", None))
    if expiry is None:
        return False
    return expiry <= (as_utc(now) or utcnow())


def is_currently_active(warning, now: Optional[datetime] = None) -> bool:
    return bool(warning.is_active) and not is_expired(warning, now)


def active_warnings(warnings: Iterable, now: Optional[datetime] = None) -> List:
    """
    Warnings still in force: flag set and expiry unset or in the future.
    The stored flag is not changed by expiry; only this view hides them.
    """
    now = as_utc(now) or utcnow()
    return [w for w in warnings if is_currently_active(w, now)]


# -------------------- Views --------------------

ALERT_MODES = ("all", "local", "sos")


@dataclass
class DashboardView:
    incidents: List
    near_you: List
    warnings: List


def build_dashboard(
    all_items: Iterable,
    local_items: Iterable,
    warnings: Iterable,
    user_type: Optional[str],
    pincode: Optional[str],
    limit: int,
    now: Optional[datetime] = None,
) -> DashboardView:
    """
    Home page: the combined feed (all plus local, de-duplicated, role
    filtered, SOS first, truncated to `limit`), the Near-You subset of
    that feed and the warnings in force for the viewer's pincode.
    """
    combined = merge_incidents(all_items, local_items)
    feed = sort_incidents(visible_incidents(combined, user_type), now)[:limit]
    near_you = local_incidents(feed, pincode) if pincode else []
    return DashboardView(
        incidents=feed,
        near_you=near_you,
        warnings=active_warnings(warnings, now),
    )


def filter_alerts(
    items: Iterable,
    mode: str,
    pincode: Optional[str],
    user_type: Optional[str],
    now: Optional[datetime] = None,
) -> List:
    """
    Alerts page filters.

    all   - every visible incident
    local - visible incidents for `pincode` (falls back to all without one)
    sos   - SOS alerts only; empty for roles that cannot see them
    """
    if mode not in ALERT_MODES:
        mode = "all"
    visible = sort_incidents(visible_incidents(items, user_type), now)
    if mode == "local":
        return local_incidents(visible, pincode)
    if mode == "sos":
        return only_sos(visible)
    return visible
