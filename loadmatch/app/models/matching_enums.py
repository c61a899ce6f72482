"""
Enumerations for the load matching domain.
"""

import enum


class PayMode(str, enum.Enum):
    """How a driver is paid for a trip."""
    PER_MILE = "per_mile"
    PER_CUFT = "per_cuft"
    PER_MILE_AND_CUFT = "per_mile_and_cuft"
    PERCENT_OF_REVENUE = "percent_of_revenue"
    FLAT_DAILY_RATE = "flat_daily_rate"


class CapacityVisibility(str, enum.Enum):
    """Who may see a trip's spare capacity."""
    PRIVATE = "private"  # Owner only
    PARTNERS_ONLY = "partners_only"  # Owner plus active partner companies
    PUBLIC = "public"  # Marketplace visible


class SuggestionType(str, enum.Enum):
    """Primary reason a load was suggested."""
    NEAR_DELIVERY = "near_delivery"
    BACKHAUL = "backhaul"
    CAPACITY_FIT = "capacity_fit"
    HIGH_PROFIT = "high_profit"
    PARTNER_LOAD = "partner_load"


class SuggestionStatus(str, enum.Enum):
    """Load suggestion lifecycle."""
    PENDING = "pending"  # New, not yet viewed
    VIEWED = "viewed"
    INTERESTED = "interested"
    CLAIMED = "claimed"
    DISMISSED = "dismissed"
    EXPIRED = "expired"  # Load no longer available


class PostingStatus(str, enum.Enum):
    """Marketplace posting state of a load."""
    DRAFT = "draft"
    POSTED = "posted"
    ASSIGNED = "assigned"
    CANCELLED = "cancelled"


class PartnershipStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class NotificationPreference(str, enum.Enum):
    DASHBOARD_ONLY = "dashboard_only"
    PUSH_AND_DASHBOARD = "push_and_dashboard"
    EMAIL_DIGEST = "email_digest"
    DISABLED = "disabled"
