"""Subscription plans, feature access and invoice payment links."""

from .plans import (
    AccessDecision,
    Addon,
    AddonRequired,
    AddonSelection,
    Feature,
    Granted,
    InactiveSubscription,
    PlanTier,
    PLANS,
    UpgradeOption,
    UpgradeRequired,
    check_feature_access,
    parse_addon,
    parse_feature,
    parse_plan,
    price_id_for,
    select_addon,
    upgrade_options,
)
from .payment_links import PaymentLinkResult, PaymentLinkService, to_cents

__all__ = [
    # Plans
    "PlanTier",
    "Addon",
    "Feature",
    "PLANS",
    "parse_plan",
    "parse_addon",
    "parse_feature",
    "price_id_for",
    # Access
    "AccessDecision",
    "Granted",
    "UpgradeRequired",
    "AddonRequired",
    "InactiveSubscription",
    "check_feature_access",
    "UpgradeOption",
    "upgrade_options",
    "AddonSelection",
    "select_addon",
    # Payment links
    "PaymentLinkService",
    "PaymentLinkResult",
    "to_cents",
]
