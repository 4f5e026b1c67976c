"""
Subscription Plans and Feature Access

Three tiers: Essential, Professional (one addon: AI notes OR telehealth)
and Complete. Access checks are pure functions over enums; every
(plan, addon, feature, status) combination yields exactly one decision.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from practiceflow.config import settings
from practiceflow.core.errors import ConflictError, ValidationError
from practiceflow.models.database import SubscriptionStatus


class PlanTier(str, Enum):
    """Subscription tier."""
    ESSENTIAL = "essential"
    PROFESSIONAL = "professional"
    COMPLETE = "complete"


class Addon(str, Enum):
    """Professional-tier addon."""
    AI_NOTES = "ai_notes"
    TELEHEALTH = "telehealth"


class Feature(str, Enum):
    """Gated product features."""
    CLIENT_MANAGEMENT = "client_management"
    APPOINTMENT_SCHEDULING = "appointment_scheduling"
    BILLING_INVOICING = "billing_invoicing"
    MANUAL_CLINICAL_NOTES = "manual_clinical_notes"
    CLIENT_PORTAL = "client_portal"
    DIGITAL_SIGNATURES = "digital_signatures"
    AI_CLINICAL_NOTES = "ai_clinical_notes"
    INTEGRATED_TELEHEALTH = "integrated_telehealth"
    MULTI_CLINICIAN = "multi_clinician"
    PRIORITY_SUPPORT = "priority_support"


class Availability(str, Enum):
    """How a plan provides a feature."""
    INCLUDED = "included"
    ADDON = "addon"
    UNAVAILABLE = "unavailable"


ACTIVE_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})

_CORE_FEATURES = {
    Feature.CLIENT_MANAGEMENT: Availability.INCLUDED,
    Feature.APPOINTMENT_SCHEDULING: Availability.INCLUDED,
    Feature.BILLING_INVOICING: Availability.INCLUDED,
    Feature.MANUAL_CLINICAL_NOTES: Availability.INCLUDED,
    Feature.CLIENT_PORTAL: Availability.INCLUDED,
    Feature.DIGITAL_SIGNATURES: Availability.INCLUDED,
}


@dataclass(frozen=True)
class Plan:
    """Plan definition."""
    tier: PlanTier
    name: str
    monthly_price: int
    storage_gb: int
    features: dict[Feature, Availability]
    description: str

    def availability(self, feature: Feature) -> Availability:
        return self.features.get(feature, Availability.UNAVAILABLE)


PLANS: dict[PlanTier, Plan] = {
    PlanTier.ESSENTIAL: Plan(
        tier=PlanTier.ESSENTIAL,
        name="Essential EHR",
        monthly_price=40,
        storage_gb=50,
        features={
            **_CORE_FEATURES,
            Feature.AI_CLINICAL_NOTES: Availability.UNAVAILABLE,
            Feature.INTEGRATED_TELEHEALTH: Availability.UNAVAILABLE,
            Feature.MULTI_CLINICIAN: Availability.UNAVAILABLE,
            Feature.PRIORITY_SUPPORT: Availability.UNAVAILABLE,
        },
        description="Essential practice management tools",
    ),
    PlanTier.PROFESSIONAL: Plan(
        tier=PlanTier.PROFESSIONAL,
        name="Professional",
        monthly_price=60,
        storage_gb=100,
        features={
            **_CORE_FEATURES,
            Feature.AI_CLINICAL_NOTES: Availability.ADDON,
            Feature.INTEGRATED_TELEHEALTH: Availability.ADDON,
            Feature.MULTI_CLINICIAN: Availability.UNAVAILABLE,
            Feature.PRIORITY_SUPPORT: Availability.INCLUDED,
        },
        description="Everything in Essential + choose AI Notes OR Telehealth",
    ),
    PlanTier.COMPLETE: Plan(
        tier=PlanTier.COMPLETE,
        name="Complete Suite",
        monthly_price=75,
        storage_gb=250,
        features={
            **_CORE_FEATURES,
            Feature.AI_CLINICAL_NOTES: Availability.INCLUDED,
            Feature.INTEGRATED_TELEHEALTH: Availability.INCLUDED,
            Feature.MULTI_CLINICIAN: Availability.INCLUDED,
            Feature.PRIORITY_SUPPORT: Availability.INCLUDED,
        },
        description="Everything included - AI Notes + Telehealth + Multi-clinician",
    ),
}

# Addon that unlocks an ADDON-availability feature
FEATURE_ADDONS: dict[Feature, Addon] = {
    Feature.AI_CLINICAL_NOTES: Addon.AI_NOTES,
    Feature.INTEGRATED_TELEHEALTH: Addon.TELEHEALTH,
}

ADDON_NAMES: dict[Addon, str] = {
    Addon.AI_NOTES: "AI NoteTaker",
    Addon.TELEHEALTH: "Telehealth",
}

FEATURE_NAMES: dict[Feature, str] = {
    Feature.AI_CLINICAL_NOTES: "AI-powered clinical notes",
    Feature.INTEGRATED_TELEHEALTH: "telehealth capabilities",
    Feature.MULTI_CLINICIAN: "multi-clinician support",
    Feature.PRIORITY_SUPPORT: "priority support",
}


# === Access decisions ===

@dataclass(frozen=True)
class Granted:
    plan: PlanTier
    reason: str
    addon: Optional[Addon] = None
    allowed: bool = field(default=True, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": True,
            "reason": self.reason,
            "plan": self.plan.value,
            "addon": self.addon.value if self.addon else None,
        }


@dataclass(frozen=True)
class UpgradeRequired:
    current_plan: PlanTier
    required_plans: tuple[PlanTier, ...]
    message: str
    allowed: bool = field(default=False, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": False,
            "reason": "upgrade_required",
            "current_plan": self.current_plan.value,
            "required_plans": [p.value for p in self.required_plans],
            "message": self.message,
        }


@dataclass(frozen=True)
class AddonRequired:
    required_addon: Addon
    selected_addon: Optional[Addon]
    message: str
    allowed: bool = field(default=False, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": False,
            "reason": "addon_required",
            "required_addon": self.required_addon.value,
            "selected_addon": self.selected_addon.value if self.selected_addon else None,
            "available_action": "change_addon" if self.selected_addon else "select_addon",
            "message": self.message,
        }


@dataclass(frozen=True)
class InactiveSubscription:
    status: SubscriptionStatus
    allowed: bool = field(default=False, init=False)

    @property
    def message(self) -> str:
        return f"Subscription is {self.status.value}; reactivate it to use this feature"

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": False,
            "reason": "inactive_subscription",
            "status": self.status.value,
            "message": self.message,
        }


AccessDecision = Union[Granted, UpgradeRequired, AddonRequired, InactiveSubscription]


def parse_plan(value: Union[str, PlanTier]) -> PlanTier:
    try:
        return PlanTier(value)
    except ValueError:
        raise ValidationError(
            f"Invalid plan: {value}",
            details={"field": "plan", "allowed": [p.value for p in PlanTier]},
        ) from None


def parse_addon(value: Union[str, Addon, None]) -> Optional[Addon]:
    if value in (None, ""):
        return None
    try:
        return Addon(value)
    except ValueError:
        raise ValidationError(
            f"Invalid addon: {value}",
            details={"field": "addon", "allowed": [a.value for a in Addon]},
        ) from None


def parse_feature(value: Union[str, Feature]) -> Feature:
    try:
        return Feature(value)
    except ValueError:
        raise ValidationError(
            f"Unknown feature: {value}",
            details={"field": "feature", "allowed": [f.value for f in Feature]},
        ) from None


def _upgrade_message(feature: Feature) -> str:
    name = FEATURE_NAMES.get(feature, feature.value.replace("_", " "))
    targets = [PLANS[t].name for t in PlanTier if PLANS[t].availability(feature) != Availability.UNAVAILABLE]
    return f"Upgrade to {' or '.join(targets)} to unlock {name}"


def check_feature_access(
    plan: PlanTier,
    addon: Optional[Addon],
    feature: Feature,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
) -> AccessDecision:
    """
    Decide whether a subscription grants a feature.

    Args:
        plan: Current plan tier
        addon: Selected Professional addon, if any
        feature: Feature being accessed
        status: Subscription status (only active/trialing grant access)

    Returns:
        Granted, UpgradeRequired, AddonRequired or InactiveSubscription
    """
    plan = PlanTier(plan)
    feature = Feature(feature)
    status = SubscriptionStatus(status)
    addon = Addon(addon) if addon else None

    if status not in ACTIVE_STATUSES:
        return InactiveSubscription(status=status)

    availability = PLANS[plan].availability(feature)

    if availability == Availability.INCLUDED:
        reason = "complete_suite" if plan == PlanTier.COMPLETE else "plan_feature"
        return Granted(plan=plan, reason=reason)

    if availability == Availability.ADDON:
        required = FEATURE_ADDONS[feature]
        if addon == required:
            return Granted(plan=plan, reason="addon_selected", addon=addon)
        return AddonRequired(
            required_addon=required,
            selected_addon=addon,
            message=f"Select {ADDON_NAMES[required]} as your Professional addon to use this feature",
        )

    required_plans = tuple(
        t for t in PlanTier if PLANS[t].availability(feature) != Availability.UNAVAILABLE
    )
    return UpgradeRequired(
        current_plan=plan,
        required_plans=required_plans,
        message=_upgrade_message(feature),
    )


@dataclass(frozen=True)
class UpgradeOption:
    """One way to obtain a feature."""
    action: str
    name: str
    note: str
    plan: Optional[PlanTier] = None
    addon: Optional[Addon] = None
    price: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "name": self.name,
            "note": self.note,
            "plan": self.plan.value if self.plan else None,
            "addon": self.addon.value if self.addon else None,
            "price": self.price,
        }


def upgrade_options(
    plan: PlanTier,
    addon: Optional[Addon],
    feature: Feature,
) -> list[UpgradeOption]:
    """Ways to obtain ``feature`` from the current plan (empty if already granted)."""
    plan = PlanTier(plan)
    feature = Feature(feature)
    addon = Addon(addon) if addon else None

    if check_feature_access(plan, addon, feature).allowed:
        return []

    options: list[UpgradeOption] = []
    complete = PLANS[PlanTier.COMPLETE]

    if plan == PlanTier.ESSENTIAL:
        professional = PLANS[PlanTier.PROFESSIONAL]
        if professional.availability(feature) != Availability.UNAVAILABLE:
            options.append(UpgradeOption(
                action="upgrade",
                plan=PlanTier.PROFESSIONAL,
                name=professional.name,
                price=professional.monthly_price,
                note="Includes this feature as an addon option",
            ))
        options.append(UpgradeOption(
            action="upgrade",
            plan=PlanTier.COMPLETE,
            name=complete.name,
            price=complete.monthly_price,
            note="Includes everything",
        ))
    elif plan == PlanTier.PROFESSIONAL:
        required = FEATURE_ADDONS.get(feature)
        if required is not None:
            if addon is None:
                options.append(UpgradeOption(
                    action="select_addon",
                    addon=required,
                    name=f"Select {ADDON_NAMES[required]} addon",
                    note="Included in your Professional plan",
                ))
            else:
                options.append(UpgradeOption(
                    action="change_addon",
                    addon=required,
                    name=f"Switch to {ADDON_NAMES[required]} addon",
                    note="Change once per billing cycle",
                ))
        options.append(UpgradeOption(
            action="upgrade",
            plan=PlanTier.COMPLETE,
            name=f"Upgrade to {complete.name}",
            price=complete.monthly_price,
            note="Get both AI Notes and Telehealth",
        ))

    return options


# === Addon selection ===

@dataclass(frozen=True)
class AddonSelection:
    """Result of applying an addon choice."""
    addon: Addon
    changed_this_cycle: bool
    changed: bool


def select_addon(
    plan: PlanTier,
    current_addon: Optional[Addon],
    changed_this_cycle: bool,
    new_addon: Addon,
) -> AddonSelection:
    """
    Apply an addon choice to a Professional subscription.

    The first selection is free; switching to a different addon is allowed
    once per billing cycle.

    Raises:
        ValidationError: If the plan has no addons
        ConflictError: If the addon was already changed this cycle
    """
    plan = PlanTier(plan)
    new_addon = Addon(new_addon)
    current_addon = Addon(current_addon) if current_addon else None

    if plan != PlanTier.PROFESSIONAL:
        raise ValidationError(
            "Addons can only be selected on the Professional plan",
            details={"plan": plan.value},
        )

    if current_addon == new_addon:
        return AddonSelection(addon=new_addon, changed_this_cycle=changed_this_cycle, changed=False)

    if current_addon is None:
        return AddonSelection(addon=new_addon, changed_this_cycle=changed_this_cycle, changed=True)

    if changed_this_cycle:
        raise ConflictError(
            "Addon can only be changed once per billing cycle",
            details={"selected_addon": current_addon.value},
        )

    return AddonSelection(addon=new_addon, changed_this_cycle=True, changed=True)


def price_id_for(plan: PlanTier, addon: Optional[Addon]) -> str:
    """Stripe price id for a plan/addon combination."""
    plan = PlanTier(plan)
    if plan == PlanTier.ESSENTIAL:
        return settings.stripe_price_essential
    if plan == PlanTier.PROFESSIONAL:
        if addon == Addon.TELEHEALTH:
            return settings.stripe_price_professional_telehealth
        return settings.stripe_price_professional_ai
    return settings.stripe_price_complete
