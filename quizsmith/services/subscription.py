"""
Subscription Service

Resolves a user's active plan and the monthly caps that come with it.
Billing itself lives with the payment provider; this module only reads
the subscription history it leaves behind.
"""

from typing import Dict, Optional
from datetime import datetime
from sqlalchemy.orm import Session

from quizsmith.models.models import Subscription


# =============================================================================
# PLAN CONFIGURATION
# =============================================================================

UNLIMITED = -1

RESOURCE_TYPES = ("ai_calls", "documents_uploaded", "quizzes_created")

PLAN_LIMITS: Dict[str, Dict[str, int]] = {
    "Free": {
        "ai_calls": 50,             # AI generation calls per month
        "documents_uploaded": 3,
        "quizzes_created": 5,
    },
    "Standard": {
        "ai_calls": 400,
        "documents_uploaded": 15,
        "quizzes_created": 50,
    },
    "Pro": {
        "ai_calls": UNLIMITED,
        "documents_uploaded": UNLIMITED,
        "quizzes_created": UNLIMITED,
    },
}

DEFAULT_PLAN = "Free"

RESOURCE_LABELS = {
    "ai_calls": "AI generations",
    "documents_uploaded": "document uploads",
    "quizzes_created": "quizzes created",
}

INACTIVE_STATUSES = {"cancelled", "canceled", "expired", "unpaid"}


# =============================================================================
# PLAN RESOLUTION
# =============================================================================

def get_latest_subscription(db: Session, user_id: str) -> Optional[Subscription]:
    """Most recent subscription row for a user, if any."""
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc())
        .first()
    )


def get_user_plan(db: Session, user_id: str) -> str:
    """
    Get the user's active plan name.

    Falls back to Free when there is no subscription, when the latest one is
    cancelled or expired, or when it names a plan we do not know.
    """
    subscription = get_latest_subscription(db, user_id)
    if not subscription:
        return DEFAULT_PLAN

    if subscription.cancelled_at or (subscription.status or "").lower() in INACTIVE_STATUSES:
        return DEFAULT_PLAN

    if subscription.expires_at and subscription.expires_at < datetime.utcnow():
        return DEFAULT_PLAN

    if subscription.plan not in PLAN_LIMITS:
        return DEFAULT_PLAN

    return subscription.plan


def get_plan_limits(plan: str) -> Dict[str, int]:
    """Get monthly caps for a plan."""
    return PLAN_LIMITS.get(plan, PLAN_LIMITS[DEFAULT_PLAN])


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED
