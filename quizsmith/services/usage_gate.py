"""
Usage Gate

Per-user, per-resource monthly quota check-and-increment.

The check and the increment are one conditional UPDATE, so two concurrent
requests sitting at `limit - 1` cannot both be admitted:

    UPDATE usage_counters SET ai_calls = ai_calls + 1
    WHERE user_id = :user AND ai_calls < :limit

A row count of 1 means the unit was consumed; 0 means the cap was already hit.
"""

import calendar
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from quizsmith.exceptions import QuotaExceeded, ValidationError
from quizsmith.models.models import UsageCounter
from quizsmith.services.subscription import (
    RESOURCE_LABELS,
    RESOURCE_TYPES,
    get_plan_limits,
    get_user_plan,
    is_unlimited,
)

logger = logging.getLogger(__name__)


def one_month_before(moment: datetime) -> datetime:
    """Same wall-clock time one calendar month earlier (day clamped to month end)."""
    if moment.month == 1:
        year, month = moment.year - 1, 12
    else:
        year, month = moment.year, moment.month - 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def one_month_after(moment: datetime) -> datetime:
    if moment.month == 12:
        year, month = moment.year + 1, 1
    else:
        year, month = moment.year, moment.month + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


@dataclass
class UsageDecision:
    """Outcome of one check-and-consume call."""
    allowed: bool
    resource_type: str
    plan: str
    used: int
    limit: int
    remaining: int  # -1 when unlimited
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class UsageGate:
    """Monthly quota enforcement backed by the usage_counters table."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check_and_consume(self, user_id: str, resource_type: str) -> UsageDecision:
        """
        Consume one unit of `resource_type` for the user if the plan allows it.

        Denials are returned, not raised; the counter is left unchanged.
        """
        self._validate_resource(resource_type)
        plan = get_user_plan(self.db, user_id)
        now = self._clock()

        self._prepare_counter(user_id, now)
        decision = self._consume(user_id, resource_type, plan, now)
        self.db.commit()
        return decision

    def check_and_consume_all(self, user_id: str, resource_types: Iterable[str]) -> List[UsageDecision]:
        """
        Consume one unit of each resource type in a single transaction.

        On the first denial every earlier increment is rolled back and
        QuotaExceeded is raised, so a refused request consumes nothing.
        """
        resource_types = list(resource_types)
        for resource_type in resource_types:
            self._validate_resource(resource_type)

        plan = get_user_plan(self.db, user_id)
        now = self._clock()
        self._prepare_counter(user_id, now)

        decisions: List[UsageDecision] = []
        for resource_type in resource_types:
            decision = self._consume(user_id, resource_type, plan, now)
            if not decision.allowed:
                self.db.rollback()
                raise QuotaExceeded(
                    plan=decision.plan,
                    resource_type=decision.resource_type,
                    limit=decision.limit,
                    used=decision.used,
                    message=decision.message,
                )
            decisions.append(decision)

        self.db.commit()
        return decisions

    def usage_summary(self, user_id: str) -> Dict[str, Any]:
        """Current plan, per-resource consumption and the next reset time."""
        plan = get_user_plan(self.db, user_id)
        limits = get_plan_limits(plan)
        now = self._clock()

        self._prepare_counter(user_id, now)
        self.db.commit()

        counter = self.db.get(UsageCounter, user_id)
        self.db.refresh(counter)

        resources = {}
        for resource_type in RESOURCE_TYPES:
            used = getattr(counter, resource_type) or 0
            limit = limits[resource_type]
            resources[resource_type] = {
                "used": used,
                "limit": limit,
                "remaining": -1 if is_unlimited(limit) else max(0, limit - used),
                "unlimited": is_unlimited(limit),
            }

        return {
            "user_id": user_id,
            "plan": plan,
            "usage": resources,
            "last_reset": counter.last_reset.isoformat(),
            "resets_at": one_month_after(counter.last_reset).isoformat(),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_resource(resource_type: str) -> None:
        if resource_type not in RESOURCE_TYPES:
            raise ValidationError(
                f"Unknown usage type '{resource_type}'. "
                f"Expected one of: {', '.join(RESOURCE_TYPES)}"
            )

    def _prepare_counter(self, user_id: str, now: datetime) -> None:
        """Create the counter row if missing, then apply the monthly reset."""
        values = {
            "user_id": user_id,
            "ai_calls": 0,
            "documents_uploaded": 0,
            "quizzes_created": 0,
            "last_reset": now,
            "updated_at": now,
        }
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            self.db.execute(
                pg_insert(UsageCounter).values(**values).on_conflict_do_nothing(index_elements=["user_id"])
            )
        elif dialect == "sqlite":
            self.db.execute(
                sqlite_insert(UsageCounter).values(**values).on_conflict_do_nothing(index_elements=["user_id"])
            )
        elif self.db.get(UsageCounter, user_id) is None:
            self.db.add(UsageCounter(**values))
            self.db.flush()

        cutoff = one_month_before(now)
        result = self.db.execute(
            update(UsageCounter)
            .where(UsageCounter.user_id == user_id, UsageCounter.last_reset <= cutoff)
            .values(ai_calls=0, documents_uploaded=0, quizzes_created=0, last_reset=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info("Monthly usage reset for user_id=%s", user_id)

    def _consume(self, user_id: str, resource_type: str, plan: str, now: datetime) -> UsageDecision:
        limit = get_plan_limits(plan)[resource_type]
        column = getattr(UsageCounter, resource_type)

        stmt = update(UsageCounter).where(UsageCounter.user_id == user_id)
        if not is_unlimited(limit):
            stmt = stmt.where(column < limit)
        stmt = stmt.values({column: column + 1, UsageCounter.updated_at: now})
        result = self.db.execute(stmt.execution_options(synchronize_session=False))

        used = self.db.execute(
            select(column).where(UsageCounter.user_id == user_id)
        ).scalar_one()

        if result.rowcount != 1:
            message = (
                f"You've reached your {plan} plan limit for "
                f"{RESOURCE_LABELS[resource_type]} ({limit})."
            )
            logger.warning(
                "Quota denied user_id=%s resource=%s plan=%s used=%d limit=%d",
                user_id, resource_type, plan, used, limit
            )
            return UsageDecision(
                allowed=False,
                resource_type=resource_type,
                plan=plan,
                used=used,
                limit=limit,
                remaining=0,
                message=message,
            )

        remaining = -1 if is_unlimited(limit) else max(0, limit - used)
        logger.info(
            "Quota consumed user_id=%s resource=%s plan=%s used=%d limit=%d",
            user_id, resource_type, plan, used, limit
        )
        return UsageDecision(
            allowed=True,
            resource_type=resource_type,
            plan=plan,
            used=used,
            limit=limit,
            remaining=remaining,
        )
