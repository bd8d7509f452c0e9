"""
Usage API Router

Stand-alone monthly quota check-and-consume plus a per-user usage summary.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from quizsmith.database import get_db
from quizsmith.exceptions import NotFound
from quizsmith.models.models import User
from quizsmith.schemas.generation import UsageRequest, UsageResponse, UsageSummaryResponse
from quizsmith.services.usage_gate import UsageGate

router = APIRouter(prefix="/api/usage", tags=["usage"])


def _require_user(db: Session, user_id: str) -> None:
    if not db.query(User.id).filter(User.id == user_id).first():
        raise NotFound("User not found")


@router.post("", response_model=UsageResponse)
def consume_usage(request: UsageRequest, db: Session = Depends(get_db)):
    """
    Consume one unit of a resource for the user.

    Returns 403 with `upgrade: true` when the plan limit is reached; the
    counter is left unchanged in that case.
    """
    _require_user(db, request.user_id)
    decision = UsageGate(db).check_and_consume(request.user_id, request.type)

    if not decision.allowed:
        return JSONResponse(
            status_code=403,
            content={
                "upgrade": True,
                "plan": decision.plan,
                "message": decision.message,
                "resource_type": decision.resource_type,
                "limit": decision.limit,
                "used": decision.used,
            },
        )

    return UsageResponse(
        success=True,
        type=decision.resource_type,
        used=decision.used,
        remaining=decision.remaining,
        limit=decision.limit,
        plan=decision.plan,
    )


@router.get("/{user_id}", response_model=UsageSummaryResponse)
def get_usage(user_id: str, db: Session = Depends(get_db)):
    """Current plan, usage per resource and next reset time."""
    _require_user(db, user_id)
    return UsageGate(db).usage_summary(user_id)
