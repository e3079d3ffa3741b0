# app/domains/moderation/api.py
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.domains.auth.dependencies import get_current_actor
from app.domains.auth.entities import Actor, Role
from app.domains.auth.service import require_role
from app.domains.moderation.entities import DecisionRequest
from app.domains.moderation.executor import action_executor
from app.domains.moderation.service import moderation_service

router = APIRouter()


class ClaimRequest(BaseModel):
    ttl_minutes: Optional[int] = Field(default=None, gt=0)


class RecordDecisionRequest(BaseModel):
    action: str
    policy_violations: List[str] = Field(default_factory=list)
    reasoning: str = ""
    evidence: List[str] = Field(default_factory=list)
    decision_ground: Optional[str] = None
    legal_reference: Optional[str] = None
    facts_and_circumstances: Optional[str] = None
    territorial_scope: List[str] = Field(default_factory=list)
    duration_days: Optional[int] = None
    automated_detection: bool = False
    automated_decision: bool = False


class DeliveryResultRequest(BaseModel):
    success: bool
    error: Optional[str] = None


def _decision_dict(decision) -> dict:
    return {
        "id": decision.id,
        "report_id": decision.report_id,
        "moderator_id": decision.moderator_id,
        "supervisor_id": decision.supervisor_id,
        "action": decision.action,
        "status": decision.status,
        "requires_supervisor_approval": decision.requires_supervisor_approval,
        "statement_of_reasons_id": decision.statement_of_reasons_id,
        "executed_at": decision.executed_at.isoformat() if decision.executed_at else None,
    }


@router.post("/reports/{report_id}/claim")
async def claim_report(
    report_id: str, request: ClaimRequest, actor: Actor = Depends(get_current_actor)
):
    """Взять жалобу в работу"""
    ttl = timedelta(minutes=request.ttl_minutes) if request.ttl_minutes else None
    claim = await moderation_service.claim(actor, report_id, ttl)
    return {
        "report_id": claim.report_id,
        "moderator_id": claim.moderator_id,
        "expires_at": claim.expires_at.isoformat(),
    }


@router.post("/reports/{report_id}/decision", status_code=201)
async def record_decision(
    report_id: str, request: RecordDecisionRequest, actor: Actor = Depends(get_current_actor)
):
    decision = await moderation_service.record_decision(
        actor, report_id, DecisionRequest(**request.model_dump())
    )
    return _decision_dict(decision)


@router.get("/decisions/{decision_id}")
async def get_decision(decision_id: str, actor: Actor = Depends(get_current_actor)):
    require_role(actor, Role.MODERATOR, Role.SUPERVISOR)
    return _decision_dict(await moderation_service.get_decision(decision_id))


@router.post("/decisions/{decision_id}/approve")
async def approve_decision(decision_id: str, actor: Actor = Depends(get_current_actor)):
    """Подтверждение решения супервизором"""
    return _decision_dict(await moderation_service.approve_decision(actor, decision_id))


@router.post("/decisions/{decision_id}/execute")
async def execute_decision(decision_id: str, actor: Actor = Depends(get_current_actor)):
    execution = await action_executor.execute(actor, decision_id)
    return {
        "execution_id": execution.id,
        "decision_id": execution.decision_id,
        "action": execution.action,
        "executed_by": execution.executed_by,
        "executed_at": execution.executed_at.isoformat(),
        "expires_at": execution.expires_at.isoformat() if execution.expires_at else None,
    }


@router.post("/notifications/{notification_id}/delivery")
async def notification_delivery(
    notification_id: str, request: DeliveryResultRequest, actor: Actor = Depends(get_current_actor)
):
    require_role(actor, Role.SYSTEM)
    notification = await action_executor.record_delivery_result(
        notification_id, request.success, request.error
    )
    return {"id": notification.id, "status": notification.status, "attempts": notification.attempts}
