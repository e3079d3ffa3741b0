# app/domains/appeals/api.py
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.domains.appeals.service import appeals_service
from app.domains.auth.dependencies import get_current_actor
from app.domains.auth.entities import Actor

router = APIRouter()


class FileAppealRequest(BaseModel):
    decision_id: str
    appeal_type: str
    counter_arguments: str = ""
    supporting_evidence: List[str] = Field(default_factory=list)


class ResolveAppealRequest(BaseModel):
    decision: str
    reasoning: str = ""


class EscalateRequest(BaseModel):
    ods_body_id: str


class OdsCaseUpdateRequest(BaseModel):
    status: Optional[str] = None
    case_number: Optional[str] = None
    outcome: Optional[str] = None
    outcome_summary: Optional[str] = None
    actual_resolution_date: Optional[datetime] = None
    platform_action_required: Optional[bool] = None
    platform_action_completed: Optional[bool] = None


class OdsBodyRequest(BaseModel):
    name: str
    jurisdictions: List[str] = Field(default_factory=list)
    specialization: List[str] = Field(default_factory=list)
    submission_url: Optional[str] = None
    contact_email: Optional[str] = None


def _appeal_dict(appeal) -> dict:
    return {
        "id": appeal.id,
        "original_decision_id": appeal.original_decision_id,
        "status": appeal.status,
        "decision": appeal.decision,
        "reviewer_id": appeal.reviewer_id,
        "submitted_at": appeal.submitted_at.isoformat(),
        "deadline": appeal.deadline.isoformat(),
        "ods_escalation_id": appeal.ods_escalation_id,
    }


def _escalation_dict(escalation) -> dict:
    return {
        "id": escalation.id,
        "appeal_id": escalation.appeal_id,
        "ods_body_id": escalation.ods_body_id,
        "status": escalation.status,
        "case_number": escalation.case_number,
        "submitted_at": escalation.submitted_at.isoformat(),
        "target_resolution_date": escalation.target_resolution_date.isoformat(),
        "actual_resolution_date": (
            escalation.actual_resolution_date.isoformat() if escalation.actual_resolution_date else None
        ),
    }


@router.post("", status_code=201)
async def file_appeal(request: FileAppealRequest, actor: Actor = Depends(get_current_actor)):
    """Подать апелляцию на решение модерации"""
    appeal = await appeals_service.file_appeal(
        actor,
        decision_id=request.decision_id,
        appeal_type=request.appeal_type,
        counter_arguments=request.counter_arguments,
        supporting_evidence=request.supporting_evidence,
    )
    return _appeal_dict(appeal)


@router.get("/ods-bodies")
async def list_ods_bodies(jurisdiction: Optional[str] = None, actor: Actor = Depends(get_current_actor)):
    bodies = await appeals_service.list_certified_bodies(jurisdiction)
    return {
        "bodies": [
            {"id": b.id, "name": b.name, "jurisdictions": b.jurisdictions, "submission_url": b.submission_url}
            for b in bodies
        ]
    }


@router.post("/ods-bodies", status_code=201)
async def register_ods_body(request: OdsBodyRequest, actor: Actor = Depends(get_current_actor)):
    body = await appeals_service.register_ods_body(actor, **request.model_dump())
    return {"id": body.id, "name": body.name, "status": body.status}


@router.patch("/ods-escalations/{escalation_id}")
async def update_ods_case(
    escalation_id: str, request: OdsCaseUpdateRequest, actor: Actor = Depends(get_current_actor)
):
    escalation = await appeals_service.update_ods_case(
        actor, escalation_id, **request.model_dump(exclude_unset=True)
    )
    return _escalation_dict(escalation)


@router.get("/{appeal_id}")
async def get_appeal(appeal_id: str, actor: Actor = Depends(get_current_actor)):
    return _appeal_dict(await appeals_service.get_appeal(appeal_id))


@router.post("/{appeal_id}/review")
async def start_review(appeal_id: str, actor: Actor = Depends(get_current_actor)):
    return _appeal_dict(await appeals_service.start_review(actor, appeal_id))


@router.post("/{appeal_id}/resolve")
async def resolve_appeal(
    appeal_id: str, request: ResolveAppealRequest, actor: Actor = Depends(get_current_actor)
):
    appeal = await appeals_service.resolve_appeal(actor, appeal_id, request.decision, request.reasoning)
    return _appeal_dict(appeal)


@router.post("/{appeal_id}/escalate", status_code=201)
async def escalate_to_ods(
    appeal_id: str, request: EscalateRequest, actor: Actor = Depends(get_current_actor)
):
    """Эскалация во внесудебный орган (ODS)"""
    escalation = await appeals_service.escalate_to_ods(actor, appeal_id, request.ods_body_id)
    return _escalation_dict(escalation)
