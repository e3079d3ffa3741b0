# app/domains/reports/api.py
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.domains.auth.dependencies import get_current_actor
from app.domains.auth.entities import Actor
from app.domains.reports.entities import ReportSubmission
from app.domains.reports.service import report_intake_service

router = APIRouter()


class SubmitReportRequest(BaseModel):
    content_id: str
    content_type: str
    report_type: str
    explanation: str = ""
    good_faith_declaration: bool = False
    jurisdiction: Optional[str] = None
    legal_reference: Optional[str] = None
    content_locator: Optional[str] = None
    reporter_contact: Optional[str] = None
    evidence_urls: List[str] = Field(default_factory=list)


class TrustedFlaggerRequest(BaseModel):
    user_id: str
    organization_name: str
    contact_email: Optional[str] = None
    specialization: List[str] = Field(default_factory=list)


@router.post("/reports", status_code=201)
async def submit_report(request: SubmitReportRequest, actor: Actor = Depends(get_current_actor)):
    """Подать жалобу на контент (DSA notice)"""
    result = await report_intake_service.submit(actor, ReportSubmission(**request.model_dump()))
    return {
        "report_id": result.report_id,
        "status": result.status.value,
        "priority": result.priority,
        "sla_deadline": result.sla_deadline.isoformat(),
        "duplicate_of_report_id": result.duplicate_of_report_id,
    }


@router.post("/trusted-flaggers", status_code=201)
async def register_trusted_flagger(
    request: TrustedFlaggerRequest, actor: Actor = Depends(get_current_actor)
):
    flagger = await report_intake_service.register_trusted_flagger(
        actor,
        user_id=request.user_id,
        organization_name=request.organization_name,
        specialization=request.specialization,
        contact_email=request.contact_email,
    )
    return {"id": flagger.id, "user_id": flagger.user_id, "status": flagger.status}
