# app/domains/reports/classifier.py
"""
Priority lanes for incoming notices.

    immediate   CSAM, self-harm, imminent danger keywords
    high        trusted flaggers, illegal content with a legal basis
    elevated    several independent reports on the same content
    normal      policy violations
"""
from datetime import datetime, timedelta

from app.core.config import settings
from app.domains.reports.entities import (
    Priority,
    PriorityClassification,
    ReportSubmission,
    ReportType,
    SlaLane,
)


def _mentions(text: str, keywords) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in keywords)


def classify(submission: ReportSubmission, trusted_flagger: bool, report_count: int) -> PriorityClassification:
    illegal = submission.report_type == ReportType.ILLEGAL.value
    default_lane = SlaLane.ILLEGAL if illegal else SlaLane.POLICY_VIOLATION

    if _mentions(submission.explanation, settings.IMMEDIATE_KEYWORDS):
        return PriorityClassification(
            Priority.IMMEDIATE, SlaLane.IMMEDIATE, "CSAM, self-harm or imminent danger indicated"
        )
    if trusted_flagger:
        return PriorityClassification(Priority.HIGH, default_lane, "Trusted flagger lane")
    if illegal and submission.legal_reference:
        return PriorityClassification(
            Priority.HIGH, SlaLane.ILLEGAL, f"Illegal content: {submission.legal_reference}"
        )
    if illegal and _mentions(submission.explanation, settings.ILLEGAL_KEYWORDS):
        return PriorityClassification(
            Priority.HIGH, SlaLane.ILLEGAL, "Illegal content: matches high-priority patterns"
        )
    if report_count >= settings.ELEVATED_REPORT_COUNT:
        return PriorityClassification(
            Priority.ELEVATED, default_lane, f"{report_count} reports for the same content"
        )
    if not illegal:
        return PriorityClassification(Priority.NORMAL, SlaLane.POLICY_VIOLATION, "Policy violation review")
    return PriorityClassification(Priority.LOW, default_lane, "Low priority report")


def sla_deadline(lane: SlaLane, submitted_at: datetime) -> datetime:
    hours = settings.SLA_WINDOWS_HOURS[lane.value]
    return submitted_at + timedelta(hours=hours)
