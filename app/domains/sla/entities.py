from dataclasses import dataclass
from datetime import datetime
from typing import Optional

SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2, "critical": 3}


def alert_level_for(threshold: int) -> str:
    return "breached" if threshold >= 100 else f"warning_{threshold}"


def alert_severity_for(threshold: int) -> str:
    if threshold >= 100:
        return "critical"
    if threshold >= 90:
        return "high"
    return "medium"


def incident_severity(priority: int, breach_hours: float) -> str:
    if priority >= 90 or breach_hours > 24:
        return "critical"
    if priority >= 75 or breach_hours > 4:
        return "high"
    return "medium"


def elapsed_percent(submitted_at: datetime, deadline: datetime, now: datetime) -> float:
    window = (deadline - submitted_at).total_seconds()
    if window <= 0:
        return 100.0
    return (now - submitted_at).total_seconds() / window * 100


@dataclass
class SweepResult:
    reports_checked: int = 0
    alerts_created: int = 0
    incidents_opened: int = 0
    skipped: bool = False
    reason: Optional[str] = None
