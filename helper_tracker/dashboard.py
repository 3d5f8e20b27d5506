"""
Dashboard metrics – loan categories, employment duration and summary counts.
"""

from datetime import date, datetime
from typing import Dict, List, Optional

import pandas as pd

from helper_tracker.config import (
    LOAN_LOW_VALUE,
    LOAN_MEDIUM_VALUE,
    LOAN_MINIMAL,
    LOAN_URGENT_FOLLOWUP,
    NEW_EMPLOYEE_MONTHS,
)
from helper_tracker.models import (
    DashboardMetrics,
    Helper,
    Incident,
    IncidentSeverity,
    IncidentStatus,
    User,
)


def _parse_date(value: str) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        return None


def employment_duration(start_date: str, today: Optional[date] = None) -> Dict[str, object]:
    """
    Whole months employed (30-day months) and a short display string,
    e.g. ``12 days``, ``5 months``, ``2 years``, ``1y 3m``.
    """
    start = _parse_date(start_date)
    if start is None:
        return {"months": 0, "displayText": "Not specified"}

    days = abs((today or date.today()) - start).days
    months = days // 30

    if months < 1:
        text = f"{days} days"
    elif months < 12:
        text = f"{months} month{'' if months == 1 else 's'}"
    else:
        years, rest = divmod(months, 12)
        text = f"{years} year{'' if years == 1 else 's'}" if rest == 0 else f"{years}y {rest}m"
    return {"months": months, "displayText": text}


def is_new_employee(start_date: str, today: Optional[date] = None) -> bool:
    if _parse_date(start_date) is None:
        return False
    return employment_duration(start_date, today)["months"] < NEW_EMPLOYEE_MONTHS


def loan_category(amount: float) -> str:
    if amount < LOAN_MINIMAL:
        return "Minimal"
    if amount >= LOAN_URGENT_FOLLOWUP:
        return "Urgent"
    if amount >= LOAN_MEDIUM_VALUE:
        return "High Value"
    if amount >= LOAN_LOW_VALUE:
        return "Medium Value"
    return "Low Value"


def compute_dashboard_metrics(
    helpers: List[Helper], users: List[User], today: Optional[date] = None,
) -> DashboardMetrics:
    """Summary counts for the dashboard cards."""
    active_users = sum(1 for u in users if u.is_active)

    if not helpers:
        return DashboardMetrics(
            total_helpers=0,
            total_users=len(users),
            active_users=active_users,
            total_outstanding_loans=0,
        )

    df = pd.DataFrame({
        "loan": [h.outstanding_loan for h in helpers],
        "start": [h.employment_start_date for h in helpers],
    })
    loans = pd.to_numeric(df["loan"], errors="coerce").fillna(0)
    total = loans.sum()

    return DashboardMetrics(
        total_helpers=len(df),
        total_users=len(users),
        active_users=active_users,
        total_outstanding_loans=int(total) if float(total).is_integer() else float(total),
        urgent_follow_ups=int((loans >= LOAN_URGENT_FOLLOWUP).sum()),
        new_employees=int(df["start"].map(lambda s: is_new_employee(s, today)).sum()),
    )


def loan_breakdown(helpers: List[Helper]) -> Dict[str, int]:
    """Number of helpers in each loan category."""
    counts = {c: 0 for c in ("Minimal", "Low Value", "Medium Value", "High Value", "Urgent")}
    if helpers:
        series = pd.Series([loan_category(h.outstanding_loan) for h in helpers])
        for category, n in series.value_counts().items():
            counts[category] = int(n)
    return counts


def incident_statistics(incidents: List[Incident]) -> Dict[str, object]:
    """Counts of incidents by severity and by status, zero-filled."""
    by_severity = {s.value: 0 for s in IncidentSeverity}
    by_status = {s.value: 0 for s in IncidentStatus}
    if incidents:
        df = pd.DataFrame({
            "severity": [i.severity for i in incidents],
            "status": [i.status for i in incidents],
        })
        for key, n in df["severity"].value_counts().items():
            by_severity[key] = int(n)
        for key, n in df["status"].value_counts().items():
            by_status[key] = int(n)
    return {
        "total": len(incidents),
        "bySeverity": by_severity,
        "byStatus": by_status,
    }
