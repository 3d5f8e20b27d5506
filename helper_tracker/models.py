"""
Domain dataclasses used across the application.

Spreadsheet cells are all strings; ``from_row`` coerces them and ``to_dict``
produces the camelCase JSON shape the API returns.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from helper_tracker.permissions import Role, parse_role


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class TransferStatus(str, Enum):
    NEW = "New"
    TRANSFER = "Transfer"


class IncidentSeverity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class IncidentStatus(str, Enum):
    OPEN = "Open"
    RESOLVED = "Resolved"
    UNDER_REVIEW = "Under Review"


def to_number(value: Any, default: float = 0) -> float:
    """Parse a numeric cell, tolerating blanks and thousands separators."""
    if value is None or value == "":
        return default
    try:
        number = float(str(value).replace(",", ""))
    except ValueError:
        return default
    return int(number) if number.is_integer() else number


def split_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if str(v)]
    return [part.strip() for part in str(value or "").split(",") if part.strip()]


def join_list(values: Optional[List[str]]) -> str:
    return ",".join(values or [])


@dataclass
class Helper:
    """A tracked domestic-helper employment record."""
    id: str
    name: str
    current_employer: str = ""
    problem: str = ""
    total_employers: int = 0
    ea_officer: str = ""
    outstanding_loan: float = 0
    employment_start_date: str = ""
    pt: str = ""
    transfer_status: str = TransferStatus.NEW.value

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Helper":
        return cls(
            id=str(row.get("id", "")),
            name=str(row.get("name", "")),
            current_employer=str(row.get("currentEmployer", "")),
            problem=str(row.get("problem", "")),
            total_employers=int(to_number(row.get("totalEmployers"))),
            ea_officer=str(row.get("eaOfficer", "")),
            outstanding_loan=to_number(row.get("outstandingLoan")),
            employment_start_date=str(row.get("employmentStartDate", "")),
            pt=str(row.get("pt", "")),
            transfer_status=str(row.get("transferStatus") or TransferStatus.NEW.value),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "currentEmployer": self.current_employer,
            "problem": self.problem,
            "totalEmployers": self.total_employers,
            "eaOfficer": self.ea_officer,
            "outstandingLoan": self.outstanding_loan,
            "employmentStartDate": self.employment_start_date,
            "pt": self.pt,
            "transferStatus": self.transfer_status,
        }


@dataclass
class Incident:
    """A case report tied to one helper."""
    id: str
    helper_id: str
    incident_date: str
    description: str
    severity: str = IncidentSeverity.MEDIUM.value
    reported_by: str = ""
    status: str = IncidentStatus.OPEN.value
    resolution: str = ""
    created_at: str = ""
    media_urls: List[str] = field(default_factory=list)
    media_file_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Incident":
        return cls(
            id=str(row.get("id", "")),
            helper_id=str(row.get("helperId", "")),
            incident_date=str(row.get("incidentDate", "")),
            description=str(row.get("description", "")),
            severity=str(row.get("severity") or IncidentSeverity.MEDIUM.value),
            reported_by=str(row.get("reportedBy", "")),
            status=str(row.get("status") or IncidentStatus.OPEN.value),
            resolution=str(row.get("resolution", "")),
            created_at=str(row.get("createdAt", "")),
            media_urls=split_list(row.get("mediaUrls")),
            media_file_ids=split_list(row.get("mediaFileIds")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "helperId": self.helper_id,
            "incidentDate": self.incident_date,
            "description": self.description,
            "severity": self.severity,
            "reportedBy": self.reported_by,
            "status": self.status,
            "resolution": self.resolution,
            "createdAt": self.created_at,
            "mediaUrls": list(self.media_urls),
            "mediaFileIds": list(self.media_file_ids),
        }


@dataclass
class User:
    """A system account. The password hash never leaves the store layer."""
    id: str
    username: str
    email: str
    role: Role = Role.VIEWER
    status: str = UserStatus.ACTIVE.value
    created_at: str = ""
    created_by: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "User":
        return cls(
            id=str(row.get("id", "")),
            username=str(row.get("username", "")),
            email=str(row.get("email", "")),
            role=parse_role(row.get("role")),
            status=str(row.get("status") or UserStatus.ACTIVE.value),
            created_at=str(row.get("createdAt", "")),
            created_by=str(row.get("createdBy", "")),
        )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role.value,
            "status": self.status,
            "createdAt": self.created_at,
            "createdBy": self.created_by,
        }


@dataclass
class Staff:
    """An entry in the agency staff directory (not a login account)."""
    id: str
    name: str
    role: str = ""
    email: str = ""
    contact: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Staff":
        return cls(
            id=str(row.get("id", "")),
            name=str(row.get("name", "")),
            role=str(row.get("role", "")),
            email=str(row.get("email", "")),
            contact=str(row.get("contact", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "email": self.email,
            "contact": self.contact,
        }


@dataclass
class SessionUser:
    """The authenticated identity attached to a live session token."""
    id: str
    username: str
    email: str
    role: Role
    status: str
    last_activity: float         # epoch seconds
    session_timeout: int         # hours

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role.value,
            "status": self.status,
            "lastActivity": self.last_activity,
            "sessionTimeout": self.session_timeout,
        }


@dataclass
class DashboardMetrics:
    total_helpers: int
    total_users: int
    active_users: int
    total_outstanding_loans: float
    urgent_follow_ups: int = 0
    new_employees: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalHelpers": self.total_helpers,
            "totalUsers": self.total_users,
            "activeUsers": self.active_users,
            "totalOutstandingLoans": self.total_outstanding_loans,
            "urgentFollowUps": self.urgent_follow_ups,
            "newEmployees": self.new_employees,
        }
