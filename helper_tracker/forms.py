"""
Multi-step form progression and the per-step validation rules of the
"new helper" and "add incident" wizards.
"""

import re
from datetime import date, datetime
from typing import Callable, Dict, Mapping, Optional

FormErrors = Dict[str, str]
StepValidator = Callable[[Mapping, int], FormErrors]

WIZARD_STEPS = 4

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")
DIGITS_RE = re.compile(r"^\d+$")


class MultiStepForm:
    """Bounded step counter; moves past either end are silently clamped."""

    def __init__(self, total_steps: int, on_step_change: Optional[Callable[[int], None]] = None):
        if total_steps < 1:
            raise ValueError("total_steps must be at least 1")
        self.total_steps = total_steps
        self.on_step_change = on_step_change
        self.active_step = 0

    def _move(self, step: int) -> None:
        self.active_step = step
        if self.on_step_change is not None:
            self.on_step_change(step)

    @property
    def is_first_step(self) -> bool:
        return self.active_step == 0

    @property
    def is_last_step(self) -> bool:
        return self.active_step == self.total_steps - 1

    def go_to_next(self) -> None:
        self._move(min(self.active_step + 1, self.total_steps - 1))

    def go_to_previous(self) -> None:
        self._move(max(self.active_step - 1, 0))

    def go_to_step(self, step: int) -> None:
        if 0 <= step < self.total_steps:
            self._move(step)

    def reset(self) -> None:
        self._move(0)


# ── Field validators ─────────────────────────────────────────────────
# Each returns an error message, or None when the value is acceptable.

def required(value, field_name: str) -> Optional[str]:
    return None if str(value or "").strip() else f"{field_name} is required"


def email(value) -> Optional[str]:
    return None if EMAIL_RE.match(str(value or "")) else "Please enter a valid email address"


def password(value) -> Optional[str]:
    value = str(value or "")
    if len(value) < 8:
        return "Password must be at least 8 characters"
    if not (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)):
        return "Password must contain uppercase, lowercase, and number"
    return None


def username(value) -> Optional[str]:
    value = str(value or "")
    if len(value) < 3:
        return "Username must be at least 3 characters"
    if not USERNAME_RE.match(value):
        return "Username can only contain letters, numbers, and underscores"
    return None


def number(value, field_name: str) -> Optional[str]:
    return None if DIGITS_RE.match(str(value if value is not None else "")) else f"{field_name} must be a number"


def future_date(value, field_name: str, today: Optional[date] = None) -> Optional[str]:
    """Reject dates after *today*; unparseable dates are reported as invalid."""
    today = today or date.today()
    try:
        parsed = datetime.fromisoformat(str(value)).date()
    except ValueError:
        return f"{field_name} is not a valid date"
    return f"{field_name} cannot be in the future" if parsed > today else None


def min_length(value, length: int, field_name: str) -> Optional[str]:
    if len(str(value or "").strip()) >= length:
        return None
    return f"{field_name} must be at least {length} characters"


def _collect(errors: Dict[str, Optional[str]]) -> FormErrors:
    return {k: v for k, v in errors.items() if v}


def _incident_details(data: Mapping, description_field: str, missing_message: str) -> FormErrors:
    description = str(data.get(description_field) or "").strip()
    if not description:
        description_error = missing_message
    else:
        description_error = min_length(description, 10, "Description")
    return _collect({
        "incidentDate": None if data.get("incidentDate") else "Incident date is required",
        description_field: description_error,
        "reportedBy": required(data.get("reportedBy"), "Reporter name"),
    })


def _review(data: Mapping) -> FormErrors:
    if data.get("status") == "Resolved" and not str(data.get("resolution") or "").strip():
        return {"resolution": "Resolution is required when status is resolved"}
    return {}


# ── Wizard step rules ────────────────────────────────────────────────

def validate_new_helper_step(data: Mapping, step: int, today: Optional[date] = None) -> FormErrors:
    """Steps: 0 helper details, 1 incident details, 2 media, 3 review."""
    if step == 0:
        start = data.get("employmentStartDate")
        return _collect({
            "name": required(data.get("name"), "Name"),
            "currentEmployer": required(data.get("currentEmployer"), "Employer"),
            "totalEmployers": number(data.get("totalEmployers"), "Total employers"),
            "eaOfficer": required(data.get("eaOfficer"), "EA Officer"),
            "outstandingLoan": number(data.get("outstandingLoan"), "Outstanding loan"),
            "employmentStartDate": (
                future_date(start, "Employment start date", today) if start
                else "Employment start date is required"
            ),
        })
    if step == 1:
        return _incident_details(data, "incidentDescription", "Incident description is required")
    if step == 3:
        return _review(data)
    return {}


def validate_add_incident_step(data: Mapping, step: int) -> FormErrors:
    """Steps: 0 select helper, 1 incident details, 2 media, 3 review."""
    if step == 0:
        return {} if data.get("helperId") else {"helperId": "Helper selection is required"}
    if step == 1:
        return _incident_details(data, "description", "Description is required")
    if step == 3:
        return _review(data)
    return {}


def validate_all(validator: StepValidator, data: Mapping, steps: int = WIZARD_STEPS) -> FormErrors:
    errors: FormErrors = {}
    for step in range(steps):
        errors.update(validator(data, step))
    return errors
