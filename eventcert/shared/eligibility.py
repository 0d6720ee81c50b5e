"""Certificate eligibility policies.

An event names its policy in ``Event.certificate_policy``. Every policy also
requires a saved certificate design for the event.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Callable, Dict, List

from ..app import db
from ..models import AttendanceLog, CertificateConfig, SurveyResponse

DEFAULT_POLICY = "attendance_and_survey"

REASON_ATTENDANCE = "Attendance has not been validated for this event."
REASON_SURVEY = "The event survey has not been completed."
REASON_TEMPLATE = "No certificate design has been saved for this event."


@dataclass(frozen=True)
class EligibilityFacts:
    attendance_validated: bool
    survey_completed: bool
    template_available: bool


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    policy: str
    attendance_validated: bool
    survey_completed: bool
    template_available: bool
    reasons: tuple

    @property
    def message(self) -> str:
        if self.eligible:
            return "Eligible for a certificate."
        return " ".join(self.reasons)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["reasons"] = list(self.reasons)
        data["message"] = self.message
        return data


PolicyFn = Callable[[object, EligibilityFacts], List[str]]
_POLICIES: Dict[str, PolicyFn] = {}


def register_policy(name: str):
    def decorator(fn: PolicyFn) -> PolicyFn:
        _POLICIES[name] = fn
        return fn

    return decorator


def available_policies() -> tuple:
    return tuple(sorted(_POLICIES))


@register_policy("attendance_and_survey")
def _attendance_and_survey(event, facts: EligibilityFacts) -> List[str]:
    reasons = []
    if getattr(event, "requires_attendance", True) and not facts.attendance_validated:
        reasons.append(REASON_ATTENDANCE)
    if getattr(event, "requires_survey", True) and not facts.survey_completed:
        reasons.append(REASON_SURVEY)
    return reasons


@register_policy("attendance_only")
def _attendance_only(event, facts: EligibilityFacts) -> List[str]:
    return [] if facts.attendance_validated else [REASON_ATTENDANCE]


@register_policy("open")
def _open(event, facts: EligibilityFacts) -> List[str]:
    return []


def gather_facts(user_id: int, event_id: int) -> EligibilityFacts:
    attended = (
        db.session.query(AttendanceLog.id)
        .filter_by(event_id=event_id, user_id=user_id, is_validated=True)
        .first()
        is not None
    )
    surveyed = (
        db.session.query(SurveyResponse.id)
        .filter_by(event_id=event_id, user_id=user_id)
        .first()
        is not None
    )
    has_template = (
        db.session.query(CertificateConfig.id).filter_by(event_id=event_id).first()
        is not None
    )
    return EligibilityFacts(attended, surveyed, has_template)


def evaluate(event, facts: EligibilityFacts) -> Eligibility:
    policy = (getattr(event, "certificate_policy", None) or DEFAULT_POLICY).strip()
    rule = _POLICIES.get(policy)
    if rule is None:
        policy = DEFAULT_POLICY
        rule = _POLICIES[DEFAULT_POLICY]
    reasons = list(rule(event, facts))
    if not facts.template_available:
        reasons.append(REASON_TEMPLATE)
    return Eligibility(
        eligible=not reasons,
        policy=policy,
        attendance_validated=facts.attendance_validated,
        survey_completed=facts.survey_completed,
        template_available=facts.template_available,
        reasons=tuple(reasons),
    )


def check_eligibility(user, event) -> Eligibility:
    return evaluate(event, gather_facts(user.id, event.id))
