import pytest

from conftest import BASE_CONFIG
from eventcert.app import db
from eventcert.models import AttendanceLog, SurveyResponse
from eventcert.shared.eligibility import (
    REASON_ATTENDANCE,
    REASON_SURVEY,
    REASON_TEMPLATE,
    EligibilityFacts,
    available_policies,
    check_eligibility,
    evaluate,
)


class FakeEvent:
    def __init__(self, policy="attendance_and_survey", requires_attendance=True, requires_survey=True):
        self.certificate_policy = policy
        self.requires_attendance = requires_attendance
        self.requires_survey = requires_survey


def facts(attended=True, surveyed=True, template=True):
    return EligibilityFacts(attended, surveyed, template)


def test_default_policy_needs_attendance_and_survey():
    result = evaluate(FakeEvent(), facts(attended=False, surveyed=False))
    assert not result.eligible
    assert result.reasons == (REASON_ATTENDANCE, REASON_SURVEY)
    assert result.message == f"{REASON_ATTENDANCE} {REASON_SURVEY}"


def test_event_flags_relax_default_policy():
    result = evaluate(FakeEvent(requires_survey=False), facts(surveyed=False))
    assert result.eligible
    assert result.message == "Eligible for a certificate."


@pytest.mark.parametrize(
    "policy,state,eligible",
    [
        ("attendance_only", facts(surveyed=False), True),
        ("attendance_only", facts(attended=False), False),
        ("open", facts(attended=False, surveyed=False), True),
    ],
)
def test_named_policies(policy, state, eligible):
    assert evaluate(FakeEvent(policy), state).eligible is eligible


def test_every_policy_requires_a_saved_design():
    result = evaluate(FakeEvent("open"), facts(template=False))
    assert not result.eligible
    assert result.reasons == (REASON_TEMPLATE,)


def test_unknown_policy_falls_back_to_default():
    result = evaluate(FakeEvent("lottery"), facts(surveyed=False))
    assert result.policy == "attendance_and_survey"
    assert not result.eligible


def test_available_policies():
    assert set(available_policies()) >= {"attendance_and_survey", "attendance_only", "open"}


def test_to_dict_is_json_ready():
    data = evaluate(FakeEvent(), facts(attended=False)).to_dict()
    assert data["eligible"] is False
    assert data["reasons"] == [REASON_ATTENDANCE]
    assert data["message"] == REASON_ATTENDANCE


def test_unvalidated_attendance_does_not_count(app, make_user, make_event):
    user = make_user()
    event = make_event(config=BASE_CONFIG)
    db.session.add(AttendanceLog(event_id=event.id, user_id=user.id, is_validated=False))
    db.session.add(SurveyResponse(event_id=event.id, user_id=user.id))
    db.session.commit()

    result = check_eligibility(user, event)
    assert not result.attendance_validated
    assert result.survey_completed
    assert result.template_available
