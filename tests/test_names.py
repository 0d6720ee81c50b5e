from types import SimpleNamespace

from eventcert.shared.names import join_name_parts, middle_initial, participant_display_name


def person(**fields):
    base = dict(prefix=None, first_name=None, middle_initial=None, last_name=None, suffix=None, email=None)
    base.update(fields)
    return SimpleNamespace(**base)


def test_join_name_parts_collapses_whitespace():
    assert join_name_parts(["  Ana ", None, "", "de  la Cruz"]) == "Ana de la Cruz"


def test_middle_initial():
    assert middle_initial("quincy") == "Q."
    assert middle_initial("Q.") == "Q."
    assert middle_initial("  ") == ""


def test_full_display_name():
    user = person(prefix="Dr.", first_name="Ana", middle_initial="B", last_name="Cruz", suffix="Jr.")
    assert participant_display_name(user) == "Dr. Ana B. Cruz Jr."


def test_falls_back_to_email_then_placeholder():
    assert participant_display_name(person(email="ana.cruz@example.com")) == "ana.cruz"
    assert participant_display_name(person()) == "Participant"
