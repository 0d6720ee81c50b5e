from conftest import BASE_CONFIG
from eventcert.shared.certificates import generate_certificate
from manage import inspect_cert


def test_inspect_cert_asks_for_event_when_number_is_shared(
    app, make_user, make_event, make_eligible
):
    event_one = make_event(config=BASE_CONFIG, title="Event One")
    event_two = make_event(config=BASE_CONFIG, title="Event Two")
    alpha = make_user(first_name="Alpha", last_name="Cruz")
    bravo = make_user(first_name="Bravo", last_name="Reyes")
    make_eligible(alpha, event_one)
    make_eligible(bravo, event_two)
    generate_certificate(alpha, event_one)
    generate_certificate(bravo, event_two)
    runner = app.test_cli_runner()

    shared = runner.invoke(inspect_cert, ["--number", "CERT-001"])
    assert "pass --event" in shared.output

    scoped = runner.invoke(inspect_cert, ["--number", "CERT-001", "--event", str(event_two.id)])
    assert scoped.exit_code == 0
    assert "CERT-001: 2000x1200" in scoped.output
    assert "Bravo Reyes" in scoped.output
    assert "Alpha Cruz" not in scoped.output


def test_inspect_cert_unknown_number(app):
    result = app.test_cli_runner().invoke(inspect_cert, ["--number", "NOPE-001"])
    assert "Not found" in result.output
