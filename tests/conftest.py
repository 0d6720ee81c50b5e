import base64
import os
import pathlib
import sys
from datetime import date
from io import BytesIO

import pytest
from PIL import Image

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from eventcert.app import create_app, db
from eventcert.models import (
    AttendanceLog,
    CertificateConfig,
    Event,
    SurveyResponse,
    User,
)
from eventcert.shared import certificate_assets
from eventcert.shared.certificates_layout import resolve, serialize


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


@pytest.fixture(autouse=True)
def offline_fonts(monkeypatch):
    """Decorative fonts resolve without the public mirrors unless a test opts in."""
    monkeypatch.setitem(
        certificate_assets.DECORATIVE_FONTS,
        "montecarlo",
        certificate_assets.FontSource(
            pdf_name="MonteCarlo",
            bundled="fonts/MonteCarlo-Regular.ttf",
            urls=(),
        ),
    )


@pytest.fixture
def site_root(tmp_path):
    path = tmp_path / "site"
    path.mkdir()
    return path


@pytest.fixture
def assets_dir(tmp_path):
    path = tmp_path / "assets"
    (path / "fonts").mkdir(parents=True)
    return path


@pytest.fixture
def app(monkeypatch, site_root, assets_dir):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("SITE_ROOT", str(site_root))
    monkeypatch.setenv("CERT_ASSETS_DIR", str(assets_dir))
    monkeypatch.delenv("CERT_RASTER_WIDTH", raising=False)
    application = create_app()
    application.config["TESTING"] = True
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def png_bytes(size=(40, 20), color=(200, 30, 30, 255)) -> bytes:
    buf = BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


def png_data_uri(size=(40, 20), color=(200, 30, 30, 255)) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes(size, color)).decode()


BASE_CONFIG = {
    "cert_id_prefix": "CERT",
    "header_config": {
        "republic_text": "Republic of Example",
        "university_text": "Example State University",
        "location_text": "Example City",
    },
}


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(role="participant", **fields):
        counter["n"] += 1
        defaults = {
            "email": f"user{counter['n']}@example.com",
            "first_name": "Ana",
            "last_name": f"Cruz{counter['n']}",
        }
        defaults.update(fields)
        user = User(role=role, **defaults)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_event(app):
    def _make(config=None, organizer=None, **fields):
        defaults = {
            "title": "Data Science Summit",
            "start_date": date(2025, 3, 5),
            "venue": "Main Auditorium",
        }
        defaults.update(fields)
        event = Event(organizer_id=organizer.id if organizer else None, **defaults)
        db.session.add(event)
        db.session.flush()
        if config is not None:
            db.session.add(
                CertificateConfig(event_id=event.id, layout=serialize(resolve(config)))
            )
        db.session.commit()
        return event

    return _make


@pytest.fixture
def make_eligible(app):
    def _make(user, event, attended=True, surveyed=True):
        if attended:
            db.session.add(
                AttendanceLog(event_id=event.id, user_id=user.id, is_validated=True)
            )
        if surveyed:
            db.session.add(SurveyResponse(event_id=event.id, user_id=user.id))
        db.session.commit()

    return _make


@pytest.fixture
def login(client):
    def _login(user):
        with client.session_transaction() as sess:
            sess["user_id"] = user.id

    return _login


@pytest.fixture
def dejavu_bytes():
    path = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"
    if not os.path.exists(path):
        pytest.skip("DejaVu fonts not installed")
    with open(path, "rb") as fh:
        return fh.read()
