from eventcert.app import create_app, db
import json
import os

from flask_migrate import Migrate
from flask.cli import FlaskGroup
import click
from flask import current_app
from PyPDF2 import PdfReader
from eventcert.services.certificates_preview import sample_data
from eventcert.shared.certificate_assets import AssetResolver
from eventcert.shared.certificate_errors import CertificateEligibilityError
from eventcert.shared.certificates import (
    generate_certificate,
    find_certificates,
    generate_event_certificates,
    render_certificate_artifacts,
)
from eventcert.shared.certificates_layout import resolve
from eventcert.shared.storage import LocalArtifactStorage, ensure_dir, write_atomic
from eventcert.models import Event, User


migrate = Migrate()


def create_eventcert_app():
    app = create_app()
    migrate.init_app(app, db)
    return app


cli = FlaskGroup(create_app=create_eventcert_app)


@cli.command("gen_cert")
@click.option("--event", "event_id", required=True, type=int)
@click.option("--user", "user_ref", required=True, help="User id or email")
def gen_cert(event_id: int, user_ref: str):
    """Generate a certificate for one participant."""
    event = db.session.get(Event, event_id)
    if user_ref.isdigit():
        user = db.session.get(User, int(user_ref))
    else:
        user = db.session.query(User).filter(User.email == user_ref.lower()).one_or_none()
    if not event or not user:
        click.echo("Not found", err=True)
        return
    try:
        result = generate_certificate(user, event)
    except CertificateEligibilityError as exc:
        click.echo(f"Not eligible: {exc.eligibility.message}", err=True)
        return
    state = "created" if result.created else "existing"
    click.echo(f"{result.certificate.certificate_number} ({state})")
    for warning in result.warnings:
        click.echo(f"warning: {warning}", err=True)


@cli.command("gen_event_certs")
@click.option("--event", "event_id", required=True, type=int)
def gen_event_certs(event_id: int):
    """Generate certificates for every eligible attendee of an event."""
    event = db.session.get(Event, event_id)
    if not event:
        click.echo("Not found", err=True)
        return
    created, skipped, failed = generate_event_certificates(event)
    click.echo(f"created={created} skipped={skipped} failed={failed}")


@cli.command("render_sample")
@click.option("--out", "out_dir", required=True, type=click.Path(file_okay=False))
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False))
def render_sample(out_dir: str, config_path: str | None):
    """Render a sample PDF and PNG for a design file."""
    raw = {}
    if config_path:
        with open(config_path, "r", encoding="utf-8") as fh:
            raw = json.load(fh)
    layout = resolve(raw)
    data = sample_data(layout)
    resolver = AssetResolver(
        assets_dir=current_app.config.get("CERT_ASSETS_DIR"),
        timeout=current_app.config.get("CERT_ASSET_TIMEOUT", 10.0),
    )
    rendered = render_certificate_artifacts(
        layout, data, resolver, raster_width=current_app.config.get("CERT_RASTER_WIDTH")
    )
    ensure_dir(out_dir)
    for artifact in (rendered.vector, rendered.raster):
        path = os.path.join(out_dir, f"{data.certificate_number}.{artifact.extension}")
        write_atomic(path, artifact.data)
        click.echo(path)
    for warning in rendered.warnings:
        click.echo(f"warning: {warning}", err=True)


@cli.command("inspect_cert")
@click.option("--number", "number", required=True)
@click.option("--event", "event_id", type=int, help="Event id when the number is shared")
def inspect_cert(number: str, event_id: int | None):
    """Print page size and text of a stored certificate PDF."""
    matches = find_certificates(number, event_id)
    if not matches:
        click.echo("Not found", err=True)
        return
    if len(matches) > 1:
        events = ", ".join(str(cert.event_id) for cert in matches)
        click.echo(f"{number} was issued by events {events}; pass --event", err=True)
        return
    cert = matches[0]
    storage = LocalArtifactStorage(current_app.config.get("SITE_ROOT", "/srv"))
    if not storage.exists(cert.vector_artifact_ref):
        click.echo(f"Missing artifact {cert.vector_artifact_ref}", err=True)
        return
    reader = PdfReader(storage.path_for(cert.vector_artifact_ref))
    page = reader.pages[0]
    click.echo(
        f"{cert.certificate_number}: {float(page.mediabox.width):.0f}x"
        f"{float(page.mediabox.height):.0f} pages={len(reader.pages)}"
    )
    click.echo(page.extract_text() or "")


if __name__ == "__main__":
    cli()
