from __future__ import annotations

from functools import wraps

from flask import Blueprint, abort, jsonify, request, send_file
from flask import session as flask_session

from ..app import db
from ..models import Certificate, Event, User
from ..shared.certificate_errors import (
    AllocationConflict,
    CertificateEligibilityError,
    RenderFailure,
    UploadFailure,
)
from ..shared.certificates import default_storage, find_certificates, generate_certificate

bp = Blueprint("certificates", __name__)

_ARTIFACT_FORMATS = {
    "pdf": ("vector_artifact_ref", "application/pdf"),
    "png": ("raster_artifact_ref", "image/png"),
}


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user_id = flask_session.get("user_id")
        user = db.session.get(User, user_id) if user_id else None
        if not user:
            return jsonify({"error": "Login required."}), 401
        return fn(*args, **kwargs, current_user=user)

    return wrapper


@bp.post("/events/<int:event_id>/certificate")
@login_required
def generate(event_id: int, current_user):
    event = db.session.get(Event, event_id)
    if not event:
        abort(404)
    try:
        result = generate_certificate(current_user, event)
    except CertificateEligibilityError as exc:
        return (
            jsonify({"error": exc.eligibility.message, "eligibility": exc.eligibility.to_dict()}),
            403,
        )
    except AllocationConflict:
        return (
            jsonify({"error": "Another request is issuing this certificate. Please retry."}),
            409,
        )
    except (RenderFailure, UploadFailure):
        return jsonify({"error": "The certificate could not be produced. Please retry."}), 502
    payload = {
        "certificate": result.certificate.to_dict(),
        "created": result.created,
        "warnings": list(result.warnings),
    }
    return jsonify(payload), 201 if result.created else 200


@bp.get("/certificates/verify/<path:number>")
def verify(number: str):
    event_id = request.args.get("event", type=int)
    matches = find_certificates(number, event_id)
    if not matches:
        return jsonify({"valid": False, "certificate_number": number}), 404
    if len(matches) > 1:
        return (
            jsonify(
                {
                    "ambiguous": True,
                    "certificate_number": number,
                    "matches": [cert.public_fields() for cert in matches],
                }
            ),
            409,
        )
    return jsonify({"valid": True, **matches[0].public_fields()})


@bp.get("/certificates/mine")
@login_required
def mine(current_user):
    certs = (
        db.session.query(Certificate)
        .filter(Certificate.user_id == current_user.id)
        .order_by(Certificate.generated_at.desc(), Certificate.id.desc())
        .all()
    )
    return jsonify({"certificates": [cert.to_dict() for cert in certs]})


@bp.get("/certificates/<int:cert_id>/<fmt>")
@login_required
def download(cert_id: int, fmt: str, current_user):
    artifact_format = _ARTIFACT_FORMATS.get(fmt.lower())
    if artifact_format is None:
        abort(404)
    cert = db.session.get(Certificate, cert_id)
    if not cert:
        abort(404)
    event = db.session.get(Event, cert.event_id)
    is_owner = cert.user_id == current_user.id
    is_event_staff = current_user.is_admin or (
        current_user.is_organizer and event is not None and event.organizer_id == current_user.id
    )
    if not (is_owner or is_event_staff):
        abort(403)
    attr, mimetype = artifact_format
    storage = default_storage()
    ref = getattr(cert, attr)
    if not storage.exists(ref):
        abort(404)
    return send_file(
        storage.path_for(ref),
        mimetype=mimetype,
        as_attachment=True,
        download_name=f"{cert.certificate_number}.{fmt.lower()}",
    )
