from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request

from .certificates import login_required
from ..app import db
from ..models import Event
from ..services.certificate_configs import (
    CertificateConfigPermissionError,
    can_edit_config,
    get_certificate_config,
    get_layout,
    issued_count,
    save_certificate_config,
)
from ..services.certificates_preview import generate_preview
from ..shared.certificate_errors import RenderFailure
from ..shared.certificates_layout import serialize

bp = Blueprint("certificate_configs", __name__, url_prefix="/events/<int:event_id>")


def _event_or_404(event_id: int) -> Event:
    event = db.session.get(Event, event_id)
    if not event:
        abort(404)
    return event


@bp.get("/certificate-config")
@login_required
def show(event_id: int, current_user):
    event = _event_or_404(event_id)
    config = get_certificate_config(event.id)
    return jsonify(
        {
            "event_id": event.id,
            "saved": config is not None,
            "config": serialize(get_layout(event.id)),
            "issued": issued_count(event.id),
        }
    )


@bp.put("/certificate-config")
@login_required
def update(event_id: int, current_user):
    event = _event_or_404(event_id)
    raw = request.get_json(silent=True)
    if not isinstance(raw, dict):
        return jsonify({"error": "Expected a JSON object."}), 400
    try:
        config = save_certificate_config(event, raw, current_user)
    except CertificateConfigPermissionError as exc:
        return jsonify({"error": str(exc)}), 403
    return jsonify({"event_id": event.id, "saved": True, "config": config.layout})


@bp.post("/certificate-config/preview")
@login_required
def preview(event_id: int, current_user):
    event = _event_or_404(event_id)
    if not can_edit_config(current_user, event):
        abort(403)
    raw = request.get_json(silent=True)
    if raw is None:
        config = get_certificate_config(event.id)
        raw = config.layout if config else {}
    try:
        result = generate_preview(raw, event)
    except RenderFailure as exc:
        current_app.logger.warning("[CERT-FAIL] preview event=%s: %s", event.id, exc)
        return jsonify({"error": "The preview could not be rendered."}), 502
    return jsonify(
        {
            "image": f"data:image/png;base64,{result.image_base64}",
            "warnings": list(result.warnings),
            "width": result.width,
            "height": result.height,
        }
    )
