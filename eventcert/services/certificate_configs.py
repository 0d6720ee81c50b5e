"""Explicit load/save of per-event certificate designs."""

from __future__ import annotations

from typing import Any, Optional

from flask import current_app

from ..app import db
from ..models import Certificate, CertificateConfig
from ..shared.certificates_layout import LayoutModel, resolve, serialize


class CertificateConfigPermissionError(PermissionError):
    """Raised when a non-organizer tries to save a certificate design."""


def get_certificate_config(event_id: int) -> Optional[CertificateConfig]:
    return db.session.query(CertificateConfig).filter_by(event_id=event_id).one_or_none()


def get_layout(event_id: int) -> LayoutModel:
    config = get_certificate_config(event_id)
    return resolve(config.layout if config else {})


def can_edit_config(actor, event) -> bool:
    if actor is None:
        return False
    if getattr(actor, "is_admin", False):
        return True
    return bool(getattr(actor, "is_organizer", False)) and (
        event.organizer_id is None or event.organizer_id == actor.id
    )


def issued_count(event_id: int) -> int:
    return db.session.query(Certificate.id).filter_by(event_id=event_id).count()


def save_certificate_config(event, raw: Any, actor) -> CertificateConfig:
    """Resolve ``raw`` and store the fully populated layout for ``event``.

    Issued certificates keep their artifacts; only future generations use
    the new design.
    """

    if not can_edit_config(actor, event):
        raise CertificateConfigPermissionError(
            "Only the event organizer or an admin can change the certificate design."
        )
    layout = resolve(raw)
    config = get_certificate_config(event.id)
    if config is None:
        config = CertificateConfig(event_id=event.id)
        db.session.add(config)
    config.layout = serialize(layout)
    config.updated_by = actor.id
    db.session.commit()
    issued = issued_count(event.id)
    current_app.logger.info(
        "[CERT] design saved event=%s by=%s issued=%s", event.id, actor.id, issued
    )
    return config
