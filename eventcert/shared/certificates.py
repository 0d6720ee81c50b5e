"""Certificate generation: eligibility, numbering, dual rendering and persistence.

``generate_certificate()`` walks one (user, event) pair through

    NOT_ELIGIBLE -> ELIGIBLE -> ALLOCATING -> RENDERING -> PERSISTING -> GENERATED

or ends in FAILED. The counter advance and the certificate row commit in the
same transaction, which is the atomicity boundary: a failure before the commit
leaves no record and no consumed number. The unique constraints on
``certificates`` make the first writer win; a losing writer gets the winner's
record back and its own artifacts are discarded.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..app import db
from ..models import AttendanceLog, Certificate, CertificateConfig, User
from .certificate_assets import AssetResolver
from .certificate_commands import CertificateData, RenderedArtifact, build_draw_commands
from .certificate_errors import (
    AllocationConflict,
    CertificateEligibilityError,
    DuplicateCertificate,
    RenderFailure,
    UploadFailure,
)
from .certificate_numbers import AllocatedNumber, NumberAllocator
from .certificate_pdf import VectorRenderer
from .certificate_png import RasterRenderer
from .certificates_layout import LayoutModel, resolve
from .eligibility import Eligibility, check_eligibility
from .names import participant_display_name
from .storage import LocalArtifactStorage, certificate_artifact_key


class GenerationState(str, enum.Enum):
    NOT_ELIGIBLE = "not_eligible"
    ELIGIBLE = "eligible"
    ALLOCATING = "allocating"
    RENDERING = "rendering"
    PERSISTING = "persisting"
    GENERATED = "generated"
    FAILED = "failed"


@dataclass
class GenerationResult:
    certificate: Optional[Certificate]
    created: bool
    state: GenerationState
    eligibility: Optional[Eligibility] = None
    warnings: tuple = ()
    transitions: List[GenerationState] = field(default_factory=list)


@dataclass(frozen=True)
class RenderedCertificate:
    vector: RenderedArtifact
    raster: RenderedArtifact
    warnings: tuple


def _existing_certificate(user_id: int, event_id: int) -> Optional[Certificate]:
    return (
        db.session.query(Certificate)
        .filter_by(user_id=user_id, event_id=event_id)
        .one_or_none()
    )


def find_certificates(number: str, event_id: Optional[int] = None) -> List[Certificate]:
    """Every certificate issued under ``number``, optionally within one event.

    Numbers are unique per event only, so events sharing a prefix can each
    hold the same number.
    """
    query = db.session.query(Certificate).filter(
        Certificate.certificate_number == number.strip()
    )
    if event_id is not None:
        query = query.filter(Certificate.event_id == event_id)
    return query.order_by(Certificate.event_id).all()


def load_layout(event_id: int) -> LayoutModel:
    config = (
        db.session.query(CertificateConfig).filter_by(event_id=event_id).one_or_none()
    )
    return resolve(config.layout if config else {})


def default_storage() -> LocalArtifactStorage:
    return LocalArtifactStorage(current_app.config.get("SITE_ROOT", "/srv"))


def default_resolver() -> AssetResolver:
    return AssetResolver(
        assets_dir=current_app.config.get("CERT_ASSETS_DIR"),
        timeout=current_app.config.get("CERT_ASSET_TIMEOUT", 10.0),
    )


def render_certificate_artifacts(
    layout: LayoutModel,
    data: CertificateData,
    resolver: AssetResolver,
    raster_width: Optional[float] = None,
) -> RenderedCertificate:
    """Render both artifacts from one layout and one asset cache.

    Needs no application context, so the preview service and the CLI can use
    it directly.
    """

    assets = resolver.prefetch(layout)
    try:
        commands = build_draw_commands(layout, data, assets)
    except Exception as exc:
        raise RenderFailure("compose", f"{exc.__class__.__name__}: {exc}") from exc
    title = f"Certificate {data.certificate_number}" if data.certificate_number else None
    vector = VectorRenderer(title=title).render(commands, layout.width, layout.height)
    raster = RasterRenderer(target_width=raster_width).render(
        commands, layout.width, layout.height
    )
    return RenderedCertificate(vector=vector, raster=raster, warnings=assets.warnings)


def _upload(storage, event_id: int, number: str, rendered: RenderedCertificate) -> tuple:
    stored: list = []
    try:
        for artifact in (rendered.vector, rendered.raster):
            key = certificate_artifact_key(event_id, number, artifact.extension)
            stored.append(storage.put(key, artifact.data, artifact.content_type))
    except Exception as exc:
        _discard(storage, stored)
        raise UploadFailure(f"artifact upload failed for {number}: {exc}") from exc
    return tuple(stored)


def _discard(storage, refs: Iterable[str]) -> None:
    for ref in refs:
        try:
            storage.discard(ref)
        except Exception:
            current_app.logger.warning("[CERT-DUP] could not discard artifact %s", ref)


def _persist(
    user,
    event,
    allocated: AllocatedNumber,
    participant_name: str,
    refs: tuple,
) -> Certificate:
    cert = Certificate(
        event_id=event.id,
        user_id=user.id,
        certificate_number=allocated.number,
        sequence=allocated.sequence,
        participant_name=participant_name,
        event_title=event.title,
        completion_date=event.start_date,
        vector_artifact_ref=refs[0],
        raster_artifact_ref=refs[1],
    )
    db.session.add(cert)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        existing = _existing_certificate(user.id, event.id)
        if existing is not None:
            raise DuplicateCertificate(existing) from exc
        raise AllocationConflict(
            f"certificate number {allocated.number} was issued concurrently"
        ) from exc
    return cert


def generate_certificate(
    user,
    event,
    *,
    storage=None,
    resolver: Optional[AssetResolver] = None,
    allocator: Optional[NumberAllocator] = None,
) -> GenerationResult:
    """Issue (or return) the certificate for ``user`` at ``event``.

    Raises :class:`CertificateEligibilityError` when the event's policy
    refuses the user, :class:`AllocationConflict` when another writer claimed
    the sequence, and :class:`RenderFailure` / :class:`UploadFailure` when an
    artifact could not be produced or stored. None of these leave a record.
    """

    logger = current_app.logger
    transitions: List[GenerationState] = []

    def enter(state: GenerationState) -> None:
        transitions.append(state)

    eligibility = check_eligibility(user, event)
    if not eligibility.eligible:
        enter(GenerationState.NOT_ELIGIBLE)
        logger.info(
            "[CERT-GATE] blocked generation: user=%s event=%s policy=%s reasons=%s",
            user.id,
            event.id,
            eligibility.policy,
            "; ".join(eligibility.reasons),
        )
        raise CertificateEligibilityError(eligibility)
    enter(GenerationState.ELIGIBLE)

    existing = _existing_certificate(user.id, event.id)
    if existing is not None:
        enter(GenerationState.GENERATED)
        logger.info(
            "[CERT-DUP] returning existing certificate user=%s event=%s number=%s",
            user.id,
            event.id,
            existing.certificate_number,
        )
        return GenerationResult(
            existing, False, GenerationState.GENERATED, eligibility, (), transitions
        )

    storage = storage or default_storage()
    resolver = resolver or default_resolver()
    allocator = allocator or NumberAllocator(db.session)
    layout = load_layout(event.id)
    stored: tuple = ()

    try:
        enter(GenerationState.ALLOCATING)
        allocated = allocator.allocate(event.id, layout.certificate_id.prefix, user.id)
        participant_name = participant_display_name(user)
        data = CertificateData(
            participant_name=participant_name,
            event_title=event.title or "",
            event_date=event.start_date,
            venue=event.venue,
            certificate_number=allocated.number,
        )

        enter(GenerationState.RENDERING)
        rendered = render_certificate_artifacts(
            layout,
            data,
            resolver,
            raster_width=current_app.config.get("CERT_RASTER_WIDTH"),
        )
        winner = _existing_certificate(user.id, event.id)
        if winner is not None:
            raise DuplicateCertificate(winner)
        stored = _upload(storage, event.id, allocated.number, rendered)

        enter(GenerationState.PERSISTING)
        cert = _persist(user, event, allocated, participant_name, stored)
    except DuplicateCertificate as dup:
        db.session.rollback()
        _discard(storage, stored)
        winner = dup.existing or _existing_certificate(user.id, event.id)
        enter(GenerationState.GENERATED)
        logger.info(
            "[CERT-DUP] lost race user=%s event=%s winner=%s",
            user.id,
            event.id,
            winner.certificate_number if winner else None,
        )
        return GenerationResult(
            winner, False, GenerationState.GENERATED, eligibility, (), transitions
        )
    except AllocationConflict:
        db.session.rollback()
        _discard(storage, stored)
        winner = _existing_certificate(user.id, event.id)
        if winner is not None:
            enter(GenerationState.GENERATED)
            logger.info(
                "[CERT-DUP] conflict resolved by existing certificate user=%s event=%s",
                user.id,
                event.id,
            )
            return GenerationResult(
                winner, False, GenerationState.GENERATED, eligibility, (), transitions
            )
        enter(GenerationState.FAILED)
        logger.warning("[CERT-NUM] allocation conflict user=%s event=%s", user.id, event.id)
        raise
    except (RenderFailure, UploadFailure):
        db.session.rollback()
        enter(GenerationState.FAILED)
        logger.exception("[CERT-FAIL] user=%s event=%s", user.id, event.id)
        raise

    enter(GenerationState.GENERATED)
    logger.info(
        "[CERT] user=%s event=%s number=%s pdf=%s png=%s",
        user.id,
        event.id,
        cert.certificate_number,
        cert.vector_artifact_ref,
        cert.raster_artifact_ref,
    )
    return GenerationResult(
        cert, True, GenerationState.GENERATED, eligibility, rendered.warnings, transitions
    )


def generate_event_certificates(event, user_ids: Optional[Iterable[int]] = None):
    """Generate certificates for every attendee of ``event``.

    Returns ``(created, skipped, failed)`` counts. Ineligible attendees are
    skipped; any other failure is logged and counted.
    """

    query = db.session.query(AttendanceLog.user_id).filter(
        AttendanceLog.event_id == event.id
    )
    if user_ids is not None:
        query = query.filter(AttendanceLog.user_id.in_(list(user_ids)))
    created = skipped = failed = 0
    for (user_id,) in query.order_by(AttendanceLog.user_id).all():
        user = db.session.get(User, user_id)
        if user is None:
            continue
        try:
            result = generate_certificate(user, event)
        except CertificateEligibilityError:
            skipped += 1
            continue
        except Exception:
            db.session.rollback()
            current_app.logger.exception(
                "[CERT-FAIL] user=%s event=%s", user_id, event.id
            )
            failed += 1
            continue
        if result.created:
            created += 1
    return created, skipped, failed
