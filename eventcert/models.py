from __future__ import annotations

from sqlalchemy.orm import validates

from .app import db

ROLE_PARTICIPANT = "participant"
ROLE_ORGANIZER = "organizer"
ROLE_ADMIN = "admin"
ROLES = (ROLE_PARTICIPANT, ROLE_ORGANIZER, ROLE_ADMIN)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    prefix = db.Column(db.String(32))
    first_name = db.Column(db.String(120))
    middle_initial = db.Column(db.String(8))
    last_name = db.Column(db.String(120))
    suffix = db.Column(db.String(32))
    role = db.Column(db.String(16), nullable=False, default=ROLE_PARTICIPANT)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.Index("ix_users_email_lower", db.func.lower(email), unique=True),
    )

    @validates("email")
    def lower_email(self, key, value):  # pragma: no cover - simple normalizer
        return value.lower()

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_organizer(self) -> bool:
        return self.role in (ROLE_ORGANIZER, ROLE_ADMIN)


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    start_date = db.Column(db.Date)
    venue = db.Column(db.String(255))
    organizer_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    requires_attendance = db.Column(db.Boolean, nullable=False, default=True)
    requires_survey = db.Column(db.Boolean, nullable=False, default=True)
    certificate_policy = db.Column(
        db.String(32), nullable=False, default="attendance_and_survey"
    )
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    organizer = db.relationship("User")
    certificate_config = db.relationship(
        "CertificateConfig", back_populates="event", uselist=False
    )


class AttendanceLog(db.Model):
    __tablename__ = "attendance_logs"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    is_validated = db.Column(db.Boolean, nullable=False, default=False)
    checked_in_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.UniqueConstraint("event_id", "user_id", name="uix_attendance_event_user"),
    )


class SurveyResponse(db.Model):
    __tablename__ = "survey_responses"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    submitted_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.UniqueConstraint("event_id", "user_id", name="uix_survey_event_user"),
    )


class CertificateConfig(db.Model):
    __tablename__ = "certificate_configs"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer,
        db.ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    layout = db.Column(db.JSON, nullable=False, default=dict)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )

    event = db.relationship("Event", back_populates="certificate_config")


class CertificateCounter(db.Model):
    __tablename__ = "certificate_counters"

    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), primary_key=True
    )
    last_sequence = db.Column(db.Integer, nullable=False, default=0)


class Certificate(db.Model):
    __tablename__ = "certificates"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    certificate_number = db.Column(db.String(120), nullable=False)
    sequence = db.Column(db.Integer, nullable=False)
    participant_name = db.Column(db.String(255), nullable=False)
    event_title = db.Column(db.String(255), nullable=False)
    completion_date = db.Column(db.Date)
    vector_artifact_ref = db.Column(db.String(512), nullable=False)
    raster_artifact_ref = db.Column(db.String(512), nullable=False)
    generated_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.UniqueConstraint("user_id", "event_id", name="uix_certificate_user_event"),
        db.UniqueConstraint(
            "event_id", "certificate_number", name="uix_certificate_event_number"
        ),
        db.UniqueConstraint("event_id", "sequence", name="uix_certificate_event_sequence"),
    )

    event = db.relationship("Event")
    user = db.relationship("User")

    def public_fields(self) -> dict:
        return {
            "event_id": self.event_id,
            "certificate_number": self.certificate_number,
            "participant_name": self.participant_name,
            "event_title": self.event_title,
            "completion_date": (
                self.completion_date.isoformat() if self.completion_date else None
            ),
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }

    def to_dict(self) -> dict:
        data = self.public_fields()
        data.update(
            {
                "id": self.id,
                "event_id": self.event_id,
                "user_id": self.user_id,
                "vector_artifact_ref": self.vector_artifact_ref,
                "raster_artifact_ref": self.raster_artifact_ref,
            }
        )
        return data
