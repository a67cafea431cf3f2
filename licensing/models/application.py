"""
Firearms Licensing Workflow
Application domain model.

Models:
    - Application:        the licence application moving through the phases
    - ApplicationHistory: append-only transition log, one row per advance

``sections``, ``documents`` and ``data`` are JSON columns.  They are always
reassigned with a fresh object when changed so the ORM sees the mutation.
"""

from datetime import datetime, timezone

from licensing.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Application(db.Model):
    """
    Licence application.

    Business rules:
    - status is one of PHASES and only moves forward, one step per advance.
    - version starts at 0 and is bumped exactly once per successful advance.
    - history and documents are append-only; records are never deleted.
    - version is the optimistic lock: every UPDATE is issued with
      ``WHERE version = <value read>`` and a stale write raises StaleDataError.
    """

    __tablename__ = "applications"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict, comment="Free-form intake data")
    status = db.Column(db.String(50), nullable=False, index=True, comment="Current phase token")
    sections = db.Column(db.JSON, nullable=False, default=dict, comment="role -> role-contributed data")
    documents = db.Column(db.JSON, nullable=False, default=list)
    version = db.Column(db.Integer, nullable=False, default=0)

    created_by = db.Column(db.String(150), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, index=True)

    history = db.relationship(
        "ApplicationHistory",
        backref="application",
        lazy="select",
        order_by="ApplicationHistory.id",
        cascade="all, delete-orphan",
    )

    # advance() assigns the next version explicitly.
    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    def to_dict(self, include_history=True):
        d = {
            "id": self.id,
            "title": self.title,
            "data": dict(self.data or {}),
            "status": self.status,
            "sections": {role: dict(values) for role, values in (self.sections or {}).items()},
            "documents": [dict(doc) if isinstance(doc, dict) else doc for doc in (self.documents or [])],
            "version": self.version,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_history:
            d["history"] = [h.to_dict() for h in self.history]
        return d

    def __repr__(self):
        return f"<Application {self.id}: {self.status} v{self.version}>"


class ApplicationHistory(db.Model):
    """One phase transition.  ``from_phase`` equals the previous row's ``to_phase``."""

    __tablename__ = "application_history"

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    by = db.Column(db.String(150), nullable=False, comment="Actor id, falling back to name")
    role = db.Column(db.String(50), nullable=False)
    from_phase = db.Column(db.String(50), nullable=False)
    to_phase = db.Column(db.String(50), nullable=False)
    comment = db.Column(db.Text, nullable=False, default="")
    at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "by": self.by,
            "role": self.role,
            "from": self.from_phase,
            "to": self.to_phase,
            "comment": self.comment,
            "at": self.at.isoformat() if self.at else None,
        }
