"""
Power Platform Governance Assessment
Key/value storage model.

Models:
    - StorageEntry: one persisted blob per storage key (primary state,
      backup copy, or any other prefixed key written by the client).
"""

from datetime import datetime, timezone

from pp_assessment.models import db


class StorageEntry(db.Model):
    """
    Raw key/value row backing the assessment persistence port.

    ``value`` is stored verbatim; decoding and corruption checks happen in
    the persistence service, never here.
    """

    __tablename__ = "storage_entries"

    key = db.Column(db.String(200), primary_key=True)
    value = db.Column(db.Text, nullable=False, default="")
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def to_dict(self):
        return {
            "key": self.key,
            "size": len(self.value or ""),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<StorageEntry {self.key}>"
