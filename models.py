"""Persistent model and record shapes for the Quran tracker.

The durable medium is a single key/value table, :class:`StoreSlot`. Each row
holds one whole collection serialised as JSON text under a fixed key such as
``quran_app_teachers``. The record shapes that live inside those JSON values
are described by the ``TypedDict`` classes below:

* :class:`Teacher` – login code/password plus an embedded roster.
* :class:`Student` – a self-registered learner in the global registry.
* :class:`AttendanceRecord` – one present/absent mark taken by a teacher.
* :class:`StudentDailyRecord` – one memorisation/review log entry.

The ``TypedDict`` classes document shape only; nothing enforces them at
runtime, and restored backups are stored exactly as given.
"""

from datetime import datetime, timezone
from typing import List, TypedDict

from flask_sqlalchemy import SQLAlchemy


# Initialised with the Flask application in ``app.py`` via ``db.init_app(app)``.
# The record store can also use the table through a plain SQLAlchemy engine.
db = SQLAlchemy()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoreSlot(db.Model):
    """One named slot of the key/value medium.

    ``key`` is the prefixed slot name; ``value`` the JSON text of the whole
    collection. Rows are overwritten in full on every write.
    """

    __tablename__ = 'store_slot'

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<StoreSlot {self.key} ({len(self.value or '')} chars)>"


class RosterEntry(TypedDict):
    id: str
    name: str


class Teacher(TypedDict):
    code: str
    name: str
    password: str
    email: str
    students: List[RosterEntry]


# ``class`` is a Python keyword, so the functional syntax is required.
Student = TypedDict('Student', {
    'id': str,
    'name': str,
    'code': str,
    'password': str,
    'class': str,
    'registrationDate': str,
}, total=False)


class AttendanceRecord(TypedDict):
    id: str
    teacherCode: str
    studentName: str
    status: str  # present, absent
    notes: str
    date: str  # YYYY-MM-DD
    timestamp: str


class StudentDailyRecord(TypedDict):
    date: str
    dateDisplay: str
    newMemorizing: str
    review: str
    listening: str  # نعم, لا, جزئي
    newTarget: str
    notes: str
