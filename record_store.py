"""Record store: the system of record for teachers, students, attendance and logs.

Five named slots live in a durable key/value medium, each holding one JSON
value:

* ``teachers`` – mapping of teacher code to teacher (seeded on first read).
* ``students`` – list of registered students.
* ``attendance`` – append-only list of attendance records.
* ``student_logs`` – mapping of student code to its append-only log list.
* ``admin_pwd`` – the admin password (``admin2025`` until changed).

Every mutation reads the whole collection, applies one change and writes the
whole collection back, so concurrent writers race at collection granularity
and the last writer wins. The store performs no field validation and no
uniqueness checks; :mod:`services` owns those rules.

Malformed stored values never raise. :func:`decode_or_default` turns them into
the slot's default and logs a warning; the bad value is overwritten by the
next write to that slot.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Union

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app_logging import DBTimer, get_logger
from db_utils import retry_with_backoff
from models import AttendanceRecord, Student, StoreSlot, StudentDailyRecord, Teacher, db
from seed import SEED_TEACHERS

DEFAULT_ADMIN_PASSWORD = 'admin2025'
DEFAULT_KEY_PREFIX = 'quran_app_'

TEACHERS = 'teachers'
STUDENTS = 'students'
ATTENDANCE = 'attendance'
STUDENT_LOGS = 'student_logs'
ADMIN_PWD = 'admin_pwd'

# Top-level keys of the export/backup document. ``studentLogs`` differs from
# the slot name on purpose; existing backup files use it.
EXPORT_KEYS = {
    'teachers': TEACHERS,
    'students': STUDENTS,
    'attendance': ATTENDANCE,
    'studentLogs': STUDENT_LOGS,
}

_logger = get_logger('app.store')


class SlotBackend(Protocol):
    """Minimal key/value medium: whole-value reads and writes of text."""

    def read(self, key: str) -> Optional[str]:
        ...

    def write(self, key: str, value: str) -> None:
        ...


class MemoryBackend:
    """Dictionary-backed medium, used by tests and throwaway stores."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self.values: Dict[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def write(self, key: str, value: str) -> None:
        self.values[key] = value


class SQLSlotBackend:
    """Key/value medium stored in the ``store_slot`` table.

    Each read and write runs in its own short session, so every store
    operation sees the latest committed value of a slot.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def create_schema(self) -> None:
        db.metadata.create_all(self.engine, tables=[StoreSlot.__table__])

    def read(self, key: str) -> Optional[str]:
        with DBTimer(), self._session_factory() as session:
            slot = session.get(StoreSlot, key)
            return slot.value if slot is not None else None

    def write(self, key: str, value: str) -> None:
        with DBTimer(), self._session_factory.begin() as session:
            slot = session.get(StoreSlot, key)
            if slot is None:
                session.add(StoreSlot(key=key, value=value))
            else:
                slot.value = value


def decode_or_default(raw: Optional[str], default: Callable[[], Any], expected: type, slot: str) -> Any:
    """Decode a stored JSON value, falling back to ``default()``.

    Absent and empty values fall back silently. Unparseable JSON and JSON of
    the wrong top-level type fall back with a warning; ``default`` is a
    factory so callers always get a fresh object they are free to mutate.
    """
    if not raw:
        return default()
    try:
        value = json.loads(raw)
    except ValueError as exc:
        _logger.warning('discarding unparseable stored value', extra={'slot': slot, 'error': str(exc)})
        return default()
    if not isinstance(value, expected):
        _logger.warning(
            'discarding stored value of unexpected type',
            extra={'slot': slot, 'error_type': type(value).__name__},
        )
        return default()
    return value


class RecordStore:
    """Synchronous, single-writer access to the tracker's collections."""

    def __init__(
        self,
        backend: SlotBackend,
        seed_teachers: Optional[Mapping[str, Teacher]] = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        default_admin_password: str = DEFAULT_ADMIN_PASSWORD,
    ) -> None:
        self.backend = backend
        self.seed_teachers: Dict[str, Teacher] = copy.deepcopy(dict(seed_teachers or {}))
        self.key_prefix = key_prefix
        self.default_admin_password = default_admin_password

    # -- slot plumbing -----------------------------------------------------

    def _key(self, slot: str) -> str:
        return f'{self.key_prefix}{slot}'

    def _get(self, slot: str, default: Callable[[], Any], expected: type) -> Any:
        return decode_or_default(self.backend.read(self._key(slot)), default, expected, slot)

    def _set(self, slot: str, value: Any) -> None:
        self.backend.write(self._key(slot), json.dumps(value, ensure_ascii=False))

    def _seed(self) -> Dict[str, Teacher]:
        return copy.deepcopy(self.seed_teachers)

    def _all_logs(self) -> Dict[str, List[StudentDailyRecord]]:
        return self._get(STUDENT_LOGS, dict, dict)

    # -- admin -------------------------------------------------------------

    def get_admin_password(self) -> str:
        return self._get(ADMIN_PWD, lambda: self.default_admin_password, str)

    def set_admin_password(self, password: str) -> None:
        """Overwrite the admin password; length and confirmation are the caller's job."""
        self._set(ADMIN_PWD, password)
        _logger.info('admin password changed')

    # -- teachers ----------------------------------------------------------

    def get_teachers(self) -> Dict[str, Teacher]:
        return self._get(TEACHERS, self._seed, dict)

    def save_teacher(self, teacher: Teacher) -> None:
        """Insert or replace the teacher stored under ``teacher['code']``."""
        teachers = self.get_teachers()
        teachers[teacher['code']] = teacher
        self._set(TEACHERS, teachers)
        _logger.info('teacher saved', extra={'teacher_code': teacher['code'], 'total': len(teachers)})

    def delete_teacher(self, code: str) -> None:
        # Attendance taken by this teacher stays in the history.
        teachers = self.get_teachers()
        teachers.pop(code, None)
        self._set(TEACHERS, teachers)
        _logger.info('teacher deleted', extra={'teacher_code': code, 'total': len(teachers)})

    # -- students ----------------------------------------------------------

    def get_students(self) -> List[Student]:
        return self._get(STUDENTS, list, list)

    def register_student(self, student: Student) -> None:
        """Append ``student`` to the registry without any duplicate check."""
        students = self.get_students()
        students.append(student)
        self._set(STUDENTS, students)
        _logger.info('student registered', extra={'student_id': student.get('id'), 'total': len(students)})

    def update_student(self, student: Student) -> None:
        """Replace the first entry matching by ``id`` or non-empty ``code``.

        The match runs in a single pass, so an earlier entry sharing only the
        code wins over a later entry with the same id. Two registered students
        may share a code; only the first one can then be updated. When
        nothing matches the call does nothing.
        """
        students = self.get_students()
        for index, existing in enumerate(students):
            if not isinstance(existing, Mapping):
                continue
            same_id = existing.get('id') == student.get('id')
            same_code = bool(existing.get('code')) and existing.get('code') == student.get('code')
            if same_id or same_code:
                students[index] = student
                self._set(STUDENTS, students)
                _logger.info('student updated', extra={'student_id': student.get('id'), 'position': index})
                return
        _logger.info('student update matched nothing', extra={'student_id': student.get('id')})

    def delete_student(self, student_id: str) -> None:
        students = [
            s for s in self.get_students()
            if not (isinstance(s, Mapping) and s.get('id') == student_id)
        ]
        self._set(STUDENTS, students)
        _logger.info('student deleted', extra={'student_id': student_id, 'total': len(students)})

    # -- attendance --------------------------------------------------------

    def get_attendance(self) -> List[AttendanceRecord]:
        return self._get(ATTENDANCE, list, list)

    def save_attendance_batch(self, records: List[AttendanceRecord]) -> None:
        """Append ``records`` in order to the end of the history."""
        history = self.get_attendance()
        history.extend(records)
        self._set(ATTENDANCE, history)
        _logger.info('attendance batch saved', extra={'added': len(records), 'total': len(history)})

    # -- student logs ------------------------------------------------------

    def get_student_logs(self, code: str) -> List[StudentDailyRecord]:
        logs = self._all_logs().get(code)
        return logs if isinstance(logs, list) else []

    def save_student_log(self, code: str, record: StudentDailyRecord) -> None:
        all_logs = self._all_logs()
        logs = all_logs.get(code)
        if not isinstance(logs, list):
            logs = all_logs[code] = []
        logs.append(record)
        self._set(STUDENT_LOGS, all_logs)
        _logger.info('student log saved', extra={'student_code': code, 'total': len(logs)})

    # -- backup ------------------------------------------------------------

    def export_data(self) -> Dict[str, Any]:
        """Return all four collections under their backup-file keys."""
        return {
            'teachers': self.get_teachers(),
            'students': self.get_students(),
            'attendance': self.get_attendance(),
            'studentLogs': self._all_logs(),
        }

    def import_data(self, data: Any) -> None:
        """Overwrite every collection present in ``data``; leave the rest alone.

        This is a destructive restore without schema validation. Keys that
        are missing or ``None`` are skipped; a non-mapping payload changes
        nothing.
        """
        if not isinstance(data, Mapping):
            _logger.warning('ignoring import payload that is not an object',
                            extra={'error_type': type(data).__name__})
            return
        restored = []
        for export_key, slot in EXPORT_KEYS.items():
            if data.get(export_key) is not None:
                self._set(slot, data[export_key])
                restored.append(export_key)
        _logger.info('data imported', extra={'restored': restored})


def open_store(
    target: Union[str, Engine],
    seed_teachers: Optional[Mapping[str, Teacher]] = SEED_TEACHERS,
    key_prefix: str = DEFAULT_KEY_PREFIX,
) -> RecordStore:
    """Open a SQL-backed store.

    ``target`` is a SQLAlchemy URL (anything containing ``://``), a plain
    filesystem path to a SQLite file, or an existing engine. The slot table is
    created if it does not exist yet.
    """
    if isinstance(target, Engine):
        engine = target
    elif '://' in target:
        engine = create_engine(target)
    else:
        engine = create_engine(f'sqlite:///{target}')
    backend = SQLSlotBackend(engine)
    retry_with_backoff(backend.create_schema)
    return RecordStore(backend, seed_teachers=seed_teachers, key_prefix=key_prefix)


__all__ = [
    'DEFAULT_ADMIN_PASSWORD',
    'EXPORT_KEYS',
    'MemoryBackend',
    'RecordStore',
    'SQLSlotBackend',
    'SlotBackend',
    'decode_or_default',
    'open_store',
]
