"""Caller-side rules on top of the record store.

The store persists whatever it is given. Required fields, password rules,
duplicate codes and roster bookkeeping are checked here, before anything is
written. Failures raise :class:`DomainError` subclasses which the HTTP layer
turns into problem-details responses.

Login is a plain comparison against the stored passwords.
"""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app_logging import get_logger
from models import AttendanceRecord, Student, StudentDailyRecord, Teacher
from record_store import RecordStore

NEW_STUDENT_CLASS = 'جديد'
STATUSES = ('present', 'absent')
DAILY_LOG_REQUIRED = ('newMemorizing', 'review', 'listening', 'newTarget')

_ARABIC_DIGITS = str.maketrans('0123456789', '٠١٢٣٤٥٦٧٨٩')
_RLM = '\u200f'

_logger = get_logger('app.services')


class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates a rule."""


class AuthenticationError(DomainError):
    """Raised when login credentials are invalid."""


class NotFoundError(DomainError):
    """Raised when a referenced teacher or student does not exist."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _utcnow(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    """``2025-01-31T08:15:00.000Z`` style UTC timestamp."""
    return moment.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def arabic_date_display(moment: datetime) -> str:
    """Render a date the way Egyptian Arabic locales do, e.g. ``١٨\u200f/١٠\u200f/٢٠٢٦``."""
    text = f'{moment.day}{_RLM}/{moment.month}{_RLM}/{moment.year}'
    return text.translate(_ARABIC_DIGITS)


def require_min_length(value: Optional[str], min_len: int) -> str:
    if not value or len(value) < min_len:
        raise ValidationError(f'كلمة السر يجب أن تكون {min_len} أحرف على الأقل')
    return value


# ---------------------------------------------------------------------------
# Authentication and accounts
# ---------------------------------------------------------------------------

def _registered(store: RecordStore) -> List[Student]:
    """Registry entries that are objects; restored backups may hold anything."""
    return [s for s in store.get_students() if isinstance(s, Mapping)]


def login_admin(store: RecordStore, password: str) -> None:
    if password != store.get_admin_password():
        _logger.info('login failed', extra={'role': 'admin'})
        raise AuthenticationError('كلمة السر غير صحيحة')


def login_teacher(store: RecordStore, code: str, password: str) -> Teacher:
    teacher = store.get_teachers().get(code)
    if not teacher or teacher.get('password') != password:
        _logger.info('login failed', extra={'role': 'teacher', 'login_code': code})
        raise AuthenticationError('الكود أو كلمة السر خطأ')
    return teacher


def login_student(store: RecordStore, code: str, password: str) -> Student:
    """Return the first registered student with this code and password."""
    for student in _registered(store):
        if student.get('code') == code and student.get('password') == password:
            return student
    _logger.info('login failed', extra={'role': 'student', 'login_code': code})
    raise AuthenticationError('بيانات الدخول غير صحيحة')


def find_student_by_code(store: RecordStore, code: str) -> Student:
    for student in _registered(store):
        if code and student.get('code') == code:
            return student
    raise NotFoundError('الطالب غير موجود')


def register_student(
    store: RecordStore,
    name: str,
    code: str,
    password: str,
    confirm_password: str,
    now: Optional[datetime] = None,
) -> Student:
    """Self-service registration with the duplicate-code check the store lacks."""
    if not name or not code or not password:
        raise ValidationError('أكمل البيانات')
    if password != confirm_password:
        raise ValidationError('كلمات السر غير متطابقة')
    if any(s.get('code') == code for s in _registered(store)):
        raise ValidationError('الكود مستخدم من قبل')

    moment = _utcnow(now)
    student: Student = {
        'id': str(int(moment.timestamp() * 1000)),
        'name': name,
        'code': code,
        'password': password,
        'class': NEW_STUDENT_CLASS,
        'registrationDate': iso_timestamp(moment),
    }
    store.register_student(student)
    return student


def change_admin_password(
    store: RecordStore, current: str, new: str, confirm: str, min_length: int = 4
) -> None:
    if current != store.get_admin_password():
        raise AuthenticationError('كلمة السر الحالية غير صحيحة')
    if len(new or '') < min_length:
        raise ValidationError('كلمة السر الجديدة قصيرة جداً')
    if new != confirm:
        raise ValidationError('كلمات السر غير متطابقة')
    store.set_admin_password(new)


def change_teacher_password(store: RecordStore, code: str, new: str, min_length: int = 4) -> Teacher:
    require_min_length(new, min_length)
    teacher = get_teacher(store, code)
    updated = {**teacher, 'password': new}
    store.save_teacher(updated)
    return updated


def change_student_password(store: RecordStore, student: Student, new: str, min_length: int = 4) -> Student:
    require_min_length(new, min_length)
    updated = {**student, 'password': new}
    store.update_student(updated)
    return updated


# ---------------------------------------------------------------------------
# Teachers and rosters
# ---------------------------------------------------------------------------

def get_teacher(store: RecordStore, code: str) -> Teacher:
    teacher = store.get_teachers().get(code)
    if teacher is None:
        raise NotFoundError('المعلم غير موجود')
    return teacher


def add_teacher(store: RecordStore, name: str, code: str, password: str = '', email: str = '') -> Teacher:
    """Create a teacher with an empty roster; an existing code is overwritten."""
    if not name or not code:
        raise ValidationError('أكمل البيانات')
    teacher: Teacher = {
        'name': name,
        'code': code,
        'password': password or '',
        'email': email or '',
        'students': [],
    }
    store.save_teacher(teacher)
    return teacher


def add_roster_student(store: RecordStore, teacher_code: str, student_id: str, name: str) -> Teacher:
    if not name or not student_id:
        raise ValidationError('البيانات ناقصة')
    teacher = get_teacher(store, teacher_code)
    roster = list(teacher.get('students') or [])
    if any(entry.get('id') == student_id for entry in roster):
        raise ValidationError('رقم الهوية موجود مسبقاً')
    roster.append({'id': student_id, 'name': name})
    updated = {**teacher, 'students': roster}
    store.save_teacher(updated)
    return updated


def remove_roster_student(store: RecordStore, teacher_code: str, student_id: str) -> Teacher:
    teacher = get_teacher(store, teacher_code)
    roster = [entry for entry in teacher.get('students') or [] if entry.get('id') != student_id]
    updated = {**teacher, 'students': roster}
    store.save_teacher(updated)
    return updated


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------

def take_attendance(
    store: RecordStore,
    teacher_code: str,
    marks: Mapping[str, Mapping[str, Any]],
    now: Optional[datetime] = None,
) -> List[AttendanceRecord]:
    """Record one attendance session for a teacher.

    ``marks`` maps a student name to ``{"status": ..., "notes": ...}``.
    Students without a status are skipped; at least one mark is required.
    """
    teacher = get_teacher(store, teacher_code)
    moment = _utcnow(now)
    stamp = iso_timestamp(moment)
    millis = int(moment.timestamp() * 1000)

    records: List[AttendanceRecord] = []
    for name, mark in marks.items():
        if mark is None:
            continue
        if not isinstance(mark, Mapping):
            raise ValidationError(f'بيانات الحضور غير صالحة: {name}')
        status = mark.get('status')
        if status is None:
            continue
        if status not in STATUSES:
            raise ValidationError(f'حالة غير معروفة: {status}')
        records.append({
            'id': f'{millis}-{random.random()}',
            'teacherCode': teacher['code'],
            'studentName': name,
            'status': status,
            'notes': mark.get('notes') or '',
            'date': stamp.split('T')[0],
            'timestamp': stamp,
        })

    if not records:
        raise ValidationError('الرجاء تحديد حالة الحضور')
    store.save_attendance_batch(records)
    return records


def filter_attendance(
    records: Iterable[AttendanceRecord],
    date: Optional[str] = None,
    teacher_code: Optional[str] = None,
) -> List[AttendanceRecord]:
    """Keep records matching ``date`` and ``teacher_code``; empty filters match all."""
    return [
        r for r in records
        if (not date or r.get('date') == date)
        and (not teacher_code or r.get('teacherCode') == teacher_code)
    ]


def attendance_stats(records: Iterable[AttendanceRecord]) -> Dict[str, int]:
    records = list(records)
    return {
        'total': len(records),
        'present': sum(1 for r in records if r.get('status') == 'present'),
        'absent': sum(1 for r in records if r.get('status') == 'absent'),
    }


# ---------------------------------------------------------------------------
# Daily memorisation logs
# ---------------------------------------------------------------------------

def submit_daily_log(
    store: RecordStore,
    student: Student,
    form: Mapping[str, Any],
    now: Optional[datetime] = None,
) -> StudentDailyRecord:
    if any(not form.get(field) for field in DAILY_LOG_REQUIRED):
        raise ValidationError('الرجاء إكمال جميع الحقول المطلوبة (الحفظ، المراجعة، التسميع، الهدف)')
    code = student.get('code')
    if not code:
        raise ValidationError('كود الطالب غير موجود')

    moment = _utcnow(now)
    record: StudentDailyRecord = {
        'date': iso_timestamp(moment),
        'dateDisplay': arabic_date_display(moment),
        'newMemorizing': form['newMemorizing'],
        'review': form['review'],
        'listening': form['listening'],
        'newTarget': form['newTarget'],
        'notes': form.get('notes') or '',
    }
    store.save_student_log(code, record)
    return record


__all__ = [
    'AuthenticationError',
    'DomainError',
    'NotFoundError',
    'ValidationError',
    'add_roster_student',
    'add_teacher',
    'arabic_date_display',
    'attendance_stats',
    'change_admin_password',
    'change_student_password',
    'change_teacher_password',
    'filter_attendance',
    'find_student_by_code',
    'get_teacher',
    'iso_timestamp',
    'login_admin',
    'login_student',
    'login_teacher',
    'register_student',
    'remove_roster_student',
    'submit_daily_log',
    'take_attendance',
]
