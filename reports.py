"""CSV reports and JSON backups.

CSV output starts with a UTF-8 byte-order mark so spreadsheet programs pick
the right encoding for the Arabic text. Quoting follows the format of the
existing report files: free-text fields are wrapped in double quotes with
embedded quotes doubled.
"""

from __future__ import annotations

import json
from datetime import date
from typing import Iterable, List, Mapping, Optional, Union

from models import AttendanceRecord, Student, StudentDailyRecord, Teacher
from record_store import RecordStore
from services import ValidationError

BOM = '\ufeff'

ATTENDANCE_HEADER = 'التاريخ,المعلم,اسم الطالب,الحالة,الملاحظات'
STUDENT_LOGS_HEADER = 'التاريخ,اسم الطالب,الكود,الحفظ الجديد,المراجعة,التسميع,الهدف,ملاحظات'

STATUS_LABELS = {'present': 'حاضر', 'absent': 'غائب'}
UNKNOWN_STUDENT = 'غير معروف'


def _escape(value: Optional[str]) -> str:
    return (value or '').replace('"', '""')


def attendance_csv(records: Iterable[AttendanceRecord], teachers: Mapping[str, Teacher]) -> str:
    """One row per attendance record, teacher shown by name where known."""
    lines = [BOM + ATTENDANCE_HEADER]
    for r in records:
        teacher = teachers.get(r.get('teacherCode'))
        teacher_name = (teacher or {}).get('name') or r.get('teacherCode')
        status = STATUS_LABELS['present'] if r.get('status') == 'present' else STATUS_LABELS['absent']
        lines.append(
            f'{r.get("date")},"{teacher_name}","{r.get("studentName")}","{status}","{_escape(r.get("notes"))}"'
        )
    return '\n'.join(lines) + '\n'


def student_logs_csv(student_logs: Mapping[str, List[StudentDailyRecord]], students: Iterable[Student]) -> str:
    """All daily logs of all students, grouped by student code in storage order."""
    names = {s['code']: s.get('name') for s in students if s.get('code')}
    lines = [BOM + STUDENT_LOGS_HEADER]
    for code, logs in student_logs.items():
        name = names.get(code) or UNKNOWN_STUDENT
        for log in logs:
            lines.append(','.join([
                f'"{log.get("dateDisplay")}"',
                f'"{name}"',
                f'"{code}"',
                f'"{_escape(log.get("newMemorizing"))}"',
                f'"{_escape(log.get("review"))}"',
                f'"{log.get("listening")}"',
                f'"{_escape(log.get("newTarget"))}"',
                f'"{_escape(log.get("notes"))}"',
            ]))
    return '\n'.join(lines) + '\n'


def backup_json(store: RecordStore) -> str:
    return json.dumps(store.export_data(), ensure_ascii=False, indent=2)


def restore_json(store: RecordStore, payload: Union[str, bytes]) -> None:
    """Parse a backup document and hand it whole to :meth:`RecordStore.import_data`.

    ``payload`` may be raw bytes from an upload; a leading byte-order mark is
    accepted. Undecodable or unparseable input raises :class:`ValidationError`.
    """
    try:
        text = payload.decode("utf-8-sig") if isinstance(payload, bytes) else payload
        data = json.loads(text)
    except ValueError as exc:
        raise ValidationError('ملف غير صالح') from exc
    store.import_data(data)


def attendance_filename(day: Optional[str]) -> str:
    return f"attendance_{day or 'all'}.csv"


def student_logs_filename(today: Optional[date] = None) -> str:
    return f'student_logs_{(today or date.today()).isoformat()}.csv'


def backup_filename(today: Optional[date] = None) -> str:
    return f'backup_{(today or date.today()).isoformat()}.json'


__all__ = [
    'BOM',
    'attendance_csv',
    'attendance_filename',
    'backup_filename',
    'backup_json',
    'restore_json',
    'student_logs_csv',
    'student_logs_filename',
]
