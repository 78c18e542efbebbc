import json
from datetime import date

import pytest

import reports
from services import ValidationError


def test_attendance_csv_format():
    records = [
        {'date': '2025-03-01', 'teacherCode': 'eman', 'studentName': 'أروى', 'status': 'present', 'notes': 'قال "ممتاز"'},
        {'date': '2025-03-01', 'teacherCode': 'gone', 'studentName': 'جنى', 'status': 'absent', 'notes': ''},
    ]
    teachers = {'eman': {'name': 'إيمان الصباغ'}}
    csv_text = reports.attendance_csv(records, teachers)
    lines = csv_text.split('\n')
    assert lines[0] == reports.BOM + 'التاريخ,المعلم,اسم الطالب,الحالة,الملاحظات'
    assert lines[1] == '2025-03-01,"إيمان الصباغ","أروى","حاضر","قال ""ممتاز"""'
    # Deleted teachers fall back to their code.
    assert lines[2] == '2025-03-01,"gone","جنى","غائب",""'
    assert csv_text.endswith('\n')


def test_student_logs_csv_names_unknown_codes():
    logs = {
        's1': [{'dateDisplay': 'd1', 'newMemorizing': 'a"b', 'review': 'r', 'listening': 'نعم',
                'newTarget': 't', 'notes': None}],
        'orphan': [{'dateDisplay': 'd2', 'newMemorizing': 'x', 'review': 'y', 'listening': 'لا',
                    'newTarget': 'z', 'notes': 'n'}],
    }
    students = [{'id': '1', 'name': 'طالب', 'code': 's1'}, {'id': '2', 'name': 'بدون كود'}]
    lines = reports.student_logs_csv(logs, students).rstrip('\n').split('\n')
    assert lines[0].startswith(reports.BOM + 'التاريخ,اسم الطالب,الكود')
    assert lines[1] == '"d1","طالب","s1","a""b","r","نعم","t",""'
    assert lines[2] == '"d2","غير معروف","orphan","x","y","لا","z","n"'


def test_backup_and_restore(store, empty_store):
    store.register_student({'id': '1', 'name': 'a', 'code': 'c1'})
    text = reports.backup_json(store)
    assert text.startswith('{\n  "teachers"')
    assert 'إيمان' in text

    reports.restore_json(empty_store, text)
    assert empty_store.export_data() == json.loads(text)


def test_restore_rejects_invalid_json(store):
    with pytest.raises(ValidationError):
        reports.restore_json(store, 'not json')
    assert set(store.get_teachers()) == {'eman', 'samar'}


def test_restore_accepts_bytes_with_bom(store):
    reports.restore_json(store, reports.BOM.encode('utf-8') + b'{"teachers": {}}')
    assert store.get_teachers() == {}


def test_restore_rejects_undecodable_bytes(store):
    with pytest.raises(ValidationError):
        reports.restore_json(store, b'\xff\xfe{"teachers": {}}')
    assert set(store.get_teachers()) == {'eman', 'samar'}


def test_filenames():
    today = date(2025, 3, 1)
    assert reports.attendance_filename('2025-03-01') == 'attendance_2025-03-01.csv'
    assert reports.attendance_filename(None) == 'attendance_all.csv'
    assert reports.student_logs_filename(today) == 'student_logs_2025-03-01.csv'
    assert reports.backup_filename(today) == 'backup_2025-03-01.json'
