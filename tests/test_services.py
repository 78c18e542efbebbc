from datetime import datetime, timezone

import pytest

import services
from services import AuthenticationError, NotFoundError, ValidationError

NOW = datetime(2025, 3, 1, 8, 30, tzinfo=timezone.utc)


def _register(store, name='طالب', code='s1', password='pass1'):
    return services.register_student(store, name, code, password, password, now=NOW)


def test_login_admin(store):
    services.login_admin(store, 'admin2025')
    with pytest.raises(AuthenticationError):
        services.login_admin(store, 'wrong')


def test_login_teacher_with_seed_credentials(store):
    teacher = services.login_teacher(store, 'eman', 'eman2025')
    assert teacher['name'] == 'إيمان الصباغ'
    with pytest.raises(AuthenticationError):
        services.login_teacher(store, 'eman', 'samar2025')
    with pytest.raises(AuthenticationError):
        services.login_teacher(store, 'ghost', '')


def test_register_student_builds_record(store):
    student = _register(store)
    assert student == {
        'id': str(int(NOW.timestamp() * 1000)),
        'name': 'طالب',
        'code': 's1',
        'password': 'pass1',
        'class': 'جديد',
        'registrationDate': '2025-03-01T08:30:00.000Z',
    }
    assert store.get_students() == [student]
    assert services.login_student(store, 's1', 'pass1') == student


@pytest.mark.parametrize('name, code, password, confirm', [
    ('', 's1', 'p', 'p'),
    ('n', '', 'p', 'p'),
    ('n', 's1', '', ''),
    ('n', 's1', 'p', 'q'),
])
def test_register_student_rejects_incomplete_forms(store, name, code, password, confirm):
    with pytest.raises(ValidationError):
        services.register_student(store, name, code, password, confirm)
    assert store.get_students() == []


def test_register_student_rejects_duplicate_code(store):
    _register(store)
    with pytest.raises(ValidationError):
        _register(store, name='other')
    assert len(store.get_students()) == 1


def test_login_student_wrong_password(store):
    _register(store)
    with pytest.raises(AuthenticationError):
        services.login_student(store, 's1', 'nope')


def test_change_admin_password_rules(store):
    with pytest.raises(AuthenticationError):
        services.change_admin_password(store, 'bad', 'newpass', 'newpass')
    with pytest.raises(ValidationError):
        services.change_admin_password(store, 'admin2025', 'abc', 'abc')
    with pytest.raises(ValidationError):
        services.change_admin_password(store, 'admin2025', 'newpass', 'other')
    services.change_admin_password(store, 'admin2025', 'newpass', 'newpass')
    assert store.get_admin_password() == 'newpass'


def test_change_teacher_password(store):
    with pytest.raises(ValidationError):
        services.change_teacher_password(store, 'eman', 'abc')
    services.change_teacher_password(store, 'eman', 'longer')
    assert store.get_teachers()['eman']['password'] == 'longer'
    with pytest.raises(NotFoundError):
        services.change_teacher_password(store, 'ghost', 'longer')


def test_change_student_password_keeps_position(store):
    store.register_student({'id': '0', 'name': 'first', 'code': 'a'})
    student = _register(store)
    services.change_student_password(store, student, 'secret')
    students = store.get_students()
    assert [s['code'] for s in students] == ['a', 's1']
    assert students[1]['password'] == 'secret'


def test_add_teacher_requires_name_and_code(empty_store):
    with pytest.raises(ValidationError):
        services.add_teacher(empty_store, '', 'c')
    teacher = services.add_teacher(empty_store, 'معلم', 'c', 'pw', 'e@x')
    assert empty_store.get_teachers() == {'c': teacher}
    assert teacher['students'] == []


def test_roster_add_and_remove(store):
    teacher = services.add_roster_student(store, 'eman', '123', 'جديد')
    assert teacher['students'][-1] == {'id': '123', 'name': 'جديد'}
    assert len(store.get_teachers()['eman']['students']) == 11

    with pytest.raises(ValidationError):
        services.add_roster_student(store, 'eman', '123', 'again')
    with pytest.raises(ValidationError):
        services.add_roster_student(store, 'eman', '', 'no id')

    services.remove_roster_student(store, 'eman', '123')
    assert len(store.get_teachers()['eman']['students']) == 10
    # Roster entries are unrelated to the global registry.
    assert store.get_students() == []


def test_take_attendance_skips_unmarked(store):
    marks = {
        'أروى': {'status': 'present', 'notes': 'ممتاز'},
        'بسملة': {'status': None, 'notes': ''},
        'جنى': {'status': 'absent'},
    }
    records = services.take_attendance(store, 'eman', marks, now=NOW)
    assert [r['studentName'] for r in records] == ['أروى', 'جنى']
    assert all(r['date'] == '2025-03-01' for r in records)
    assert all(r['timestamp'] == '2025-03-01T08:30:00.000Z' for r in records)
    assert all(r['teacherCode'] == 'eman' for r in records)
    assert records[1]['notes'] == ''
    assert len({r['id'] for r in records}) == 2
    assert store.get_attendance() == records


def test_take_attendance_requires_a_mark(store):
    with pytest.raises(ValidationError):
        services.take_attendance(store, 'eman', {'x': {'status': None}})
    with pytest.raises(ValidationError):
        services.take_attendance(store, 'eman', {'x': {'status': 'late'}})
    with pytest.raises(ValidationError):
        services.take_attendance(store, 'eman', {'x': 'present'})
    with pytest.raises(ValidationError):
        services.take_attendance(store, 'eman', {'x': None})
    with pytest.raises(NotFoundError):
        services.take_attendance(store, 'ghost', {'x': {'status': 'present'}})
    assert store.get_attendance() == []


def test_filter_and_stats():
    records = [
        {'date': '2025-03-01', 'teacherCode': 'eman', 'status': 'present'},
        {'date': '2025-03-01', 'teacherCode': 'samar', 'status': 'absent'},
        {'date': '2025-03-02', 'teacherCode': 'eman', 'status': 'absent'},
    ]
    assert len(services.filter_attendance(records)) == 3
    day = services.filter_attendance(records, date='2025-03-01')
    assert services.attendance_stats(day) == {'total': 2, 'present': 1, 'absent': 1}
    eman = services.filter_attendance(records, teacher_code='eman', date='2025-03-02')
    assert services.attendance_stats(eman) == {'total': 1, 'present': 0, 'absent': 1}


def test_submit_daily_log(store):
    student = _register(store)
    form = {'newMemorizing': 'البقرة 1-5', 'review': 'الفاتحة', 'listening': 'نعم', 'newTarget': 'البقرة 6-10'}
    record = services.submit_daily_log(store, student, form, now=NOW)
    assert record['dateDisplay'] == '١\u200f/٣\u200f/٢٠٢٥'
    assert record['date'] == '2025-03-01T08:30:00.000Z'
    assert record['notes'] == ''
    assert store.get_student_logs('s1') == [record]


def test_submit_daily_log_validation(store):
    student = _register(store)
    with pytest.raises(ValidationError):
        services.submit_daily_log(store, student, {'newMemorizing': 'x', 'review': 'y', 'listening': 'نعم'})
    with pytest.raises(ValidationError):
        services.submit_daily_log(store, {'id': '1', 'name': 'n'}, {
            'newMemorizing': 'x', 'review': 'y', 'listening': 'نعم', 'newTarget': 'z'})
    assert store.get_student_logs('s1') == []


def test_arabic_date_display():
    assert services.arabic_date_display(datetime(2026, 10, 18)) == '١٨\u200f/١٠\u200f/٢٠٢٦'


def test_student_scans_skip_non_object_entries(store):
    store.import_data({'students': [None, 'junk', {'id': '1', 'name': 'a', 'code': 'c1', 'password': 'pw'}]})
    assert services.login_student(store, 'c1', 'pw')['id'] == '1'
    assert services.find_student_by_code(store, 'c1')['name'] == 'a'
    with pytest.raises(AuthenticationError):
        services.login_student(store, 'c2', 'pw')
    with pytest.raises(NotFoundError):
        services.find_student_by_code(store, 'c2')
    _register(store, code='c2')
    assert len(store.get_students()) == 4
