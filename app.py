"""Flask application exposing the Quran tracker over HTTP.

The application wires the configuration, the record store and the route
definitions together. Every route calls the store (directly or through
:mod:`services`) and returns JSON, CSV or a JSON backup document.

Endpoints:

* ``POST /api/login/<role>`` – log in as ``admin``, ``teacher`` or ``student``.
* ``POST /api/logout`` – forget the current login.
* ``POST /api/students/register`` – student self-registration.
* ``GET|POST /api/teachers`` and ``GET|DELETE /api/teachers/<code>`` – teacher
  accounts (admin).
* ``POST /api/teachers/<code>/students`` and
  ``DELETE /api/teachers/<code>/students/<id>`` – a teacher's roster.
* ``PUT /api/teachers/<code>/password`` – teacher changes their password.
* ``POST /api/teachers/<code>/attendance`` – record one attendance session.
* ``GET /api/students`` and ``DELETE /api/students/<id>`` – student registry
  (admin).
* ``PUT /api/students/<code>/password`` – student changes their password.
* ``GET|POST /api/students/<code>/logs`` – daily memorisation logs.
* ``GET /api/attendance?date=YYYY-MM-DD&teacher=<code>`` – filtered history
  with present/absent counts (admin).
* ``PUT /api/admin/password`` – change the admin password.
* ``GET /api/reports/attendance.csv`` and ``GET /api/reports/student-logs.csv``
  – spreadsheet downloads (admin).
* ``GET /api/backup`` and ``POST /api/restore`` – full JSON backup/restore
  (admin).

Errors are returned as problem-details JSON carrying the request ID.
"""

from __future__ import annotations

import os
from functools import wraps
from typing import Any, Dict, Mapping, Optional

from flask import Flask, Response, current_app, g, jsonify, request, session
from werkzeug.exceptions import BadRequest, Forbidden, HTTPException, Unauthorized
from sqlalchemy.exc import SQLAlchemyError

import reports
import services
from app_logging import get_logger, get_request_id
from config import Config
from middleware import init_middleware
from models import db
from record_store import RecordStore, open_store
from seed import SEED_TEACHERS
from services import AuthenticationError, DomainError, NotFoundError, ValidationError

ROLES = ('admin', 'teacher', 'student')

_logger = get_logger('app')


def get_store() -> RecordStore:
    return current_app.extensions['record_store']


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest('Missing JSON payload')
    return data


def _without_password(record: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in record.items() if k != 'password'}


def _download(body: str, mimetype: str, filename: str) -> Response:
    return Response(
        body,
        mimetype=mimetype,
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


def login_required(role: Optional[str] = None):
    """Require a login; with ``role``, require that role or admin.

    Routes with a ``code`` argument additionally require that a teacher or
    student acts on their own code.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            current_role = session.get('role')
            if current_role not in ROLES:
                raise Unauthorized('Login required')
            if current_role != 'admin':
                if role is None or current_role != role:
                    raise Forbidden('Not allowed for this account')
                if 'code' in kwargs and kwargs['code'] != session.get('code'):
                    raise Forbidden('Not allowed for this account')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def _problem(status: int, title: str, detail: str) -> Response:
    response = jsonify({
        'type': 'about:blank',
        'title': title,
        'status': status,
        'detail': detail,
        'request_id': get_request_id() or getattr(g, 'request_id', None),
    })
    response.status_code = status
    response.mimetype = 'application/problem+json'
    return response


def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Application factory used by both the server and tests.

    ``overrides`` is applied on top of :class:`config.Config` before the
    store is opened, so tests can point the app at an in-memory database or
    switch off the seed teachers.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    db.init_app(app)
    init_middleware(app)

    with app.app_context():
        seed = SEED_TEACHERS if app.config['STORE_SEED_TEACHERS'] else {}
        app.extensions['record_store'] = open_store(
            db.engine, seed_teachers=seed, key_prefix=app.config['STORE_KEY_PREFIX']
        )

    min_pwd = app.config['MIN_PASSWORD_LENGTH']

    @app.route('/health')
    def healthcheck():
        return jsonify({'status': 'ok'}), 200

    # -- sessions ----------------------------------------------------------

    @app.route('/api/login/<role>', methods=['POST'])
    def api_login(role: str):
        data = _json_body()
        store = get_store()
        password = data.get('password', '')
        session.clear()
        if role == 'admin':
            services.login_admin(store, password)
            session.update(role='admin', code=None)
            return jsonify({'role': 'admin'})
        if role == 'teacher':
            teacher = services.login_teacher(store, data.get('code', ''), password)
            session.update(role='teacher', code=teacher['code'])
            return jsonify({'role': 'teacher', 'teacher': _without_password(teacher)})
        if role == 'student':
            student = services.login_student(store, data.get('code', ''), password)
            session.update(role='student', code=student['code'])
            return jsonify({'role': 'student', 'student': _without_password(student)})
        raise BadRequest(f'Unknown role: {role}')

    @app.route('/api/logout', methods=['POST'])
    def api_logout():
        session.clear()
        return jsonify({'message': 'Logged out'})

    @app.route('/api/students/register', methods=['POST'])
    def api_register_student():
        data = _json_body()
        student = services.register_student(
            get_store(),
            name=data.get('name', ''),
            code=data.get('code', ''),
            password=data.get('password', ''),
            confirm_password=data.get('confirmPassword', ''),
        )
        return jsonify(_without_password(student)), 201

    # -- teachers ----------------------------------------------------------

    @app.route('/api/teachers', methods=['GET'])
    @login_required('admin')
    def api_get_teachers():
        teachers = get_store().get_teachers()
        return jsonify({code: _without_password(t) for code, t in teachers.items()})

    @app.route('/api/teachers', methods=['POST'])
    @login_required('admin')
    def api_add_teacher():
        data = _json_body()
        teacher = services.add_teacher(
            get_store(),
            name=data.get('name', ''),
            code=data.get('code', ''),
            password=data.get('password', ''),
            email=data.get('email', ''),
        )
        return jsonify(_without_password(teacher)), 201

    @app.route('/api/teachers/<code>', methods=['GET'])
    @login_required('teacher')
    def api_get_teacher(code: str):
        return jsonify(_without_password(services.get_teacher(get_store(), code)))

    @app.route('/api/teachers/<code>', methods=['DELETE'])
    @login_required('admin')
    def api_delete_teacher(code: str):
        get_store().delete_teacher(code)
        return '', 204

    @app.route('/api/teachers/<code>/students', methods=['POST'])
    @login_required('teacher')
    def api_add_roster_student(code: str):
        data = _json_body()
        teacher = services.add_roster_student(get_store(), code, data.get('id', ''), data.get('name', ''))
        return jsonify(_without_password(teacher)), 201

    @app.route('/api/teachers/<code>/students/<student_id>', methods=['DELETE'])
    @login_required('teacher')
    def api_remove_roster_student(code: str, student_id: str):
        teacher = services.remove_roster_student(get_store(), code, student_id)
        return jsonify(_without_password(teacher))

    @app.route('/api/teachers/<code>/password', methods=['PUT'])
    @login_required('teacher')
    def api_change_teacher_password(code: str):
        data = _json_body()
        services.change_teacher_password(get_store(), code, data.get('password', ''), min_length=min_pwd)
        return jsonify({'message': 'Password changed'})

    @app.route('/api/teachers/<code>/attendance', methods=['POST'])
    @login_required('teacher')
    def api_take_attendance(code: str):
        marks = _json_body().get('marks')
        if not isinstance(marks, dict):
            raise BadRequest('marks must be an object keyed by student name')
        records = services.take_attendance(get_store(), code, marks)
        return jsonify(records), 201

    # -- students ----------------------------------------------------------

    @app.route('/api/students', methods=['GET'])
    @login_required('admin')
    def api_get_students():
        return jsonify([_without_password(s) for s in get_store().get_students()])

    @app.route('/api/students/<student_id>', methods=['DELETE'])
    @login_required('admin')
    def api_delete_student(student_id: str):
        get_store().delete_student(student_id)
        return '', 204

    @app.route('/api/students/<code>/password', methods=['PUT'])
    @login_required('student')
    def api_change_student_password(code: str):
        data = _json_body()
        store = get_store()
        student = services.find_student_by_code(store, code)
        services.change_student_password(store, student, data.get('password', ''), min_length=min_pwd)
        # A password change ends the student's session.
        session.clear()
        return jsonify({'message': 'Password changed'})

    @app.route('/api/students/<code>/logs', methods=['GET'])
    @login_required('student')
    def api_get_student_logs(code: str):
        return jsonify(get_store().get_student_logs(code))

    @app.route('/api/students/<code>/logs', methods=['POST'])
    @login_required('student')
    def api_submit_student_log(code: str):
        store = get_store()
        student = services.find_student_by_code(store, code)
        record = services.submit_daily_log(store, student, _json_body())
        return jsonify(record), 201

    # -- admin ---------------------------------------------------------------

    @app.route('/api/attendance', methods=['GET'])
    @login_required('admin')
    def api_get_attendance():
        records = services.filter_attendance(
            get_store().get_attendance(),
            date=request.args.get('date'),
            teacher_code=request.args.get('teacher'),
        )
        return jsonify({'records': records, 'stats': services.attendance_stats(records)})

    @app.route('/api/admin/password', methods=['PUT'])
    @login_required('admin')
    def api_change_admin_password():
        data = _json_body()
        services.change_admin_password(
            get_store(),
            current=data.get('current', ''),
            new=data.get('new', ''),
            confirm=data.get('confirm', ''),
            min_length=min_pwd,
        )
        session.clear()
        return jsonify({'message': 'Password changed'})

    @app.route('/api/reports/attendance.csv', methods=['GET'])
    @login_required('admin')
    def api_attendance_report():
        store = get_store()
        day = request.args.get('date')
        records = services.filter_attendance(
            store.get_attendance(), date=day, teacher_code=request.args.get('teacher')
        )
        body = reports.attendance_csv(records, store.get_teachers())
        return _download(body, 'text/csv', reports.attendance_filename(day))

    @app.route('/api/reports/student-logs.csv', methods=['GET'])
    @login_required('admin')
    def api_student_logs_report():
        store = get_store()
        data = store.export_data()
        body = reports.student_logs_csv(data['studentLogs'], data['students'])
        return _download(body, 'text/csv', reports.student_logs_filename())

    @app.route('/api/backup', methods=['GET'])
    @login_required('admin')
    def api_backup():
        return _download(reports.backup_json(get_store()), 'application/json', reports.backup_filename())

    @app.route('/api/restore', methods=['POST'])
    @login_required('admin')
    def api_restore():
        upload = request.files.get('file')
        if upload is not None:
            reports.restore_json(get_store(), upload.read())
        else:
            reports.restore_json(get_store(), request.get_data())
        return jsonify({'message': 'Restored'})

    # -- errors --------------------------------------------------------------

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        return _problem(400, 'Validation failed', str(error))

    @app.errorhandler(AuthenticationError)
    def handle_authentication_error(error):
        return _problem(401, 'Authentication failed', str(error))

    @app.errorhandler(NotFoundError)
    def handle_not_found(error):
        return _problem(404, 'Not found', str(error))

    @app.errorhandler(DomainError)
    def handle_domain_error(error):
        return _problem(400, 'Request rejected', str(error))

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return _problem(error.code or 500, error.name, error.description or error.name)

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(error):
        _logger.error('Database operation failed', exc_info=error)
        return _problem(503, 'Service unavailable', 'Database temporarily unavailable')

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    create_app().run(host='0.0.0.0', port=port, debug=True)
