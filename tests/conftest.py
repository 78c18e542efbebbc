import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app import create_app
from record_store import MemoryBackend, RecordStore
from seed import SEED_TEACHERS


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend):
    return RecordStore(backend, seed_teachers=SEED_TEACHERS)


@pytest.fixture
def empty_store():
    return RecordStore(MemoryBackend(), seed_teachers={})


@pytest.fixture
def app(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv('REQUEST_LOG_SAMPLE_RATE', '1')
    return create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'STORE_SEED_TEACHERS': True,
    })


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    response = client.post('/api/login/admin', json={'password': 'admin2025'})
    assert response.status_code == 200
    return client
