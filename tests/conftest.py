"""
Test Configuration and Fixtures
"""
import pytest

from solvem8 import create_app
from solvem8.storage import STORAGE_EXTENSION_KEY


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing (in-memory record storage)"""
    app = create_app('testing')
    app.config['UPLOAD_DIR'] = str(tmp_path / 'files')
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def storage(app):
    return app.extensions[STORAGE_EXTENSION_KEY]


@pytest.fixture(scope='function')
def test_user(storage):
    """Create test user"""
    return storage.create_user(
        username='testuser',
        email='test@example.com',
        password='testpassword123',
    )


@pytest.fixture(scope='function')
def authenticated_client(client, test_user):
    """Create authenticated test client"""
    response = client.post('/api/auth/login', json={
        'email': 'test@example.com',
        'password': 'testpassword123'
    })
    assert response.status_code == 200
    return client


@pytest.fixture(scope='function')
def fake_ai(monkeypatch):
    """Replace the model call; records every prompt it receives"""
    calls = []

    def generate(text):
        calls.append(text)
        return f"Solution for: {text[:20]}"

    monkeypatch.setattr('solvem8.api.generate_solution', generate)
    return calls
