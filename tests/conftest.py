import sys
from pathlib import Path

# Ajoute la racine du projet au PYTHONPATH EN PREMIER
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.core.database import Database
from app.main import create_app


@pytest.fixture
def make_settings(tmp_path):
    """Settings isolés: une DB SQLite et un dossier d'upload par test"""
    def _make(storage="disk"):
        return Settings(
            DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
            ATTACHMENT_STORAGE=storage,
            UPLOAD_DIR=str(tmp_path / "uploads"),
            LOG_LEVEL="WARNING"
        )
    return _make


@pytest.fixture
def make_client(make_settings):
    clients = []

    def _make(storage="disk"):
        client = TestClient(create_app(make_settings(storage)))
        client.__enter__()  # déclenche le lifespan (connexion DB)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    """Client de test FastAPI (pièces jointes sur disque)"""
    return make_client("disk")


@pytest.fixture
def blob_client(make_client):
    return make_client("blob")


@pytest.fixture
def database(make_settings):
    database = Database(make_settings().DATABASE_URL)
    database.connect()
    yield database
    database.close()


@pytest.fixture
def db(database):
    """Session DB pour les tests"""
    db = database.session()
    yield db
    db.close()
