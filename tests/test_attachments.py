import time

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import NotFoundError, StorageError, ValidationError
from app.models.attachment_blob import AttachmentBlob
from app.models.task import Task
from app.services import task_service
from app.services.attachment_store import (
    BlobAttachmentStore,
    DiskAttachmentStore,
    NullAttachmentStore,
    build_attachment_store,
    safe_filename
)


def upload(client, text="With file", content=b"hello attachment", name="notes.txt", mime="text/plain"):
    return client.post(
        "/api/tasks/create",
        data={"text": text},
        files={"attachment": (name, content, mime)}
    )


def trash_and_purge(client, task_id):
    client.delete(f"/api/tasks/delete/{task_id}")
    return client.delete(f"/api/tasks/permanent-delete/{task_id}")

# ========== STRATÉGIE DISQUE ==========
def test_disk_upload_and_download(client, tmp_path):
    response = upload(client)
    assert response.status_code == 201
    reference = response.json()["attachment"]
    assert reference.startswith("uploads/")
    assert reference.endswith("-notes.txt")

    stored = tmp_path / "uploads" / reference.split("/")[-1]
    assert stored.read_bytes() == b"hello attachment"

    response = client.get(f"/api/tasks/file/{reference.split('/')[-1]}")
    assert response.status_code == 200
    assert response.content == b"hello attachment"
    assert response.headers["content-type"].startswith("text/plain")

def test_disk_permanent_delete_removes_file(client, tmp_path):
    """Plus de fichier orphelin après suppression définitive"""
    task = upload(client).json()
    filename = task["attachment"].split("/")[-1]

    response = trash_and_purge(client, task["id"])
    assert response.status_code == 200
    assert not (tmp_path / "uploads" / filename).exists()
    assert client.get(f"/api/tasks/file/{filename}").status_code == 404

def test_disk_missing_file_does_not_block_delete(client, tmp_path):
    task = upload(client).json()
    (tmp_path / "uploads" / task["attachment"].split("/")[-1]).unlink()

    response = trash_and_purge(client, task["id"])
    assert response.status_code == 200

def test_soft_delete_keeps_attachment(client):
    task = upload(client).json()
    filename = task["attachment"].split("/")[-1]
    client.delete(f"/api/tasks/delete/{task['id']}")
    assert client.get(f"/api/tasks/file/{filename}").status_code == 200

def test_upload_with_empty_text_stores_nothing(client, tmp_path):
    response = upload(client, text="  ")
    assert response.status_code == 400
    assert list((tmp_path / "uploads").iterdir()) == []
    assert client.get("/api/tasks/view").json() == []

def test_unknown_file(client):
    response = client.get("/api/tasks/file/nope.txt")
    assert response.status_code == 404
    assert response.json()["error"] == "File not found"

def test_disk_store_ignores_directories(tmp_path):
    store = DiskAttachmentStore(str(tmp_path / "uploads"))
    (tmp_path / "secret.txt").write_text("secret")
    with pytest.raises(NotFoundError):
        store.retrieve("../secret.txt")

def test_safe_filename():
    assert safe_filename("../../etc/passwd") == "passwd"
    assert safe_filename("my report (1).pdf") == "my_report_1_.pdf"
    assert safe_filename("") == "file"
    assert safe_filename(".hidden") == "hidden"

# ========== STRATÉGIE BLOB ==========
def test_blob_upload_and_download(blob_client):
    response = upload(blob_client, content=b"%PDF-1.4 data", name="report.pdf", mime="application/pdf")
    assert response.status_code == 201
    reference = response.json()["attachment"]
    assert reference.endswith(".pdf")
    assert "/" not in reference

    response = blob_client.get(f"/api/tasks/file/{reference}")
    assert response.status_code == 200
    assert response.content == b"%PDF-1.4 data"
    assert response.headers["content-type"] == "application/pdf"

def test_blob_permanent_delete_removes_blob(blob_client):
    task = upload(blob_client).json()

    response = trash_and_purge(blob_client, task["id"])
    assert response.status_code == 200
    assert blob_client.get(f"/api/tasks/file/{task['attachment']}").status_code == 404

def test_blob_missing_fails_loudly(database, db):
    """Blob introuvable => StorageError et la tâche reste en corbeille"""
    store = BlobAttachmentStore(database)
    task = task_service.create_task(db, "Orphan ref", attachment="missing.bin")
    task_service.soft_delete(db, task.id)

    with pytest.raises(StorageError):
        task_service.permanently_delete(db, task.id, store)

    assert db.query(Task).filter(Task.id == task.id).count() == 1

def test_blob_missing_returns_500(blob_client):
    response = blob_client.post("/api/tasks/create", json={"text": "No file"})
    task = response.json()
    # référence cassée posée directement en base
    db = blob_client.app.state.database.session()
    db.query(Task).filter(Task.id == task["id"]).update({"attachment": "ghost.bin"})
    db.commit()
    db.close()

    response = trash_and_purge(blob_client, task["id"])
    assert response.status_code == 500
    assert response.json() == {"error": "Attachment storage error"}
    assert len(blob_client.get("/api/tasks/view", params={"status": "trashed"}).json()) == 1

def test_blob_store_chunks(database):
    store = BlobAttachmentStore(database)
    data = b"x" * (256 * 1024 + 10)
    name = store.store(data, "big.bin", None)
    stream, content_type = store.open_blob(name)
    chunks = list(stream)
    assert len(chunks) == 2
    assert b"".join(chunks) == data
    assert content_type == "application/octet-stream"

    store.delete(name)
    with pytest.raises(NotFoundError):
        store.open_blob(name)

# ========== SANS PIÈCE JOINTE ==========
def test_no_attachment_strategy(make_client):
    client = make_client("none")
    response = upload(client)
    assert response.status_code == 400
    assert response.json()["error"] == "Attachments are disabled"

    response = client.post("/api/tasks/create", json={"text": "Plain"})
    assert response.status_code == 201
    assert client.get("/health/z").json()["attachments"] == "none"

def test_null_store():
    store = NullAttachmentStore()
    with pytest.raises(ValidationError):
        store.store(b"data", "a.txt", "text/plain")
    with pytest.raises(NotFoundError):
        store.retrieve("a.txt")
    store.delete("a.txt")

def test_build_attachment_store(make_settings, database):
    assert isinstance(build_attachment_store(make_settings("none"), database), NullAttachmentStore)
    assert isinstance(build_attachment_store(make_settings("disk"), database), DiskAttachmentStore)
    assert isinstance(build_attachment_store(make_settings("blob"), database), BlobAttachmentStore)
    with pytest.raises(ValueError):
        build_attachment_store(make_settings("s3"), database)

# ========== NOMMAGE ET NETTOYAGE ==========
def test_disk_same_name_same_millisecond(tmp_path, monkeypatch):
    """Deux uploads homonymes dans la même milliseconde gardent chacun leur fichier"""
    monkeypatch.setattr(time, "time", lambda: 1700000000.0)
    store = DiskAttachmentStore(str(tmp_path / "uploads"))

    first = store.store(b"AAA", "n.txt", "text/plain")
    second = store.store(b"BBB", "n.txt", "text/plain")

    assert first != second
    assert (tmp_path / "uploads" / first.split("/")[-1]).read_bytes() == b"AAA"
    assert (tmp_path / "uploads" / second.split("/")[-1]).read_bytes() == b"BBB"

def test_blob_store_returns_name_and_persists(database):
    store = BlobAttachmentStore(database)
    name = store.store(b"abc", "photo.png", "image/png")
    assert name.endswith(".png")

    db = database.session()
    blob = db.query(AttachmentBlob).filter(AttachmentBlob.filename == name).first()
    assert blob.content_type == "image/png"
    assert blob.original_name == "photo.png"
    assert blob.length == 3
    db.close()

def count_blobs(client):
    db = client.app.state.database.session()
    try:
        return db.query(AttachmentBlob).count()
    finally:
        db.close()

def failing_create(db, text, attachment=None):
    raise OperationalError("INSERT", {}, Exception("disk full"))

def test_blob_discarded_when_task_insert_fails(blob_client, monkeypatch):
    """Pas de blob orphelin si l'insertion de la tâche échoue"""
    monkeypatch.setattr(task_service, "create_task", failing_create)

    response = upload(blob_client)
    assert response.status_code == 500
    assert count_blobs(blob_client) == 0

def test_file_discarded_when_task_insert_fails(client, tmp_path, monkeypatch):
    monkeypatch.setattr(task_service, "create_task", failing_create)

    response = upload(client)
    assert response.status_code == 500
    assert list((tmp_path / "uploads").iterdir()) == []

def test_blob_upload_creates_exactly_one_blob(blob_client):
    response = upload(blob_client)
    assert response.status_code == 201
    assert count_blobs(blob_client) == 1
    assert len(blob_client.get("/api/tasks/view").json()) == 1
