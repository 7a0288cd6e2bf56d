"""
Stockage des pièces jointes

Trois stratégies, choisies par ATTACHMENT_STORAGE:
- none : pas de pièces jointes
- disk : fichier dans UPLOAD_DIR, la tâche garde le chemin relatif
- blob : octets en base (table attachment_blobs), la tâche garde le nom généré
"""

import logging
import os
import re
import time
import uuid
from pathlib import Path
from typing import Iterator, Optional, Tuple

from fastapi.responses import FileResponse, StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.responses import Response

from app.core.database import Database
from app.core.errors import NotFoundError, StorageError, ValidationError
from app.models.attachment_blob import AttachmentBlob

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
CHUNK_SIZE = 256 * 1024


class AttachmentStore:
    """Interface commune aux stratégies

    `delete` accepte la session de l'appelant : la suppression de la pièce
    jointe est alors validée (ou annulée) avec celle de la tâche.
    """

    strategy = "none"

    def store(self, data: bytes, original_name: str, content_type: Optional[str]) -> str:
        raise NotImplementedError

    def retrieve(self, reference: str) -> Response:
        raise NotImplementedError

    def delete(self, reference: str, session: Optional[Session] = None) -> None:
        raise NotImplementedError


class NullAttachmentStore(AttachmentStore):
    strategy = "none"

    def store(self, data, original_name, content_type):
        raise ValidationError("Attachments are disabled")

    def retrieve(self, reference):
        raise NotFoundError("File not found")

    def delete(self, reference, session=None):
        # référence héritée d'une autre config
        logger.warning("Attachments disabled, leaving %s untouched", reference)


def safe_filename(name: str) -> str:
    name = os.path.basename(name or "").strip()
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name)
    return name.lstrip(".") or "file"


class DiskAttachmentStore(AttachmentStore):
    strategy = "disk"

    def __init__(self, upload_dir: str):
        self.upload_dir = Path(upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, reference: str) -> Path:
        # seul le nom compte, jamais de remontée hors du dossier
        return self.upload_dir / Path(reference).name

    def store(self, data, original_name, content_type):
        filename = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe_filename(original_name)}"
        path = self.upload_dir / filename
        try:
            # "xb" : jamais d'écrasement d'un fichier existant
            with path.open("xb") as fh:
                fh.write(data)
        except OSError as e:
            raise StorageError(f"Cannot write {filename}: {e}") from e
        logger.info("Stored attachment %s (%d bytes)", filename, len(data))
        return f"{self.upload_dir.name}/{filename}"

    def retrieve(self, reference):
        path = self._path_for(reference)
        if not path.is_file():
            raise NotFoundError("File not found")
        return FileResponse(path)

    def delete(self, reference, session=None):
        path = self._path_for(reference)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot delete {path.name}: {e}") from e
        logger.info("Deleted attachment %s", path.name)


class BlobAttachmentStore(AttachmentStore):
    strategy = "blob"

    def __init__(self, database: Database):
        self.database = database

    def store(self, data, original_name, content_type):
        extension = Path(original_name or "").suffix
        filename = f"{uuid.uuid4().hex}{extension}"
        content_type = content_type or DEFAULT_CONTENT_TYPE
        blob = AttachmentBlob(
            filename=filename,
            content_type=content_type,
            original_name=original_name,
            length=len(data),
            data=data
        )
        db = self.database.session()
        try:
            db.add(blob)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Cannot write blob {filename}: {e}") from e
        finally:
            db.close()
        logger.info("Stored blob %s (%d bytes, %s)", filename, len(data), content_type)
        return filename

    def open_blob(self, reference: str) -> Tuple[Iterator[bytes], str]:
        db = self.database.session()
        try:
            blob = db.query(AttachmentBlob).filter(AttachmentBlob.filename == reference).first()
            if not blob:
                raise NotFoundError("File not found")
            data, content_type = blob.data, blob.content_type
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot read blob {reference}: {e}") from e
        finally:
            db.close()
        return self._iter_chunks(data), content_type

    @staticmethod
    def _iter_chunks(data: bytes) -> Iterator[bytes]:
        for start in range(0, len(data), CHUNK_SIZE):
            yield data[start:start + CHUNK_SIZE]

    def retrieve(self, reference):
        stream, content_type = self.open_blob(reference)
        return StreamingResponse(stream, media_type=content_type)

    def delete(self, reference, session=None):
        db = session or self.database.session()
        try:
            deleted = db.query(AttachmentBlob).filter(
                AttachmentBlob.filename == reference
            ).delete(synchronize_session=False)
            if not deleted:
                raise NotFoundError(f"Blob {reference} not found")
            if session is None:
                db.commit()
        except SQLAlchemyError as e:
            if session is None:
                db.rollback()
            raise StorageError(f"Cannot delete blob {reference}: {e}") from e
        finally:
            if session is None:
                db.close()
        logger.info("Deleted blob %s", reference)


def build_attachment_store(settings, database: Database) -> AttachmentStore:
    strategy = (settings.ATTACHMENT_STORAGE or "none").lower()
    if strategy == "none":
        return NullAttachmentStore()
    if strategy == "disk":
        return DiskAttachmentStore(settings.UPLOAD_DIR)
    if strategy == "blob":
        return BlobAttachmentStore(database)
    raise ValueError(f"Unknown attachment storage: {settings.ATTACHMENT_STORAGE}")
