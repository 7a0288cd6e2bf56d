import logging
from fastapi import APIRouter, Depends, Request, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from app.core.database import get_db
from app.core.errors import StorageError, TaskError, ValidationError
from app.schemas.task import (
    TaskCreate,
    TaskStatusUpdate,
    TaskTextUpdate,
    TaskResponse,
    TaskActionResponse,
    MessageResponse
)
from app.services.attachment_store import AttachmentStore
from app.services import task_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


class CreatePayload(BaseModel):
    text: Optional[str] = None
    data: Optional[bytes] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None


def get_attachments(request: Request) -> AttachmentStore:
    return request.app.state.attachments


async def parse_create_payload(request: Request) -> CreatePayload:
    """Accepte du JSON {text} ou un formulaire multipart (text + fichier 'attachment')"""
    content_type = request.headers.get("content-type", "")

    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        text = form.get("text")
        payload = CreatePayload(text=text if isinstance(text, str) else None)
        upload = form.get("attachment")
        # un champ fichier vide arrive sans nom
        if isinstance(upload, UploadFile) and upload.filename:
            try:
                payload.data = await upload.read()
            except OSError as e:
                raise StorageError(f"Cannot read upload {upload.filename}: {e}") from e
            payload.filename = upload.filename
            payload.content_type = upload.content_type
        return payload

    try:
        body = TaskCreate.model_validate(await request.json())
    except (ValueError, PydanticValidationError):
        raise ValidationError("Task text required")
    return CreatePayload(text=body.text)


def discard_attachment(attachments: AttachmentStore, reference: str):
    try:
        attachments.delete(reference)
    except TaskError as e:
        logger.error("Could not discard attachment %s: %s", reference, e.message)


def to_response(task) -> TaskResponse:
    return TaskResponse.model_validate(task)


@router.post("/create", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: CreatePayload = Depends(parse_create_payload),
    db: Session = Depends(get_db),
    attachments: AttachmentStore = Depends(get_attachments)
):
    # valider avant d'écrire le fichier
    text = task_service.clean_text(payload.text)

    reference = None
    if payload.filename:
        reference = attachments.store(payload.data or b"", payload.filename, payload.content_type)

    try:
        return task_service.create_task(db, text, attachment=reference)
    except Exception:
        # pas de pièce jointe orpheline si la tâche n'est pas créée
        if reference:
            db.rollback()
            discard_attachment(attachments, reference)
        raise


@router.get("/view", response_model=List[TaskResponse])
def view_tasks(
    db: Session = Depends(get_db),
    status_filter: str = Query("all", alias="status")
):
    return task_service.find_tasks(db, status_filter)


@router.get("/completed", response_model=List[TaskResponse])
def completed_tasks(db: Session = Depends(get_db)):
    return task_service.find_tasks(db, "completed")


@router.get("/file/{filename}")
def get_file(filename: str, attachments: AttachmentStore = Depends(get_attachments)):
    return attachments.retrieve(filename)


@router.patch("/status", response_model=TaskResponse)
def update_status(body: TaskStatusUpdate, db: Session = Depends(get_db)):
    return task_service.set_completed(db, body.primary, body.completed)


@router.put("/{task_id}", response_model=TaskResponse)
def update_text(task_id: str, body: TaskTextUpdate, db: Session = Depends(get_db)):
    return task_service.set_text(db, task_id, body.text)


@router.delete("/delete/{task_id}", response_model=TaskActionResponse)
def trash_task(task_id: str, db: Session = Depends(get_db)):
    task = task_service.soft_delete(db, task_id)
    return TaskActionResponse(message="Moved to trash", task=to_response(task))


@router.patch("/restore/{task_id}", response_model=TaskActionResponse)
def restore_task(task_id: str, db: Session = Depends(get_db)):
    task = task_service.restore(db, task_id)
    return TaskActionResponse(message="Task restored", task=to_response(task))


@router.delete("/permanent-delete/{task_id}", response_model=MessageResponse)
def permanent_delete(
    task_id: str,
    db: Session = Depends(get_db),
    attachments: AttachmentStore = Depends(get_attachments)
):
    task_service.permanently_delete(db, task_id, attachments)
    return MessageResponse(message="Task permanently deleted")
