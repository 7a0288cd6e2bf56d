"""Task service"""

import logging
from sqlalchemy.orm import Session
from datetime import datetime
from typing import List, Optional
from app.core.errors import NotFoundError, StorageError, ValidationError
from app.models.task import Task
from app.services.attachment_store import AttachmentStore

logger = logging.getLogger(__name__)

ACTIVE = Task.deleted_at.is_(None)
TRASHED = Task.deleted_at.isnot(None)


def clean_text(text: Optional[str]) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("Task text required")
    return cleaned


def create_task(db: Session, text: str, attachment: Optional[str] = None) -> Task:
    task = Task(text=clean_text(text), attachment=attachment, completed=False)
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info("Created task %s", task.id)
    return task


def find_tasks(db: Session, status: str = "all") -> List[Task]:
    query = db.query(Task)

    if status == "trashed":
        query = query.filter(TRASHED)
    else:
        # statut inconnu => comme "all"
        query = query.filter(ACTIVE)
        if status == "completed":
            query = query.filter(Task.completed == True)
        elif status == "incomplete":
            query = query.filter(Task.completed == False)

    return query.order_by(Task.created_at.desc()).all()


def _update_one(db: Session, task_id: str, state, values: dict, not_found: str) -> Task:
    # garde d'état et écriture dans le même UPDATE
    updated = db.query(Task).filter(Task.id == task_id, state).update(values, synchronize_session=False)
    if not updated:
        db.rollback()
        raise NotFoundError(not_found)
    db.commit()

    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise NotFoundError(not_found)
    return task


def set_completed(db: Session, task_id: str, completed: bool) -> Task:
    return _update_one(db, task_id, ACTIVE, {Task.completed: completed}, "Task not found")


def set_text(db: Session, task_id: str, text: str) -> Task:
    cleaned = clean_text(text)
    return _update_one(db, task_id, ACTIVE, {Task.text: cleaned}, "Task not found")


def soft_delete(db: Session, task_id: str) -> Task:
    task = _update_one(
        db, task_id, ACTIVE, {Task.deleted_at: datetime.utcnow()}, "Task not found or already trashed"
    )
    logger.info("Moved task %s to trash", task.id)
    return task


def restore(db: Session, task_id: str) -> Task:
    task = _update_one(db, task_id, TRASHED, {Task.deleted_at: None}, "Task not found in trash")
    logger.info("Restored task %s", task.id)
    return task


def trashed_attachment(db: Session, task_id: str) -> Optional[str]:
    attachment = db.query(Task.attachment).filter(Task.id == task_id, TRASHED).scalar()
    db.rollback()  # lecture seule, rien ne reste ouvert
    return attachment


def permanently_delete(db: Session, task_id: str, attachments: AttachmentStore) -> None:
    attachment = trashed_attachment(db, task_id)

    # ne supprime que si la tâche est toujours en corbeille
    deleted = db.query(Task).filter(Task.id == task_id, TRASHED).delete(synchronize_session=False)
    if not deleted:
        db.rollback()
        raise NotFoundError("Task not found or not trashed")

    # la pièce jointe part dans la même transaction, sinon la tâche reste en corbeille
    if attachment:
        try:
            attachments.delete(attachment, session=db)
        except NotFoundError as e:
            db.rollback()
            raise StorageError(f"Attachment {attachment} of task {task_id} is missing") from e
        except StorageError:
            db.rollback()
            raise

    db.commit()
    logger.info("Permanently deleted task %s", task_id)
