"""Pydantic schemas for task request/response validation."""

from pydantic import BaseModel, ConfigDict, StrictBool, field_serializer
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from typing import Optional

# Schemas tâches

class TaskCreate(BaseModel):
    text: str

class TaskTextUpdate(BaseModel):
    text: str

class TaskStatusUpdate(BaseModel):
    """Bascule terminé / non terminé"""
    primary: str  # id de la tâche
    completed: StrictBool

class TaskResponse(BaseModel):
    id: str
    text: str
    completed: bool
    attachment: Optional[str]
    created_at: datetime
    deleted_at: Optional[datetime]

    # createdAt / deletedAt côté JSON
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    @field_serializer("created_at", "deleted_at")
    def serialize_utc(self, value: Optional[datetime]) -> Optional[str]:
        # stocké en UTC naïf => ISO avec "Z"
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class TaskActionResponse(BaseModel):
    message: str
    task: TaskResponse


class MessageResponse(BaseModel):
    message: str
