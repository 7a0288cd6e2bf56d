"""Task model"""

import uuid
from sqlalchemy import Column, String, DateTime, Boolean
from datetime import datetime
from app.core.database import Base


def new_task_id() -> str:
    return uuid.uuid4().hex


class Task(Base):
    __tablename__ = "tasks"
    
    id = Column(String(32), primary_key=True, default=new_task_id)
    text = Column(String, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    attachment = Column(String, nullable=True)  # chemin relatif ou nom du blob
    
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    deleted_at = Column(DateTime, nullable=True, index=True)  # null = active
