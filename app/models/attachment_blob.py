from sqlalchemy import Column, Integer, String, DateTime, LargeBinary
from datetime import datetime
from app.core.database import Base

class AttachmentBlob(Base):
    __tablename__ = "attachment_blobs"

    filename = Column(String, primary_key=True)  # uuid hex + extension d'origine
    content_type = Column(String, nullable=False, default="application/octet-stream")
    original_name = Column(String, nullable=True)
    length = Column(Integer, nullable=False, default=0)
    data = Column(LargeBinary, nullable=False)
    uploaded_at = Column(DateTime, default=datetime.utcnow)
