"""Toolbox talk model."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship

from toolbox_subtitles.database import Base


class ToolboxTalk(Base):
    """A safety training talk owned by a tenant.

    Only the columns the subtitle pipeline reads are mapped here; the rest of
    the talk lives with the surrounding CRUD application.
    """

    __tablename__ = "toolbox_talks"

    id = Column(String(36), primary_key=True)  # UUID
    tenant_id = Column(String(36), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    subtitle_jobs = relationship(
        "SubtitleJob", back_populates="toolbox_talk", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<ToolboxTalk(id='{self.id}', title='{self.title}')>"
