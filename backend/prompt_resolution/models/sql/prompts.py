"""Prompt version model for versioned, labelled prompt storage.

Key structure: project_id + name + version
- Versions are immutable once written
- Labels (e.g. 'production') are mutable pointers stored on the version
  that currently holds them; at most one version per name holds a label

The write path (creating versions, moving labels) belongs to the store's
owner. The resolution engine only reads this table.
"""

import uuid
from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, Uuid, func

from .database import Base


class PromptVersion(Base):
    """One version of a named prompt within a project."""

    __tablename__ = "prompts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Identity
    project_id = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)  # may contain '/' for folders
    version = Column(Integer, nullable=False)  # Auto-incremented per project_id+name

    # Content
    prompt = Column(Text, nullable=False)  # Body, may contain {{ref:...}} references
    type = Column(String(20), nullable=False, default="text")
    config = Column(JSON, nullable=False, default=dict)

    # Mutable pointers
    labels = Column(JSON, nullable=False, default=list)  # list of label strings
    tags = Column(JSON, nullable=False, default=list)

    # Metadata
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    created_by = Column(String(255), nullable=True)
    commit_message = Column(Text, nullable=True)

    __table_args__ = (
        Index(
            "uq_prompts_project_name_version",
            "project_id",
            "name",
            "version",
            unique=True,
        ),
        # Index for fetching all versions of one name
        Index("idx_prompts_project_name", "project_id", "name"),
    )

    def __repr__(self) -> str:
        labels = ",".join(self.labels or [])
        label_str = f" [{labels}]" if labels else ""
        return f"<PromptVersion {self.project_id}/{self.name} v{self.version}{label_str}>"
