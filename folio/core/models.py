"""Canonical record models (single source of truth).

These models describe the records stored as array elements inside collection documents,
plus the shapes returned by object storage and the activity feed.

Design note:
- Stored field names are camelCase (`createdAt`, `imageUrl`); Python attributes are snake_case
  with aliases, and records are always written back `by_alias`.
- Records allow extra fields so values written by older dashboard versions survive a round trip.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BaseRecord(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, str_strip_whitespace=True)

    id: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    def to_document_value(self) -> Dict[str, Any]:
        """The exact value written into a document's array field."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Project(BaseRecord):
    title: str = ""
    description: str = ""
    link: str = ""
    image_url: str = Field(default="", alias="imageUrl")


class Certification(BaseRecord):
    title: str = ""
    issuer: str = ""
    date: str = ""
    link: str = ""
    description: str = ""


class TimelineEvent(BaseRecord):
    year: Optional[int] = None
    title: str = ""
    description: str = ""

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, v: Any) -> Any:
        # Older documents stored the year as a form string.
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return None
            try:
                return int(float(s))
            except ValueError:
                return v
        return v


class KeySkill(BaseRecord):
    name: str = ""


class Skill(BaseRecord):
    name: str = ""
    level: Optional[int] = None


class Category(BaseRecord):
    name: str = ""
    skills: List[Skill] = Field(default_factory=list)


class BlobFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    pathname: str
    size: int = 0
    uploaded_at: Optional[str] = Field(default=None, alias="uploadedAt")


class UploadResult(BaseModel):
    url: str
    pathname: str


ActivityType = Literal["commit", "project", "certification", "timeline", "skill", "key_skill"]


class ActivityItem(BaseModel):
    type: ActivityType
    title: str
    description: str = ""
    timestamp: str
    url: Optional[str] = None
