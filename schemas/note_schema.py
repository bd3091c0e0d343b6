# note_schema.py
from typing import Annotated, List, Optional

from pydantic import BaseModel, Field

TagName = Annotated[str, Field(max_length=50)]


class NoteCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=10000)
    tags: List[TagName] = Field(default_factory=list, max_length=20)


class NoteUpdate(BaseModel):
    """Every field optional; only the ones sent are applied."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=10000)
    tags: Optional[List[TagName]] = Field(default=None, max_length=20)
