from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.config import DEFAULT_CATEGORY


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VideoCreate(CamelModel):
    title: str = Field(min_length=1)
    description: str = ""
    filename: str           # name on disk
    original_filename: str  # name offered on download
    file_size: int = Field(ge=0)
    duration: Optional[str] = ""
    category: str = DEFAULT_CATEGORY
    thumbnail_url: Optional[str] = ""


class VideoUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    duration: Optional[str] = None
    category: Optional[str] = None
    thumbnail_url: Optional[str] = None


class Video(VideoCreate):
    id: str
    upload_date: datetime


class DeleteResult(BaseModel):
    success: bool


class ErrorBody(BaseModel):
    error: str
