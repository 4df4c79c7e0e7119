from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class BookBase(BaseModel):
    isbn: str = Field(min_length=1, max_length=32)
    title: str = Field(max_length=300)
    author: str = Field(max_length=150)
    price: int = Field(0, ge=0)


class BookCreate(BookBase):
    pass


class BookUpdate(BaseModel):
    isbn: str | None = Field(None, min_length=1, max_length=32)
    title: str | None = Field(None, max_length=300)
    author: str | None = Field(None, max_length=150)
    price: int | None = Field(None, ge=0)


class Book(BookBase):
    id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None
    model_config = ConfigDict(from_attributes=True)


class CheckResult(BaseModel):
    found: bool
    price: int = 0
