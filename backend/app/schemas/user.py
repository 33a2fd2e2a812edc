from datetime import datetime

from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=4, max_length=128)
    full_name: str = Field(min_length=1, max_length=200)
    email: str | None = None
    phone: str | None = None
    role_id: int | None = None
    is_active: bool = True


class UserUpdate(BaseModel):
    is_active: bool | None = None
    role_id: int | None = None
    full_name: str | None = Field(default=None, min_length=1, max_length=200)
    email: str | None = None
    phone: str | None = None


class UserOut(BaseModel):
    id: int
    username: str
    full_name: str
    email: str | None = None
    phone: str | None = None
    role_id: int | None = None
    role_name: str | None = None
    is_active: bool
    created_at: datetime | None = None

    class Config:
        from_attributes = True
