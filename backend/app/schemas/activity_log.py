from pydantic import BaseModel, Field


class ActivityLogCreate(BaseModel):
    action: str = Field(min_length=1, max_length=64)
    module: str = Field(min_length=1, max_length=64)
    description: str = Field(min_length=1)
    meta_json: dict | None = None
