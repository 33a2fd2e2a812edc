from pydantic import BaseModel, Field, StrictBool

PermissionsIn = dict[str, dict[str, StrictBool]]


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = ""
    permissions: PermissionsIn | None = None


class RoleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    # Replaces the whole matrix; modules left out end up all-false.
    permissions: PermissionsIn | None = None


class RoleOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    permissions: dict[str, dict[str, bool]]
    granted_count: int
    is_admin: bool
