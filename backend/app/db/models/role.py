from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True, default="")
    # Raw stored shape; may be legacy read/write/delete. Read via normalize_permissions().
    permissions: Mapped[dict] = mapped_column(JSON, default=dict)
