from __future__ import annotations

import enum

from sqlalchemy import Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from dams.db.base import Base
from dams.models.common import TimestampMixin


class Role(str, enum.Enum):
    admin = "admin"
    user = "user"
    viewer = "viewer"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str | None] = mapped_column(String(250), nullable=True)
    email: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    role: Mapped[Role] = mapped_column(
        Enum(Role, name="user_role", values_callable=lambda e: [x.value for x in e]),
        default=Role.user,
        nullable=False,
    )
