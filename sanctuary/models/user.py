from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import datetime

from sanctuary.core.timeutils import utc_now

STAFF_ROLES = ("admin", "member")


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    hashed_password: str
    username: Optional[str] = Field(default=None, nullable=True)
    first_name: Optional[str] = Field(default=None, nullable=True)
    last_name: Optional[str] = Field(default=None, nullable=True)
    role: str = Field(default="user")  # "admin", "member", "user"
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def is_staff(self) -> bool:
        """Admins and members may read analytics reports."""
        return self.role in STAFF_ROLES
