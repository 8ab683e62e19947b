"""User entity - credit balance holder."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from pixelift.core.timezone import utcnow


class UserRole(str, Enum):
    """User role. ADMIN accounts are exempt from credit debits."""

    USER = "USER"
    ADMIN = "ADMIN"


class User(SQLModel, table=True):
    """User owns photos and holds the credit balance spent on enhancements."""

    __tablename__ = "users"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: str = Field(max_length=320, unique=True, index=True)
    credits: int = Field(default=0, ge=0)
    role: UserRole = Field(default=UserRole.USER)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_unlimited(self) -> bool:
        """True if the account is exempt from debiting (balance is informational)."""
        return self.role == UserRole.ADMIN
