"""User model definitions."""

import enum

from sqlalchemy import Column, Enum, Integer, String
from bughouse.database import Base


class UserRole(str, enum.Enum):
    STUDENT = "Student"
    TUTOR = "Tutor"
    ADMIN = "Admin"


class User(Base):
    """Represents a system user. Identity is issued elsewhere; the role lives here."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String)
    last_name = Column(String)
    role = Column(
        Enum(UserRole, name="user_role", native_enum=False, validate_strings=True),
        nullable=False,
        default=UserRole.STUDENT,
    )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part) or self.email
