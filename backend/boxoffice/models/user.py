"""
User reference table.

Accounts are owned by the external auth service; we keep the rows seat holds
and bookings point at, plus the role used for authorization checks.
"""

import enum

from sqlalchemy import Column, Integer, String, Boolean, Enum

from boxoffice.db.base import Base, TimestampMixin


class UserRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    ORGANIZER = "ORGANIZER"
    ADMIN = "ADMIN"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(
        Enum(UserRole, native_enum=False, length=20, name="user_role"),
        nullable=False,
        default=UserRole.CUSTOMER,
    )
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
