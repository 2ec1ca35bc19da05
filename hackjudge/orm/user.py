"""
hackjudge/orm/user.py
Platform user. The global role only gates which dashboards a user sees;
event-scoped rights come from assignments and ownership.
"""
from enum import Enum

from sqlalchemy import Column, Integer, String, Boolean, Enum as SQLEnum

from hackjudge.orm.base import TimestampedModel


class UserRole(str, Enum):
    participant = "participant"
    judge = "judge"
    organizer = "organizer"


class User(TimestampedModel):
    __tablename__ = "users"

    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(200), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.participant, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
