"""Explicit caller context passed into every service call."""

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"


@dataclass(frozen=True)
class AuthContext:
    """The authenticated caller, resolved once per request."""

    user_id: int
    role: Role
    name: str
    email: str

    @property
    def is_teacher(self) -> bool:
        return self.role is Role.TEACHER

    @property
    def is_student(self) -> bool:
        return self.role is Role.STUDENT
