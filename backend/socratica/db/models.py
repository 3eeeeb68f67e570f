"""Database models for Socratica.

This module defines SQLAlchemy ORM models for:
- Users (teacher and student profiles)
- Courses, Assignments and Enrollments
- Conversations and Messages
- Materials and their extracted text chunks
"""

from sqlalchemy import (
    Boolean,
    Column,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base, utcnow_iso


class User(Base):
    """Account and display profile for teachers and students."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(Enum("teacher", "student", name="user_role"), nullable=False)
    created_at = Column(String(50), default=utcnow_iso)

    courses = relationship("Course", back_populates="teacher", cascade="all, delete-orphan")


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    teacher_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    join_code = Column(String(16), unique=True, nullable=False, index=True)
    created_at = Column(String(50), default=utcnow_iso)

    teacher = relationship("User", back_populates="courses")
    assignments = relationship("Assignment", back_populates="course", cascade="all, delete-orphan")


class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    allow_direct_answers = Column(Boolean, default=False, nullable=False)
    due_date = Column(String(50), nullable=True)
    created_at = Column(String(50), default=utcnow_iso)

    course = relationship("Course", back_populates="assignments")


class Enrollment(Base):
    """Student enrollment in a course."""
    __tablename__ = "enrollments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(String(50), default=utcnow_iso)

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="unique_enrollment"),
    )


class Conversation(Base):
    """Tutoring thread between one student and the tutor for one assignment."""
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    assignment_id = Column(Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(String(50), default=utcnow_iso)

    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("student_id", "assignment_id", name="unique_student_assignment"),
        Index("idx_conversation_course_assignment", "course_id", "assignment_id"),
    )


class Message(Base):
    """Append-only conversation entry.

    ``sender`` and ``text`` never change. A student message's tagging columns
    are filled once, together with the tutor reply that assessed it.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    sender = Column(Enum("student", "tutor", name="message_sender"), nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(String(50), default=utcnow_iso, nullable=False)
    question_number = Column(Integer, nullable=True)
    topic_tag = Column(String(255), nullable=True)
    confusion_flag = Column(Boolean, nullable=True)
    grounded_flag = Column(Boolean, nullable=True)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("idx_message_conversation_created", "conversation_id", "created_at"),
    )


class Material(Base):
    """Teacher-uploaded document for a course, optionally scoped to an assignment."""
    __tablename__ = "materials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    assignment_id = Column(Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    kind = Column(
        Enum("reading", "slides", "assignment", "answers", "other", name="material_kind"),
        nullable=False,
    )
    storage_path = Column(String(512), nullable=False)
    file_size = Column(Integer, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    text_extracted = Column(Boolean, default=False, nullable=False)
    created_at = Column(String(50), default=utcnow_iso)

    chunks = relationship(
        "MaterialTextChunk",
        back_populates="material",
        cascade="all, delete-orphan",
        order_by="MaterialTextChunk.chunk_index",
    )


class MaterialTextChunk(Base):
    __tablename__ = "material_text"

    id = Column(Integer, primary_key=True, autoincrement=True)
    material_id = Column(Integer, ForeignKey("materials.id", ondelete="CASCADE"), nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)

    material = relationship("Material", back_populates="chunks")

    __table_args__ = (
        UniqueConstraint("material_id", "chunk_index", name="unique_material_chunk"),
    )
