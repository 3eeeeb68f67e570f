"""
Pytest configuration and fixtures for API and service tests.
"""

import io
import json
import sys
from pathlib import Path
from typing import Any, AsyncGenerator, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from langchain_core.messages import AIMessage
from pypdf import PdfWriter

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from socratica.agents.base.llm import get_tutor_llm
from socratica.db.base import close_all, init_databases
from socratica.main import app


@pytest.fixture(autouse=True)
async def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AsyncGenerator[Path, None]:
    """Fresh SQLite database and upload directory per test."""
    db_path = tmp_path / "socratica_test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))

    await close_all()
    await init_databases()
    yield db_path
    await close_all()
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client


# ==============================================================================
# Accounts
# ==============================================================================

async def register_user(client: AsyncClient, email: str, role: str, name: str = "Test User") -> dict:
    """Register an account and return its auth headers plus user id."""
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": "testpass123", "name": name, "role": role},
    )
    assert response.status_code == 201, response.text
    data = response.json()
    return {
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
        "user_id": data["user_id"],
    }


@pytest.fixture
async def teacher(async_client: AsyncClient) -> dict:
    return await register_user(async_client, "teacher@example.com", "teacher", "Prof. Rivera")


@pytest.fixture
async def student(async_client: AsyncClient) -> dict:
    return await register_user(async_client, "student@example.com", "student", "Sam Student")


@pytest.fixture
def auth_headers_teacher(teacher: dict) -> dict:
    return teacher["headers"]


@pytest.fixture
def auth_headers_student(student: dict) -> dict:
    return student["headers"]


# ==============================================================================
# Course data
# ==============================================================================

@pytest.fixture
async def course(async_client: AsyncClient, auth_headers_teacher: dict) -> dict:
    response = await async_client.post(
        "/api/v1/courses",
        headers=auth_headers_teacher,
        json={"code": "ECON101", "title": "Intro to Economics"},
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
async def assignment(async_client: AsyncClient, auth_headers_teacher: dict, course: dict) -> dict:
    response = await async_client.post(
        f"/api/v1/courses/{course['id']}/assignments",
        headers=auth_headers_teacher,
        json={"title": "Problem Set 1", "description": "Supply and demand"},
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
async def enrolled_student(
    async_client: AsyncClient, student: dict, course: dict
) -> dict:
    response = await async_client.post(
        "/api/v1/courses/join",
        headers=student["headers"],
        json={"join_code": course["join_code"]},
    )
    assert response.status_code == 200, response.text
    return student


@pytest.fixture
async def conversation(
    async_client: AsyncClient, enrolled_student: dict, assignment: dict
) -> dict:
    response = await async_client.post(
        "/api/v1/conversations",
        headers=enrolled_student["headers"],
        json={"assignment_id": assignment["id"]},
    )
    assert response.status_code == 200, response.text
    return response.json()


def make_pdf_bytes(pages: int = 1) -> bytes:
    """A valid PDF of blank pages."""
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


# ==============================================================================
# Chat model stub
# ==============================================================================

def tutor_payload(
    reply: str = "What does the demand curve tell you about price?",
    question_number: Optional[int] = 1,
    topic_tag: Optional[str] = "demand",
    confusion_flag: bool = False,
    confidence: float = 0.8,
) -> str:
    return json.dumps({
        "tutor_reply": reply,
        "question_number": question_number,
        "topic_tag": topic_tag,
        "confusion_flag": confusion_flag,
        "confidence": confidence,
    })


class StubChatModel:
    """Scripted stand-in for the tutor chat model.

    Each ``ainvoke`` pops the next scripted item: a string becomes the
    AIMessage content, an exception is raised.
    """

    def __init__(self, *responses: Any):
        self.responses: List[Any] = list(responses)
        self.calls: List[list] = []

    async def ainvoke(self, messages, *args, **kwargs) -> AIMessage:
        self.calls.append(list(messages))
        item = self.responses.pop(0) if self.responses else tutor_payload()
        if isinstance(item, Exception):
            raise item
        return AIMessage(content=item)


@pytest.fixture
def stub_llm() -> StubChatModel:
    stub = StubChatModel()
    app.dependency_overrides[get_tutor_llm] = lambda: stub
    return stub
