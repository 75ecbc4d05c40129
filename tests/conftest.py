"""Shared fixtures: SQLite database, seed data and fake remote services."""

import base64
import json
from datetime import datetime
from typing import Any

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from gradewise_api.db.database import init_db, make_session_factory
from gradewise_api.db.models import Assignment, Course, CourseSettings, Submission, User
from gradewise_core.errors import AnalysisServiceError
from gradewise_core.retry import RetryConfig
from gradewise_core.vcs.base import VCSConfig
from gradewise_core.vcs.github import GitHubClient

NO_WAIT_RETRY = RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=False)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine; every transaction takes the write lock up front."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'gradewise.db'}",
        poolclass=NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


class Seeder:
    """Creates the rows a submission hangs off."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory
        self._counter = 0

    async def course(self, rubric: str | None = None, guidelines: str | None = None) -> Course:
        self._counter += 1
        async with self.session_factory() as session:
            course = Course(title=f"Course {self._counter}")
            session.add(course)
            await session.flush()
            if rubric or guidelines:
                session.add(
                    CourseSettings(course_id=course.id, rubric=rubric, ai_guidelines=guidelines)
                )
            await session.commit()
            return course

    async def submission(
        self,
        github_url: str = "https://github.com/student/repo",
        branch: str | None = None,
        status: str = "pending",
        webhook_secret: str | None = "s3cret",
        commit_sha: str | None = None,
        updated_at: datetime | None = None,
        course: Course | None = None,
        ai_score: int | None = None,
    ) -> Submission:
        self._counter += 1
        course = course or await self.course()
        async with self.session_factory() as session:
            user = User(name=f"Student {self._counter}", email=f"student{self._counter}@example.com")
            assignment = Assignment(course_id=course.id, title=f"Assignment {self._counter}")
            session.add_all([user, assignment])
            await session.flush()
            submission = Submission(
                assignment_id=assignment.id,
                user_id=user.id,
                github_url=github_url,
                branch=branch,
                status=status,
                webhook_secret=webhook_secret,
                commit_sha=commit_sha,
                ai_score=ai_score,
            )
            if updated_at is not None:
                submission.updated_at = updated_at
            session.add(submission)
            await session.commit()
            return submission

    async def reload(self, submission_id: int) -> Submission:
        async with self.session_factory() as session:
            submission = await session.get(Submission, submission_id)
            assert submission is not None
            return submission


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


class FakeChatClient:
    """Scripted LLM: returns (or raises) the queued responses in order.

    When the queue runs dry the last entry is repeated.
    """

    def __init__(self, responses: list[Any] | None = None) -> None:
        self.responses = list(responses or ["[]"])
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, AnalysisServiceError):
            raise response
        if callable(response):
            return response(system_prompt, user_prompt)
        return response


@pytest.fixture
def fake_llm() -> FakeChatClient:
    return FakeChatClient()


def review_json(*items: dict[str, Any]) -> str:
    return json.dumps(list(items))


def contents_payload(path: str, content: str) -> dict[str, Any]:
    return {
        "type": "file",
        "path": path,
        "encoding": "base64",
        "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
    }


class FakeGitHub:
    """In-memory GitHub REST API served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.commits: dict[str, list[dict[str, Any]]] = {}
        self.contents: dict[tuple[str, str], str] = {}
        self.failures: dict[str, list[httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add_commit(self, sha: str, files: dict[str, str], status: str = "added") -> None:
        self.commits[sha] = [{"filename": path, "status": status} for path in files]
        for path, content in files.items():
            self.contents[(path, sha)] = content

    def fail_next(self, path_fragment: str, *responses: httpx.Response) -> None:
        self.failures.setdefault(path_fragment, []).extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        for fragment, queued in self.failures.items():
            if fragment in path and queued:
                return queued.pop(0)

        parts = path.strip("/").split("/")
        # /repos/{owner}/{repo}/commits/{sha}
        if len(parts) == 5 and parts[3] == "commits":
            files = self.commits.get(parts[4])
            if files is None:
                return httpx.Response(404, json={"message": "No commit found"})
            return httpx.Response(200, json={"sha": parts[4], "files": files})
        # /repos/{owner}/{repo}/contents/{path}
        if len(parts) >= 5 and parts[3] == "contents":
            file_path = "/".join(parts[4:])
            ref = request.url.params.get("ref", "")
            content = self.contents.get((file_path, ref))
            if content is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=contents_payload(file_path, content))
        if len(parts) == 3 and parts[0] == "repos":
            return httpx.Response(
                200,
                json={
                    "id": 1,
                    "name": parts[2],
                    "full_name": f"{parts[1]}/{parts[2]}",
                    "default_branch": "main",
                    "private": False,
                },
            )
        return httpx.Response(404, json={"message": "Not Found"})

    def client(self) -> GitHubClient:
        return GitHubClient(
            VCSConfig(base_url="https://api.github.test", token="test-token"),
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def no_wait_retry() -> RetryConfig:
    return NO_WAIT_RETRY


def status_error(status: int, headers: dict[str, str] | None = None) -> httpx.Response:
    return httpx.Response(status, headers=headers or {}, json={"message": "error"})
