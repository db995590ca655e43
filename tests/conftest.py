import json
import sqlite3
from typing import Any, AsyncGenerator, Dict, Generator, List, NamedTuple

import httpx
import pytest
from sqlalchemy.dialects import sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from sqlalchemy.schema import CreateIndex, CreateTable

from chat_service.clients.d1_client import D1Client
from chat_service.database import Base, create_schema, enable_sqlite_foreign_keys
from chat_service.models.api.users import UserResponse
from chat_service.repositories.auth_repository import (
    AuthRepository,
    D1AuthRepository,
    SqlAlchemyAuthRepository,
)
from chat_service.repositories.chat_repository import ChatRepository
from chat_service.repositories.d1_chat_repository import D1ChatRepository
from chat_service.repositories.sqlalchemy_chat_repository import (
    SqlAlchemyChatRepository,
)
from chat_service.repositories.user_repository import (
    D1UserRepository,
    SqlAlchemyUserRepository,
    UserRepository,
)

D1_TEST_BASE_URL = "https://d1.test/client/v4"


class FakeD1Database:
    """Serves the D1 query API from an in-memory SQLite database.

    The schema is compiled from the SQLAlchemy metadata, so both backends
    are exercised against the same tables and constraints.
    """

    def __init__(self) -> None:
        import chat_service.models.db  # noqa: F401

        self.connection = sqlite3.connect(":memory:", isolation_level=None)
        self.connection.row_factory = sqlite3.Row
        self.connection.execute("PRAGMA foreign_keys=ON")
        dialect = sqlite.dialect()
        for table in Base.metadata.sorted_tables:
            self.connection.execute(str(CreateTable(table).compile(dialect=dialect)))
            for index in table.indexes:
                self.connection.execute(str(CreateIndex(index).compile(dialect=dialect)))
        self.statements: List[Dict[str, Any]] = []
        self.fail_matching: List[str] = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        sql, params = payload["sql"], payload.get("params", [])
        self.statements.append(payload)

        if any(fragment in sql for fragment in self.fail_matching):
            return self._error(500, "D1_ERROR: simulated failure")

        before = self.connection.total_changes
        try:
            cursor = self.connection.execute(sql, params)
            rows = [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            return self._error(400, f"{e}: SQLITE_CONSTRAINT")

        return httpx.Response(
            200,
            json={
                "result": [
                    {
                        "results": rows,
                        "success": True,
                        "meta": {"changes": self.connection.total_changes - before},
                    }
                ],
                "success": True,
                "errors": [],
                "messages": [],
            },
        )

    def close(self) -> None:
        self.connection.close()

    def _error(self, status_code: int, message: str) -> httpx.Response:
        return httpx.Response(
            status_code,
            json={
                "result": [],
                "success": False,
                "errors": [{"code": 7500, "message": message}],
                "messages": [],
            },
        )


class RepositorySet(NamedTuple):
    backend: str
    chat: ChatRepository
    users: UserRepository
    auth: AuthRepository


@pytest.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(sqlite_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        sqlite_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_d1() -> Generator[FakeD1Database, None, None]:
    database = FakeD1Database()
    yield database
    database.close()


@pytest.fixture
async def d1_client(fake_d1: FakeD1Database) -> AsyncGenerator[D1Client, None]:
    client = D1Client(
        account_id="account",
        database_id="database",
        api_token="token",
        base_url=D1_TEST_BASE_URL,
        transport=httpx.MockTransport(fake_d1.handle),
    )
    yield client
    await client.close()


@pytest.fixture(params=["sqlalchemy", "d1"])
def repos(
    request: Any, db_session: AsyncSession, d1_client: D1Client
) -> RepositorySet:
    """The same repository contract on both storage backends."""
    if request.param == "d1":
        return RepositorySet(
            backend="d1",
            chat=D1ChatRepository(d1_client),
            users=D1UserRepository(d1_client),
            auth=D1AuthRepository(d1_client),
        )
    return RepositorySet(
        backend="sqlalchemy",
        chat=SqlAlchemyChatRepository(db_session),
        users=SqlAlchemyUserRepository(db_session),
        auth=SqlAlchemyAuthRepository(db_session),
    )


@pytest.fixture
def make_user(repos: RepositorySet) -> Any:
    """Factory creating chat users on the current backend."""

    async def _make_user(id_alias: str, name: str = "") -> UserResponse:
        return await repos.users.create(id_alias=id_alias, name=name or id_alias.title())

    return _make_user
