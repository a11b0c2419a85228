import json

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select, update

from svgmotion.config import Settings
from svgmotion.main import create_app
from svgmotion.models.credit import CreditTransaction
from svgmotion.models.user import User

TEST_PASSWORD = "secret123"


class FakeUpstream:
    """替代 DeepSeek 的 MockTransport，记录收到的请求"""

    def __init__(self):
        self.status_code = 200
        self.lines = [
            'data: {"choices":[{"delta":{"role":"assistant"}}]}',
            'data: {"choices":[{"delta":{"content":"<svg>"}}]}',
            "data: {not json",
            "",
            'data: {"choices":[{"delta":{"content":"</svg>"}}]}',
            "data: [DONE]",
            'data: {"choices":[{"delta":{"content":"after-done"}}]}',
        ]
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(
                self.status_code,
                json={"error": {"message": "upstream exploded"}},
            )
        body = "".join(line + "\n" for line in self.lines)
        return httpx.Response(
            200,
            content=body.encode("utf-8"),
            headers={"content-type": "text/event-stream"},
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def last_payload(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings_overrides():
    return {}


@pytest.fixture
def settings(tmp_path, settings_overrides):
    values = {
        "_env_file": None,
        "environment": "test",
        "database_url": "",
        "local_database_path": str(tmp_path / "svgmotion-test.db"),
        "redis_url": "",
        "jwt_secret_key": "test-secret-key-for-unit-tests-only-0123456789",
        "deepseek_api_key": "sk-testkey123456",
        "deepseek_base_url": "https://upstream.test",
        "sentry_dsn": "",
    }
    values.update(settings_overrides)
    return Settings(**values)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
async def app(settings, upstream):
    # ASGITransport 不触发 lifespan，这里手动建表
    application = create_app(settings, model_transport=upstream.transport)
    await application.state.database.create_all()
    yield application
    await application.state.database.dispose()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def signup(client):
    """注册并登录，返回 (用户 ID, 认证头)"""

    async def _signup(email: str = "alice@example.com", password: str = TEST_PASSWORD):
        resp = await client.post("/api/auth/register", json={"email": email, "password": password})
        assert resp.status_code == 201, resp.text
        login = await client.post("/api/auth/login", json={"email": email, "password": password})
        assert login.status_code == 200, login.text
        return resp.json()["user"]["id"], {"Authorization": f"Bearer {login.json()['token']}"}

    return _signup


@pytest.fixture
def set_balance(app):
    async def _set_balance(user_id: str, value: int) -> None:
        async with app.state.database.session() as session:
            await session.execute(
                update(User).where(User.id == user_id).values(credit_balance=value)
            )
            await session.commit()

    return _set_balance


@pytest.fixture
def ledger(app):
    async def _ledger(user_id: str):
        async with app.state.database.session() as session:
            result = await session.execute(
                select(CreditTransaction)
                .where(CreditTransaction.user_id == user_id)
                .order_by(CreditTransaction.seq.asc())
            )
            return list(result.scalars().all())

    return _ledger


@pytest.fixture
def balance_of(app):
    async def _balance_of(user_id: str) -> int:
        async with app.state.database.session() as session:
            result = await session.execute(
                select(User.credit_balance).where(User.id == user_id)
            )
            return result.scalar_one()

    return _balance_of
