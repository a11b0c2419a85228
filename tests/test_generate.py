import asyncio

import pytest

from svgmotion.services.generation_service import SYSTEM_PROMPT


class FakePipeline:
    def __init__(self, store):
        self.store = store

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def incr(self, key):
        self.store[key] = self.store.get(key, 0) + 1
        return self

    async def expire(self, key, seconds):
        return self

    async def execute(self):
        return []


class FakeRedis:
    def __init__(self):
        self.store = {}

    async def get(self, key):
        value = self.store.get(key)
        return str(value) if value is not None else None

    def pipeline(self):
        return FakePipeline(self.store)


@pytest.mark.anyio
async def test_generate_streams_svg_and_debits_one_credit(client, signup, upstream, balance_of, ledger):
    user_id, headers = await signup()
    prompt = "一个在夜空中旋转发光的五角星，带有渐变色彩和闪烁效果，背景是深蓝色的星空"

    resp = await client.post("/api/generate", json={"prompt": prompt}, headers=headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.text == "<svg></svg>"

    assert await balance_of(user_id) == 9
    rows = await ledger(user_id)
    assert [row.type for row in rows] == ["gift", "use"]
    assert rows[-1].amount == -1
    assert rows[-1].balance_after == 9
    assert rows[-1].note == f"生成SVG动画: {prompt[:50]}"

    payload = upstream.last_payload()
    assert payload["stream"] is True
    assert payload["model"] == "deepseek-chat"
    assert payload["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert payload["messages"][1]["content"] == f"请生成以下 SVG 动画：{prompt}"
    assert upstream.requests[-1].headers["Authorization"] == "Bearer sk-testkey123456"
    assert str(upstream.requests[-1].url) == "https://upstream.test/chat/completions"


@pytest.mark.anyio
@pytest.mark.parametrize("body", [{}, {"prompt": ""}, {"prompt": "   "}, {"prompt": 42}])
async def test_generate_rejects_invalid_prompt(client, signup, upstream, balance_of, ledger, body):
    user_id, headers = await signup()

    resp = await client.post("/api/v1/generate", json=body, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"
    assert await balance_of(user_id) == 10
    assert len(await ledger(user_id)) == 1
    assert upstream.requests == []


@pytest.mark.anyio
async def test_generate_rejects_non_json_body(client):
    resp = await client.post(
        "/api/generate",
        content=b"not json",
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400


@pytest.mark.anyio
async def test_generate_with_zero_balance(client, signup, set_balance, upstream, balance_of, ledger):
    user_id, headers = await signup()
    await set_balance(user_id, 0)

    resp = await client.post("/api/generate", json={"prompt": "小球弹跳"}, headers=headers)
    assert resp.status_code == 403
    assert resp.json()["message"] == "积分不足，请充值"
    assert await balance_of(user_id) == 0
    assert [row.type for row in await ledger(user_id)] == ["gift"]
    assert upstream.requests == []


@pytest.mark.anyio
async def test_upstream_failure_keeps_debit(client, signup, upstream, balance_of, ledger):
    user_id, headers = await signup()
    upstream.status_code = 500

    resp = await client.post("/api/generate", json={"prompt": "旋转的方块"}, headers=headers)
    assert resp.status_code == 500
    assert resp.json()["error"] == "UPSTREAM_ERROR"
    assert "sk-" not in resp.text
    assert await balance_of(user_id) == 9
    assert [row.type for row in await ledger(user_id)] == ["gift", "use"]


@pytest.mark.anyio
@pytest.mark.parametrize("settings_overrides", [{"deepseek_api_key": ""}, {"deepseek_api_key": "你的API密钥粘贴在这里"}])
async def test_missing_api_key_is_configuration_error(client, signup, upstream, balance_of):
    user_id, headers = await signup()

    resp = await client.post("/api/generate", json={"prompt": "旋转的方块"}, headers=headers)
    assert resp.status_code == 500
    assert resp.json()["error"] == "CONFIGURATION_ERROR"
    assert resp.json()["message"] == "请先配置 DEEPSEEK_API_KEY"
    assert await balance_of(user_id) == 10
    assert upstream.requests == []


@pytest.mark.anyio
async def test_invalid_token_is_treated_as_anonymous(client, signup, upstream, balance_of):
    user_id, _ = await signup()

    resp = await client.post(
        "/api/generate",
        json={"prompt": "旋转的方块"},
        headers={"Authorization": "Bearer garbage"},
    )
    assert resp.status_code == 200
    assert resp.text == "<svg></svg>"
    assert len(upstream.requests) == 1
    assert await balance_of(user_id) == 10


@pytest.mark.anyio
async def test_token_for_missing_user_counts_as_insufficient_credits(client, app, upstream):
    token = app.state.signer.issue({"sub": "deleted-user"})

    resp = await client.post(
        "/api/generate",
        json={"prompt": "旋转的方块"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 403
    assert resp.json()["message"] == "积分不足，请充值"
    assert upstream.requests == []


@pytest.mark.anyio
@pytest.mark.parametrize("settings_overrides", [{"allow_anonymous_generation": False}])
async def test_anonymous_generation_can_be_disabled(client, upstream):
    resp = await client.post("/api/generate", json={"prompt": "旋转的方块"})
    assert resp.status_code == 401
    assert upstream.requests == []


@pytest.mark.anyio
@pytest.mark.parametrize("settings_overrides", [{"anonymous_generate_limit": 2}])
async def test_anonymous_generation_is_rate_limited(client, app, upstream):
    app.state.redis = FakeRedis()

    statuses = []
    for _ in range(3):
        resp = await client.post(
            "/api/generate",
            json={"prompt": "旋转的方块"},
            headers={"X-Forwarded-For": "203.0.113.9"},
        )
        statuses.append(resp.status_code)

    assert statuses == [200, 200, 429]
    assert len(upstream.requests) == 2
    assert app.state.redis.store == {"rate_limit:anon_generate:203.0.113.9": 2}


@pytest.mark.anyio
async def test_concurrent_generations_stop_at_zero_balance(client, signup, set_balance, balance_of, ledger):
    user_id, headers = await signup()
    await set_balance(user_id, 5)

    responses = await asyncio.gather(
        *[client.post("/api/generate", json={"prompt": "旋转的方块"}, headers=headers) for _ in range(8)]
    )

    assert sorted(resp.status_code for resp in responses) == [200] * 5 + [403] * 3
    assert await balance_of(user_id) == 0
    assert len([row for row in await ledger(user_id) if row.type == "use"]) == 5
