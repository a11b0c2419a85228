import pytest


@pytest.mark.anyio
async def test_list_packages(client):
    resp = await client.get("/api/v1/recharge")
    assert resp.status_code == 200
    packages = resp.json()["packages"]

    assert [p["id"] for p in packages] == ["basic", "standard", "premium"]
    assert packages[1] == {"id": "standard", "name": "标准套餐", "credits": 50, "price": 39.9, "popular": True}
    assert "popular" not in packages[0]
    assert "popular" not in packages[2]


@pytest.mark.anyio
async def test_recharge_standard_package(client, signup, set_balance, ledger):
    user_id, headers = await signup()
    await set_balance(user_id, 5)

    resp = await client.post("/api/recharge", json={"packageId": "standard"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"message": "充值成功", "credits": 55, "added": 50}

    rows = await ledger(user_id)
    assert rows[-1].type == "recharge"
    assert rows[-1].amount == 50
    assert rows[-1].balance_after == 55
    assert rows[-1].note == "充值 50 积分，支付 ¥39.9"


@pytest.mark.anyio
async def test_recharge_unknown_package(client, signup, balance_of, ledger):
    user_id, headers = await signup()

    resp = await client.post("/api/v1/recharge", json={"packageId": "gold"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "无效的充值套餐"

    resp = await client.post("/api/v1/recharge", json={}, headers=headers)
    assert resp.status_code == 400

    assert await balance_of(user_id) == 10
    assert len(await ledger(user_id)) == 1


@pytest.mark.anyio
async def test_recharge_requires_login(client):
    resp = await client.post("/api/recharge", json={"packageId": "basic"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "AUTH_ERROR"

    resp = await client.post(
        "/api/recharge",
        json={"packageId": "basic"},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert resp.status_code == 401
