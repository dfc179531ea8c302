from __future__ import annotations

from earnloop.handlers import checkin, earn_status, get_profile, open_account


async def test_open_account_and_profile(ctx):
    opened = await open_account(ctx, email="  New.User@Example.com ")

    assert opened["success"] is True
    uid = opened["data"]["user_id"]
    assert opened["data"]["email"] == "new.user@example.com"

    profile = await get_profile(ctx, user_id=uid)
    assert profile["data"]["balance"]["credits_balance"] == 0
    assert profile["data"]["streak"]["state"] == "fresh"


async def test_duplicate_email(ctx):
    await open_account(ctx, email="dup@example.com")
    again = await open_account(ctx, email="dup@example.com")

    assert again["success"] is False
    assert again["status"] == 409
    assert again["error"]["code"] == "EMAIL_EXISTS"


async def test_invalid_email(ctx):
    res = await open_account(ctx, email="nope")

    assert res["error"]["code"] == "INVALID_EMAIL"


async def test_unknown_profile(ctx):
    res = await get_profile(ctx, user_id=12345)

    assert res["status"] == 404
    assert res["error"]["code"] == "USER_NOT_FOUND"


async def test_status_after_checkin(ctx, make_user):
    uid = await make_user("status@example.com")
    await checkin(ctx, user_id=uid)

    res = await earn_status(ctx, user_id=uid)

    assert res["success"] is True
    assert res["data"]["checked_in_today"] is True
    assert res["data"]["today_earned"] == ctx.settings.checkin_reward
    assert res["data"]["total_earned"] == ctx.settings.checkin_reward
