import pytest

from engine.payments import REVEAL_PRICE, Purchase, parse_payload, premium_payload, reveal_payload

DAY = 86400


def test_payload_codec():
    assert parse_payload(premium_payload(7)) == Purchase("premium", 7)
    assert parse_payload(reveal_payload(12345)) == Purchase("reveal", 12345)
    assert parse_payload("premium_x") is None
    assert parse_payload("gift_3") is None
    assert parse_payload("") is None
    assert parse_payload(None) is None


@pytest.mark.asyncio
async def test_premium_purchase_starts_now(core, register, clock):
    await register(1)
    user = await core.payments.on_premium_purchased(1, 7, 30)
    assert user.is_premium
    assert user.premium_expires_at == clock.now + 7 * DAY


@pytest.mark.asyncio
async def test_premium_purchase_extends_active_premium(core, register, clock):
    await register(1, premium_days=3)
    user = await core.payments.on_premium_purchased(1, 30, 50)
    assert user.premium_expires_at == clock.now + 33 * DAY


@pytest.mark.asyncio
async def test_premium_purchase_after_expiry_restarts(core, register, clock):
    await register(1, premium_days=1)
    clock.advance(5 * DAY)
    user = await core.payments.on_premium_purchased(1, 1, 10)
    assert user.premium_expires_at == clock.now + DAY


@pytest.mark.asyncio
async def test_premium_purchase_for_unknown_user(core):
    assert await core.payments.on_premium_purchased(404, 1, 10) is None


@pytest.mark.asyncio
async def test_checkout_validation(core, register):
    await register(1)
    await register(2)
    await register(3)
    await core.engine.request_match(1)
    await core.engine.request_match(2)

    check = core.payments.validate_checkout
    assert await check(1, premium_payload(7), 30) is None
    assert await check(1, premium_payload(7), 10) == "wrong_amount"
    assert await check(1, premium_payload(2), 10) == "unknown_plan"
    assert await check(1, "bogus", 10) == "unknown_payload"
    assert await check(404, premium_payload(1), 10) == "not_registered"
    assert await check(1, reveal_payload(2), REVEAL_PRICE) is None
    assert await check(1, reveal_payload(3), REVEAL_PRICE) == "session_ended"


@pytest.mark.asyncio
async def test_reveal_only_for_current_partner(core, register):
    await register(1)
    await register(2)
    await core.engine.request_match(1)
    await core.engine.request_match(2)

    pair = await core.payments.on_identity_reveal_purchased(1, 2)
    assert pair is not None
    user, partner = pair
    assert (user.user_id, partner.user_id) == (1, 2)

    await core.engine.end_session(1)
    assert await core.payments.on_identity_reveal_purchased(1, 2) is None


@pytest.mark.asyncio
async def test_purchases_are_recorded(core, register, store, clock):
    await register(1)
    await register(2)
    await core.payments.on_premium_purchased(1, 30, 50, charge_id="ch_premium")
    await core.engine.request_match(1)
    await core.engine.request_match(2)
    await core.payments.on_identity_reveal_purchased(1, 2, charge_id="ch_reveal")

    reveal, premium = await store.list_purchases(1)
    assert (reveal["kind"], reveal["amount"], reveal["charge_id"]) == ("reveal", REVEAL_PRICE, "ch_reveal")
    assert (premium["kind"], premium["days"], premium["amount"]) == ("premium", 30, 50)
    assert premium["expires_at"] == clock.now + 30 * DAY


@pytest.mark.asyncio
async def test_refused_reveal_is_not_recorded(core, register, store):
    await register(1)
    await register(2)
    assert await core.payments.on_identity_reveal_purchased(1, 2, charge_id="ch_late") is None
    assert await store.list_purchases(1) == []
