"""
Status transitions: implicit confirmation, direct application, payment updates.
"""
import pytest

from pizzeria.core.exceptions import InvalidRequest, OrderNotFound
from pizzeria.models import DeliveryMethod, OrderStatus, PaymentStatus
from pizzeria.schemas.order import OrderLineIn
from pizzeria.services.transitions import AUTO_CONFIRM_MESSAGE, next_status, parse_status


async def new_order(repo, seed):
    return await repo.create_order(
        seed.customer_id,
        [OrderLineIn(product_id=seed.pizza_id, size="medium"), OrderLineIn(product_id=seed.drink_id, quantity=2)],
        DeliveryMethod.DELIVERY,
        seed.address_id,
    )


def persisted_statuses(redis, order_id):
    return [
        e["new"]["status"]
        for e in redis.messages("changes:orders")
        if e["event_type"] == "update" and e["new"]["id"] == order_id
        and e["old"]["status"] != e["new"]["status"]
    ]


@pytest.mark.asyncio
async def test_pending_to_preparing_confirms_first(policy, repo, seed, redis):
    order = await new_order(repo, seed)

    result = await policy.request_transition(order.id, "preparing")

    assert result.applied == [OrderStatus.CONFIRMED, OrderStatus.PREPARING]
    assert persisted_statuses(redis, order.id) == ["confirmed", "preparing"]
    assert result.messages[0] == AUTO_CONFIRM_MESSAGE
    assert result.order.status == OrderStatus.PREPARING


@pytest.mark.asyncio
@pytest.mark.parametrize("target", ["confirmed", "ready", "delivered", "cancelled", "completed"])
async def test_other_targets_from_pending_apply_directly(policy, repo, seed, redis, target):
    order = await new_order(repo, seed)

    result = await policy.request_transition(order.id, target)

    assert result.applied == [OrderStatus(target)]
    assert persisted_statuses(redis, order.id) == [target]
    assert AUTO_CONFIRM_MESSAGE not in result.messages


@pytest.mark.asyncio
async def test_confirmed_to_preparing_has_no_extra_hop(policy, repo, seed):
    order = await new_order(repo, seed)
    await policy.request_transition(order.id, "confirmed")

    result = await policy.request_transition(order.id, "preparing")
    assert result.applied == [OrderStatus.PREPARING]


@pytest.mark.asyncio
async def test_unknown_status_persists_nothing(policy, repo, seed, redis):
    order = await new_order(repo, seed)
    before = len(redis.published)

    with pytest.raises(InvalidRequest):
        await policy.request_transition(order.id, "baking")

    assert (await repo.get_order(order.id)).status == OrderStatus.PENDING
    assert len(redis.published) == before


@pytest.mark.asyncio
async def test_unknown_order(policy, seed):
    with pytest.raises(OrderNotFound):
        await policy.request_transition("missing", "ready")


@pytest.mark.asyncio
async def test_advance_follows_kitchen_flow(policy, repo, seed):
    order = await new_order(repo, seed)
    seen = []
    for _ in range(4):
        result = await policy.advance(order.id)
        seen.append(result.applied[-1])

    assert seen == [OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.DELIVERED]
    with pytest.raises(InvalidRequest):
        await policy.advance(order.id)


@pytest.mark.asyncio
async def test_paid_payment_confirms_order(policy, repo, seed):
    order = await new_order(repo, seed)

    result = await policy.update_payment(order.id, PaymentStatus.PAID, "cs_1")

    assert result.applied == [OrderStatus.CONFIRMED]
    stored = await repo.get_order(order.id)
    assert stored.payment_status == PaymentStatus.PAID
    assert stored.status == OrderStatus.CONFIRMED


@pytest.mark.asyncio
async def test_failed_payment_leaves_status(policy, repo, seed):
    order = await new_order(repo, seed)

    result = await policy.update_payment(order.id, PaymentStatus.FAILED)

    assert result.applied == []
    assert result.order.payment_status == PaymentStatus.FAILED
    assert result.order.status == OrderStatus.PENDING


def test_next_status_and_parse():
    assert next_status("pending") == OrderStatus.CONFIRMED
    assert next_status(OrderStatus.READY) == OrderStatus.DELIVERED
    assert next_status("delivered") is None
    assert next_status("cancelled") is None
    assert parse_status("ready") == OrderStatus.READY
    with pytest.raises(InvalidRequest):
        parse_status("eaten")


@pytest.mark.asyncio
async def test_redelivered_paid_webhook_does_not_move_order_back(policy, repo, seed):
    order = await new_order(repo, seed)
    await policy.update_payment(order.id, PaymentStatus.PAID, "cs_1")
    await policy.request_transition(order.id, "preparing")

    replay = await policy.update_payment(order.id, PaymentStatus.PAID, "cs_1")

    assert replay.applied == []
    assert replay.order.status == OrderStatus.PREPARING
    assert (await repo.get_order(order.id)).status == OrderStatus.PREPARING


@pytest.mark.asyncio
async def test_paid_after_kitchen_moved_on_keeps_status(policy, repo, seed):
    order = await new_order(repo, seed)
    await policy.request_transition(order.id, "ready")

    result = await policy.update_payment(order.id, PaymentStatus.PAID)

    assert result.applied == []
    assert result.order.payment_status == PaymentStatus.PAID
    assert result.order.status == OrderStatus.READY
