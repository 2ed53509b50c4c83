import asyncio
from datetime import timedelta

import pytest

from application.ports.control_plane import ControlPlaneError, Entitlement
from application.services.fulfillment_service import FulfillmentDispatcher, control_plane_username
from domain.catalog.entity import ProxyNode, plan_slot_placement
from domain.client.entity import Client
from domain.payment.entity import Payment, PaymentStatus, SubjectKind


GIB = 1024 ** 3


@pytest.mark.parametrize(
    "client, expected",
    [
        (Client(id="c-1", telegram_username="@neo.anderson"), "neo_anderson"),
        (Client(id="c-1", telegram_username="ab", telegram_id="12345"), "tg12345"),
        (Client(id="c-1", email="trinity@matrix.io"), "trinity"),
        (Client(id="c-1", email="ab@x.io"), "ab_x_io"),
        (Client(id="0f8e2c1a-9b7d-4e3f-8a6b-5c4d3e2f1a0b"), "user3e2f1a0b"),
    ],
)
def test_control_plane_username(client, expected):
    assert control_plane_username(client) == expected


def test_username_is_truncated_to_36_chars():
    name = control_plane_username(Client(id="c", telegram_username="x" * 50))
    assert len(name) == 36


def test_plan_slot_placement_round_robin_with_capacity():
    nodes = [
        ProxyNode(id="a", public_host="a", socks_port=1, http_port=2, capacity=1),
        ProxyNode(id="b", public_host="b", socks_port=1, http_port=2, capacity=None),
        ProxyNode(id="c", public_host="c", socks_port=1, http_port=2, capacity=2),
    ]
    placement = plan_slot_placement(nodes, {"c": 1}, 4)
    assert [n.id for n in placement] == ["a", "b", "c", "b"]

    full = plan_slot_placement(nodes[:1], {"a": 1}, 2)
    assert full == []


def test_subject_priority():
    payment = Payment(
        id="p",
        provider="platega",
        order_id="o",
        client_id="c",
        amount=1,
        tariff_id="t",
        proxy_tariff_id="pt",
        metadata={"extraOption": {"kind": "devices", "deviceCount": 1}},
    )
    assert payment.subject_kind is SubjectKind.EXTRA_OPTION
    payment.metadata = {}
    assert payment.subject_kind is SubjectKind.PROXY_TARIFF
    payment.proxy_tariff_id = None
    assert payment.subject_kind is SubjectKind.TARIFF
    payment.tariff_id = None
    assert payment.is_topup


async def test_tariff_creates_user_when_absent(uow_factory, seed, control_plane, clock):
    client = await seed.client(telegram_id="555", telegram_username="morpheus")
    tariff = await seed.tariff(traffic_limit_bytes=50 * GIB, device_limit=3, internal_squad_uuids=["sq-1"])
    payment = await seed.payment(client.id, tariff_id=tariff.id, status=PaymentStatus.PAID)

    result = await FulfillmentDispatcher(uow_factory, control_plane, clock=clock).dispatch(payment)

    assert result.ok
    created_uuid = result.details["remnawave_uuid"]
    user = control_plane.users[created_uuid]
    assert user.username == "morpheus"
    assert user.expire_at == clock.now + timedelta(days=30)
    assert user.traffic_limit_bytes == 50 * GIB
    assert user.device_limit == 3
    assert user.squad_uuids == ["sq-1"]
    assert (await seed.get_client(client.id)).remnawave_uuid == created_uuid


async def test_tariff_extends_future_expiry(uow_factory, seed, control_plane, clock):
    current_expiry = clock.now + timedelta(days=10)
    control_plane.add_user(Entitlement(uuid="u-1", expire_at=current_expiry))
    client = await seed.client(remnawave_uuid="u-1")
    tariff = await seed.tariff(duration_days=30)
    payment = await seed.payment(client.id, tariff_id=tariff.id, status=PaymentStatus.PAID)

    result = await FulfillmentDispatcher(uow_factory, control_plane, clock=clock).dispatch(payment)

    assert result.ok
    assert control_plane.users["u-1"].expire_at == current_expiry + timedelta(days=30)
    assert control_plane.users["u-1"].traffic_limit_bytes == 0
    assert control_plane.calls_named("create_user") == []


async def test_tariff_expired_subscription_restarts_from_now(uow_factory, seed, control_plane, clock):
    control_plane.add_user(Entitlement(uuid="u-1", expire_at=clock.now - timedelta(days=3)))
    client = await seed.client(remnawave_uuid="u-1")
    tariff = await seed.tariff(duration_days=7)
    payment = await seed.payment(client.id, tariff_id=tariff.id, status=PaymentStatus.PAID)

    await FulfillmentDispatcher(uow_factory, control_plane, clock=clock).dispatch(payment)
    assert control_plane.users["u-1"].expire_at == clock.now + timedelta(days=7)


async def test_tariff_finds_existing_user_by_email(uow_factory, seed, control_plane, clock):
    control_plane.add_user(Entitlement(uuid="u-mail"), email="a@b.io")
    client = await seed.client(email="a@b.io")
    tariff = await seed.tariff()
    payment = await seed.payment(client.id, tariff_id=tariff.id, status=PaymentStatus.PAID)

    result = await FulfillmentDispatcher(uow_factory, control_plane, clock=clock).dispatch(payment)

    assert result.details["remnawave_uuid"] == "u-mail"
    assert (await seed.get_client(client.id)).remnawave_uuid == "u-mail"


async def test_control_plane_error_becomes_failure(uow_factory, seed, control_plane, clock):
    control_plane.fail_with = ControlPlaneError("502 from panel", status_code=502)
    client = await seed.client(telegram_id="1")
    tariff = await seed.tariff()
    payment = await seed.payment(client.id, tariff_id=tariff.id, status=PaymentStatus.PAID)

    result = await FulfillmentDispatcher(uow_factory, control_plane, clock=clock).dispatch(payment)
    assert not result.ok
    assert "502 from panel" in result.error


async def test_missing_control_plane_and_tariff(uow_factory, seed, clock):
    client = await seed.client()
    tariff = await seed.tariff()
    payment = await seed.payment(client.id, tariff_id=tariff.id, status=PaymentStatus.PAID)
    result = await FulfillmentDispatcher(uow_factory, None, clock=clock).dispatch(payment)
    assert result.error == "Control plane is not configured"

    payment.tariff_id = "gone"
    result = await FulfillmentDispatcher(uow_factory, None, clock=clock).dispatch(payment)
    assert result.error == "Tariff gone not found"


async def test_dispatch_timeout(uow_factory, seed, control_plane, clock):
    class SlowControlPlane(type(control_plane)):
        async def find_user_by_telegram_id(self, telegram_id):
            await asyncio.sleep(5)

    client = await seed.client(telegram_id="1")
    tariff = await seed.tariff()
    payment = await seed.payment(client.id, tariff_id=tariff.id, status=PaymentStatus.PAID)

    dispatcher = FulfillmentDispatcher(uow_factory, SlowControlPlane(), timeout_seconds=0.05, clock=clock)
    result = await dispatcher.dispatch(payment)
    assert not result.ok
    assert "timed out" in result.error


async def test_tariff_retry_after_failed_update_grants_once(uow_factory, seed, control_plane, clock):
    class FlakyControlPlane(type(control_plane)):
        update_failures = 1

        async def update_user(self, update):
            if self.update_failures:
                self.update_failures -= 1
                raise ControlPlaneError("503 from panel", status_code=503)
            return await super().update_user(update)

    panel = FlakyControlPlane()
    client = await seed.client(telegram_id="777")
    tariff = await seed.tariff(duration_days=30)
    payment = await seed.payment(client.id, tariff_id=tariff.id, status=PaymentStatus.PAID)
    dispatcher = FulfillmentDispatcher(uow_factory, panel, clock=clock)

    first = await dispatcher.dispatch(payment)
    assert not first.ok
    created_uuid = (await seed.get_client(client.id)).remnawave_uuid
    assert panel.users[created_uuid].expire_at == clock.now

    clock.advance(minutes=5)
    second = await dispatcher.dispatch(payment)

    assert second.ok
    assert second.details["remnawave_uuid"] == created_uuid
    assert panel.users[created_uuid].expire_at == clock.now + timedelta(days=30)
    assert len(panel.calls_named("create_user")) == 1


async def test_proxy_slots_provisioned_round_robin(uow_factory, seed, clock):
    node_a = await seed.node()
    node_b = await seed.node(capacity=1)
    proxy_tariff = await seed.proxy_tariff(node_ids=[node_a, node_b], proxy_count=3, duration_days=14)
    client = await seed.client()
    payment = await seed.payment(client.id, proxy_tariff_id=proxy_tariff, status=PaymentStatus.PAID)

    result = await FulfillmentDispatcher(uow_factory, None, clock=clock).dispatch(payment)

    assert result.ok
    slots = await seed.slots(payment.id)
    assert len(slots) == 3 == len(result.slot_ids)
    assert sorted(s.node_id for s in slots).count(node_a) == 2
    assert len({s.login for s in slots}) == 3
    assert all(s.client_id == client.id for s in slots)
    assert len(result.details["connections"]) == 3


async def test_proxy_provisioning_is_all_or_nothing(uow_factory, seed, clock):
    node = await seed.node(capacity=2)
    proxy_tariff = await seed.proxy_tariff(node_ids=[node], proxy_count=3)
    client = await seed.client()
    payment = await seed.payment(client.id, proxy_tariff_id=proxy_tariff, status=PaymentStatus.PAID)

    result = await FulfillmentDispatcher(uow_factory, None, clock=clock).dispatch(payment)

    assert not result.ok
    assert "capacity" in result.error
    assert await seed.slots(payment.id) == []


async def test_proxy_offline_nodes_skipped_and_disabled_tariff(uow_factory, seed, clock):
    await seed.node(status="OFFLINE")
    disabled = await seed.proxy_tariff(enabled=False, proxy_count=1)
    client = await seed.client()
    payment = await seed.payment(client.id, proxy_tariff_id=disabled, status=PaymentStatus.PAID)
    result = await FulfillmentDispatcher(uow_factory, None, clock=clock).dispatch(payment)
    assert "disabled" in result.error

    enabled = await seed.proxy_tariff(proxy_count=1)
    payment = await seed.payment(client.id, proxy_tariff_id=enabled, status=PaymentStatus.PAID)
    result = await FulfillmentDispatcher(uow_factory, None, clock=clock).dispatch(payment)
    assert result.error == "No proxy nodes available"


@pytest.mark.parametrize(
    "option, check",
    [
        ({"kind": "traffic", "trafficBytes": 10 * GIB}, lambda u: u.traffic_limit_bytes == 60 * GIB),
        ({"kind": "devices", "deviceCount": 2}, lambda u: u.device_limit == 5),
        ({"kind": "servers", "squadUuid": "sq-2"}, lambda u: u.squad_uuids == ["sq-1", "sq-2"]),
        ({"kind": "servers", "squadUuid": "sq-1", "trafficBytes": GIB}, lambda u: u.squad_uuids == ["sq-1"] and u.traffic_limit_bytes == 51 * GIB),
    ],
)
async def test_extra_option_adds_on_top(uow_factory, seed, control_plane, clock, option, check):
    control_plane.add_user(
        Entitlement(uuid="u-1", traffic_limit_bytes=50 * GIB, device_limit=3, squad_uuids=["sq-1"])
    )
    client = await seed.client(remnawave_uuid="u-1")
    payment = await seed.payment(client.id, status=PaymentStatus.PAID, metadata={"extraOption": option})

    result = await FulfillmentDispatcher(uow_factory, control_plane, clock=clock).dispatch(payment)

    assert result.ok
    assert check(control_plane.users["u-1"])


@pytest.mark.parametrize(
    "option",
    [
        {"kind": "traffic", "trafficBytes": 10 * GIB},
        {"kind": "servers", "squadUuid": "sq-2", "trafficBytes": GIB},
    ],
)
async def test_extra_traffic_keeps_unlimited_plan_unlimited(uow_factory, seed, control_plane, clock, option):
    control_plane.add_user(Entitlement(uuid="u-1", traffic_limit_bytes=0, squad_uuids=["sq-1"]))
    client = await seed.client(remnawave_uuid="u-1")
    payment = await seed.payment(client.id, status=PaymentStatus.PAID, metadata={"extraOption": option})

    result = await FulfillmentDispatcher(uow_factory, control_plane, clock=clock).dispatch(payment)

    assert result.ok
    assert control_plane.users["u-1"].traffic_limit_bytes == 0


async def test_extra_option_requires_subscription_and_valid_descriptor(uow_factory, seed, control_plane, clock):
    client = await seed.client()
    payment = await seed.payment(
        client.id, status=PaymentStatus.PAID, metadata={"extraOption": {"kind": "traffic", "trafficBytes": 1}}
    )
    result = await FulfillmentDispatcher(uow_factory, control_plane, clock=clock).dispatch(payment)
    assert result.error == "Client has no VPN subscription yet"

    broken = await seed.payment(client.id, status=PaymentStatus.PAID, metadata={"extraOption": {"kind": "traffic"}})
    result = await FulfillmentDispatcher(uow_factory, control_plane, clock=clock).dispatch(broken)
    assert not result.ok
    assert "Invalid extraOption" in result.error
