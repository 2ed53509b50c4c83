from decimal import Decimal

import httpx
import pytest

from api.dependencies import get_control_plane, get_notifier, get_task_dispatcher, get_uow_factory
from core.config import settings
from core.settings import payment_settings
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.yoomoney import compute_sha1
from main import app


SECRET = "wallet-secret"
ADMIN_TOKEN = "admin-token"


class RecordingTaskDispatcher:
    def __init__(self):
        self.reconciles: list[str] = []

    def enqueue_reconcile(self, payment_id: str, *, countdown=None) -> None:
        self.reconciles.append(payment_id)


@pytest.fixture
def task_dispatcher():
    return RecordingTaskDispatcher()


@pytest.fixture
async def api(uow_factory, control_plane, notifier, task_dispatcher, monkeypatch):
    monkeypatch.setattr(payment_settings.yoomoney, "notification_secret", SECRET)
    monkeypatch.setattr(settings, "ADMIN_API_TOKEN", ADMIN_TOKEN)
    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    app.dependency_overrides[get_control_plane] = lambda: control_plane
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_task_dispatcher] = lambda: task_dispatcher
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


def _yoomoney_form(label: str, **overrides) -> dict:
    form = {
        "notification_type": "p2p-incoming",
        "operation_id": "op-1",
        "amount": "196.00",
        "currency": "643",
        "datetime": "2026-10-19T09:00:00Z",
        "sender": "41001000040",
        "codepro": "false",
        "label": label,
    }
    form.update(overrides)
    form["sha1_hash"] = compute_sha1(form, SECRET)
    return form


async def test_platega_webhook_acknowledges_and_applies(api, seed):
    client = await seed.client()
    payment = await seed.payment(client.id, amount=Decimal("500.00"))

    resp = await api.post("/api/v1/webhooks/platega", json={"status": "CONFIRMED", "orderId": payment.order_id})

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    assert body["data"]["outcome"] == "topped_up"
    assert resp.headers["X-Request-ID"]
    assert (await seed.get_client(client.id)).balance == Decimal("500.00")


async def test_platega_garbage_body_is_acknowledged(api):
    resp = await api.post("/api/v1/webhooks/platega", content=b"not json", headers={"content-type": "application/json"})
    assert resp.status_code == 200
    assert resp.json()["data"]["outcome"] == "unparseable"


async def test_unknown_payment_is_acknowledged(api):
    resp = await api.post("/api/v1/webhooks/yookassa", json={"event": "payment.succeeded", "object": {"id": "zzz"}})
    assert resp.status_code == 200
    assert resp.json()["data"]["outcome"] == "not_found"


@pytest.mark.parametrize("path", ["/api/v1/webhooks/yookassa", "/api/v1/webhooks/yoomoney"])
async def test_probes(api, path):
    resp = await api.get(path)
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_yoomoney_valid_notification(api, seed):
    client = await seed.client()
    payment = await seed.payment(client.id, provider="yoomoney", amount=Decimal("200.00"))

    resp = await api.post("/api/v1/webhooks/yoomoney", data=_yoomoney_form(payment.id))

    assert resp.status_code == 200
    assert resp.json()["data"]["outcome"] == "topped_up"
    stored = await seed.get_payment(payment.id)
    assert stored.status is PaymentStatus.PAID
    assert stored.external_id == "op-1"
    assert (await seed.get_client(client.id)).balance == Decimal("200.00")


async def test_yoomoney_missing_fields_is_400(api):
    resp = await api.post("/api/v1/webhooks/yoomoney", data={"notification_type": "p2p-incoming"})
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "MissingParameter"


async def test_yoomoney_bad_signature_is_403(api, seed):
    form = _yoomoney_form("pay-x")
    form["amount"] = "1000000.00"
    resp = await api.post("/api/v1/webhooks/yoomoney", data=form)
    assert resp.status_code == 403


async def test_yoomoney_without_secret_is_500(api, monkeypatch):
    monkeypatch.setattr(payment_settings.yoomoney, "notification_secret", None)
    resp = await api.post("/api/v1/webhooks/yoomoney", data=_yoomoney_form("pay-x"))
    assert resp.status_code == 500


async def test_yoomoney_empty_body_is_acknowledged(api):
    resp = await api.post("/api/v1/webhooks/yoomoney", data={})
    assert resp.status_code == 200


async def test_admin_routes_require_token(api, seed):
    resp = await api.post("/api/v1/admin/payments/whatever/mark-paid")
    assert resp.status_code == 401
    resp = await api.post("/api/v1/admin/payments/whatever/mark-paid", headers={"X-Admin-Token": "wrong"})
    assert resp.status_code == 401


async def test_admin_mark_paid_and_reconcile(api, seed, task_dispatcher):
    headers = {"X-Admin-Token": ADMIN_TOKEN}
    client = await seed.client(telegram_id="77")
    tariff = await seed.tariff()
    payment = await seed.payment(client.id, tariff_id=tariff.id)

    resp = await api.post(f"/api/v1/admin/payments/{payment.id}/mark-paid", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["outcome"] == "fulfilled"

    resp = await api.post(f"/api/v1/admin/payments/{payment.id}/reconcile", headers=headers)
    assert resp.json()["data"]["outcome"] == "already_applied"

    resp = await api.post(f"/api/v1/admin/payments/{payment.id}/reconcile?background=true", headers=headers)
    assert resp.json()["data"] == {"payment_id": payment.id, "queued": True}
    assert task_dispatcher.reconciles == [payment.id]


async def test_admin_errors_use_unified_envelope(api, seed):
    headers = {"X-Admin-Token": ADMIN_TOKEN}
    resp = await api.post("/api/v1/admin/payments/missing/mark-paid", headers=headers)
    assert resp.status_code == 404
    assert resp.json()["error"]["type"] == "PaymentNotFound"

    client = await seed.client()
    failed = await seed.payment(client.id, status=PaymentStatus.FAILED)
    resp = await api.post(f"/api/v1/admin/payments/{failed.id}/mark-paid", headers=headers)
    assert resp.status_code == 409


async def test_health(api):
    resp = await api.get("/health")
    assert resp.json()["data"] == {"status": "healthy"}
