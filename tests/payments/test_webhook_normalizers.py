import hashlib

import pytest

from application.dtos.payments import StatusBucket
from domain.common.exceptions import MissingParameterException
from infrastructure.external.payments import get_webhook_normalizer
from infrastructure.external.payments.exceptions import (
    PaymentSignatureError,
    SignatureSecretNotConfiguredError,
)
from infrastructure.external.payments.platega import PlategaNormalizer
from infrastructure.external.payments.yookassa import YooKassaNormalizer
from infrastructure.external.payments.yoomoney import YooMoneyNormalizer, compute_sha1


SECRET = "s3cr3t"


def _yoomoney_form(**overrides):
    form = {
        "notification_type": "p2p-incoming",
        "operation_id": "op-777",
        "amount": "490.00",
        "currency": "643",
        "datetime": "2026-10-19T10:00:00Z",
        "sender": "41001000040",
        "codepro": "false",
        "label": "pay-1",
    }
    form.update(overrides)
    form["sha1_hash"] = compute_sha1(form, SECRET)
    return form


def test_platega_top_level_fields_win_over_nested():
    n = PlategaNormalizer().normalize({
        "id": "top",
        "status": "confirmed",
        "transaction": {"id": "nested", "status": "FAILED"},
        "data": {"id": "deep"},
    })
    assert n.status == "CONFIRMED"
    assert n.bucket is StatusBucket.SUCCESS
    assert n.transaction_id == "top"


def test_platega_transaction_id_falls_back_to_transaction_then_data():
    n = PlategaNormalizer().normalize({"status": "PAID", "transaction": {"id": "t-1"}, "data": {"id": "d-1"}})
    assert n.transaction_id == "t-1"

    n = PlategaNormalizer().normalize({"status": "PAID", "data": {"id": "d-1"}})
    assert n.transaction_id == "d-1"


def test_platega_candidates_order_and_dedupe():
    n = PlategaNormalizer().normalize({
        "status": "CONFIRMED",
        "payload": "pay-1",
        "id": "tx-1",
        "externalId": "tx-1",
        "orderId": "order-1",
    })
    assert n.correlation_candidates == ["pay-1", "tx-1", "order-1"]


def test_platega_nested_status_and_whitespace():
    n = PlategaNormalizer().normalize({"data": {"state": "  declined "}, "data_extra": 1})
    assert n.status == "DECLINED"
    assert n.bucket is StatusBucket.FAILURE


@pytest.mark.parametrize("body", [{}, {"orderId": "x"}, {"status": ""}, {"status": 5}])
def test_platega_unparseable_bodies(body):
    assert PlategaNormalizer().normalize(body) is None


def test_platega_unknown_status_is_ignored():
    n = PlategaNormalizer().normalize({"status": "PENDING", "orderId": "o"})
    assert n.bucket is StatusBucket.IGNORED


def test_yookassa_event_and_candidates():
    n = YooKassaNormalizer().normalize({
        "type": "notification",
        "event": "payment.succeeded",
        "object": {
            "id": "2c9f-yk",
            "status": "succeeded",
            "metadata": {"payment_id": "pay-9", "order_id": "order-9"},
        },
    })
    assert n.status == "PAYMENT.SUCCEEDED"
    assert n.bucket is StatusBucket.SUCCESS
    assert n.transaction_id == "2c9f-yk"
    assert n.correlation_candidates == ["pay-9", "order-9", "2c9f-yk"]


def test_yookassa_status_fallback_and_waiting_for_capture():
    n = YooKassaNormalizer().normalize({"object": {"id": "x", "status": "canceled"}})
    assert n.bucket is StatusBucket.FAILURE

    n = YooKassaNormalizer().normalize({"event": "payment.waiting_for_capture", "object": {"id": "x"}})
    assert n.bucket is StatusBucket.IGNORED


def test_yoomoney_synthesised_statuses():
    normalizer = YooMoneyNormalizer(SECRET)
    assert normalizer.normalize(_yoomoney_form()).status == "SUCCESS"
    assert normalizer.normalize(_yoomoney_form(codepro="true")).status == "PROTECTED"
    assert normalizer.normalize(_yoomoney_form(unaccepted="true")).bucket is StatusBucket.IGNORED
    assert normalizer.normalize(_yoomoney_form(amount="abc")).status == "INVALID_AMOUNT"
    assert normalizer.normalize({"amount": "1"}) is None


def test_yoomoney_candidates_include_operation_id_last():
    n = YooMoneyNormalizer(SECRET).normalize(_yoomoney_form(custom="pay-1"))
    assert n.transaction_id == "op-777"
    assert n.correlation_candidates == ["pay-1", "op-777"]


def test_yoomoney_signature_uses_documented_field_order():
    form = _yoomoney_form()
    raw = "p2p-incoming&op-777&490.00&643&2026-10-19T10:00:00Z&41001000040&false&s3cr3t&pay-1"
    assert form["sha1_hash"] == hashlib.sha1(raw.encode("utf-8")).hexdigest()


def test_yoomoney_label_falls_back_to_order_id():
    form = _yoomoney_form(label="", order_id="order-5")
    raw = "p2p-incoming&op-777&490.00&643&2026-10-19T10:00:00Z&41001000040&false&s3cr3t&order-5"
    assert form["sha1_hash"] == hashlib.sha1(raw.encode("utf-8")).hexdigest()
    YooMoneyNormalizer(SECRET).authenticate(form)


def test_yoomoney_authenticate_errors():
    with pytest.raises(MissingParameterException) as exc:
        YooMoneyNormalizer(SECRET).authenticate({"notification_type": "p2p-incoming"})
    assert "operation_id" in exc.value.details["fields"]

    with pytest.raises(SignatureSecretNotConfiguredError):
        YooMoneyNormalizer(None).authenticate(_yoomoney_form())

    tampered = _yoomoney_form()
    tampered["amount"] = "9999.00"
    with pytest.raises(PaymentSignatureError):
        YooMoneyNormalizer(SECRET).authenticate(tampered)


def test_yoomoney_protected_transfer_skips_signature():
    form = _yoomoney_form(codepro="true")
    form["sha1_hash"] = "not-a-hash"
    YooMoneyNormalizer(None).authenticate(form)


def test_factory_resolves_providers():
    assert isinstance(get_webhook_normalizer("Platega"), PlategaNormalizer)
    assert isinstance(get_webhook_normalizer("yookassa"), YooKassaNormalizer)
    assert isinstance(get_webhook_normalizer("yoomoney"), YooMoneyNormalizer)
    with pytest.raises(ValueError):
        get_webhook_normalizer("stripe")
