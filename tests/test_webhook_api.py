import json
import time

from fastapi.testclient import TestClient

from opslink.main import create_app
from tests.conftest import completion_event, sign


def post_event(client, event, signature=None, secret=None):
    payload = json.dumps(event).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if signature is None:
        signature = sign(payload, secret) if secret else sign(payload)
    if signature:
        headers["stripe-signature"] = signature
    return client.post("/webhook", content=payload, headers=headers)


def test_signed_completion_activates_order(client, store, pending_order, provisioner):
    resp = post_event(client, completion_event(pending_order.id, pending_order.payment_session_ref))

    assert resp.status_code == 200
    assert resp.json() == {"received": True, "outcome": "activated"}
    assert store.get_order(pending_order.id).status == "active"
    assert len(provisioner.calls) == 1


def test_redelivered_event_is_acknowledged_once(client, pending_order, provisioner):
    event = completion_event(pending_order.id, pending_order.payment_session_ref)

    post_event(client, event)
    resp = post_event(client, event)

    assert resp.status_code == 200
    assert resp.json()["outcome"] == "duplicate"
    assert len(provisioner.calls) == 1


def test_bad_signature_rejected_without_side_effects(client, store, pending_order, provisioner, notifier):
    resp = post_event(
        client,
        completion_event(pending_order.id, pending_order.payment_session_ref),
        secret="whsec_wrong",
    )

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert store.get_order(pending_order.id).status == "pending"
    assert store.get_order(pending_order.id).provisioning_claim is None
    assert provisioner.calls == []
    assert notifier.events == []


def test_missing_signature_rejected(client, pending_order, provisioner):
    resp = post_event(client, completion_event(pending_order.id, pending_order.payment_session_ref), signature="")

    assert resp.status_code == 400
    assert provisioner.calls == []


def test_tampered_payload_rejected(client, store, pending_order, provisioner):
    event = completion_event(pending_order.id, pending_order.payment_session_ref)
    signature = sign(json.dumps(event).encode("utf-8"))
    event["data"]["object"]["metadata"]["plan"] = "dynamic-basic"

    resp = post_event(client, event, signature=signature)

    assert resp.status_code == 400
    assert provisioner.calls == []
    assert store.get_order(pending_order.id).status == "pending"


def test_stale_timestamp_rejected(client, pending_order, provisioner):
    event = completion_event(pending_order.id, pending_order.payment_session_ref)
    payload = json.dumps(event).encode("utf-8")
    stale = sign(payload, timestamp=int(time.time()) - 3600)

    resp = post_event(client, event, signature=stale)

    assert resp.status_code == 400
    assert provisioner.calls == []


def test_unrelated_event_acknowledged(client, provisioner):
    resp = post_event(client, {"id": "evt_9", "type": "customer.created", "data": {"object": {}}})

    assert resp.status_code == 200
    assert resp.json() == {"received": True, "outcome": "ignored"}
    assert provisioner.calls == []


def test_provisioning_failure_is_still_acknowledged(client, store, pending_order, provisioner, sleeps):
    provisioner.failures = 100

    resp = post_event(client, completion_event(pending_order.id, pending_order.payment_session_ref))

    assert resp.status_code == 200
    assert resp.json()["outcome"] == "failed"
    assert store.get_order(pending_order.id).status == "failed"
    assert sleeps == [3.0, 6.0]


def test_webhook_is_not_rate_limited(settings, payments, provisioner, notifier, sleeps):
    app = create_app(
        settings.model_copy(update={"RATE_LIMIT_PER_MINUTE": 1}),
        payments=payments,
        provisioner=provisioner,
        notifier=notifier,
        sleep=sleeps.append,
    )
    with TestClient(app) as client:
        for n in range(3):
            resp = post_event(client, {"id": f"evt_{n}", "type": "invoice.paid", "data": {"object": {}}})
            assert resp.status_code == 200


def test_signed_but_malformed_completion_is_acknowledged(client, pending_order, provisioner):
    event = {
        "id": "evt_bad",
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_x", "metadata": "oops"}},
    }

    resp = post_event(client, event)

    assert resp.status_code == 200
    assert resp.json() == {"received": True, "outcome": "unresolved"}
    assert provisioner.calls == []
