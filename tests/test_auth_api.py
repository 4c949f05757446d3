from urllib.parse import parse_qs, urlsplit

from opslink.services.passwords import verify_password


def register(client, email="alice@example.com", password="s3cret-pass"):
    return client.post("/api/register", json={"email": email, "password": password})


def test_register_creates_user_and_billing_customer(client, store, payments, notifier):
    resp = register(client, email="Alice@Example.com")

    assert resp.json() == {"success": True}
    user = store.get_user_by_email("alice@example.com")
    assert user is not None
    assert verify_password("s3cret-pass", user.password_hash)
    assert user.billing_customer_ref == "cus_1"
    assert payments.customers == ["alice@example.com"]
    assert notifier.names() == ["user_registered"]


def test_register_duplicate_email(client):
    register(client)
    resp = register(client)
    assert resp.json() == {"success": False, "message": "Email already exists."}


def test_register_survives_billing_outage(client, store, payments):
    payments.fail_customer = True

    assert register(client).json() == {"success": True}
    assert store.get_user_by_email("alice@example.com").billing_customer_ref is None


def test_register_rejects_malformed_email(client, store):
    resp = client.post("/api/register", json={"email": "not-an-email", "password": "x"})
    assert resp.status_code == 200
    assert resp.json()["success"] is False
    assert store.get_user_by_email("not-an-email") is None


def test_login_issues_working_token(client, notifier):
    register(client)

    resp = client.post("/api/login", json={"email": "alice@example.com", "password": "s3cret-pass"})
    body = resp.json()
    assert body["success"] is True
    assert notifier.names() == ["user_registered", "user_logged_in"]

    servers = client.get("/api/servers", headers={"Authorization": f"Bearer {body['token']}"})
    assert servers.json() == {"success": True, "servers": []}


def test_login_failures(client):
    register(client)

    resp = client.post("/api/login", json={"email": "bob@example.com", "password": "s3cret-pass"})
    assert resp.json() == {"success": False, "message": "User not found"}

    resp = client.post("/api/login", json={"email": "alice@example.com", "password": "wrong"})
    assert resp.json() == {"success": False, "message": "Invalid password"}


def test_servers_requires_token(client):
    resp = client.get("/api/servers")
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Unauthorized"}


def test_servers_lists_own_orders(client, pending_order, user_token):
    resp = client.get("/api/servers", headers=user_token(pending_order.user_id))

    servers = resp.json()["servers"]
    assert [s["id"] for s in servers] == [pending_order.id]
    assert servers[0]["status"] == "pending"
    assert servers[0]["plan"] == "static-basic"


def handoff_of(payments, session_ref):
    session = next(s for s in payments.sessions if s["id"] == session_ref)
    return parse_qs(urlsplit(session["success_url"]).query)["handoff"][0]


def exchange(client, session_ref, handoff):
    return client.get(f"/api/guest-token/{session_ref}", params={"handoff": handoff})


def test_guest_token_exchanged_after_payment(client, store, payments, pending_order):
    store.mark_active(pending_order.id, "101", "sub_test_1")

    resp = exchange(client, pending_order.payment_session_ref, handoff_of(payments, pending_order.payment_session_ref))
    body = resp.json()
    assert body["success"] is True

    servers = client.get("/api/servers", headers={"Authorization": f"Bearer {body['token']}"})
    assert [s["id"] for s in servers.json()["servers"]] == [pending_order.id]


def test_guest_token_unknown_session(client):
    resp = exchange(client, "cs_unknown", "anything")
    assert resp.json() == {"success": False, "message": "Invalid or expired link"}


def test_guest_token_is_single_use(client, store, payments, pending_order):
    store.mark_active(pending_order.id, "101", "sub_test_1")
    handoff = handoff_of(payments, pending_order.payment_session_ref)

    assert exchange(client, pending_order.payment_session_ref, handoff).json()["success"] is True
    assert exchange(client, pending_order.payment_session_ref, handoff).json()["success"] is False


def test_guest_token_requires_confirmed_payment(client, payments, pending_order):
    resp = exchange(client, pending_order.payment_session_ref, handoff_of(payments, pending_order.payment_session_ref))
    assert resp.json()["success"] is False


def test_guest_token_requires_handoff_secret(client, store, pending_order):
    store.mark_active(pending_order.id, "101", "sub_test_1")

    assert exchange(client, pending_order.payment_session_ref, "").json()["success"] is False
    assert exchange(client, pending_order.payment_session_ref, "guessed").json()["success"] is False


def test_checkout_with_registered_email_cannot_take_over_account(client, store, payments):
    register(client, email="victim@example.com")
    victim = store.get_user_by_email("victim@example.com")

    checkout = client.post("/api/checkout-session", json={"plan": "static-basic", "email": "victim@example.com"}).json()
    session_ref = checkout["checkoutUrl"].rsplit("/", 1)[-1]
    store.mark_active(checkout["orderId"], "101", "sub_test_1")

    resp = exchange(client, session_ref, handoff_of(payments, session_ref))
    assert resp.json() == {"success": False, "message": "Invalid or expired link"}
    assert "token" not in resp.json()
    assert store.get_user(victim.id).panel_password_hash is None

    # no token was issued, so the panel password cannot be changed either
    resp = client.post("/api/set-panel-password", json={"password": "attacker"})
    assert resp.status_code == 401
    assert store.get_user(victim.id).panel_password_hash is None


def test_set_panel_password(client, store, pending_order, user_token):
    resp = client.post(
        "/api/set-panel-password",
        json={"password": "panel-pass"},
        headers=user_token(pending_order.user_id),
    )

    assert resp.json() == {"success": True}
    user = store.get_user(pending_order.user_id)
    assert verify_password("panel-pass", user.panel_password_hash)


def test_set_panel_password_requires_password_and_login(client, pending_order, user_token):
    resp = client.post("/api/set-panel-password", json={"password": ""}, headers=user_token(pending_order.user_id))
    assert resp.json() == {"success": False, "message": "Password is required"}

    resp = client.post("/api/set-panel-password", json={"password": "panel-pass"})
    assert resp.status_code == 401


def test_client_log_relayed(client, notifier):
    resp = client.post("/api/discord-log", json={"title": "Checkout opened\x00", "description": "static-basic"})

    assert resp.json() == {"success": True}
    assert notifier.events == [("client_log", "Checkout opened")]


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
