import sqlite3
import time
from decimal import Decimal

from itsdangerous import TimestampSigner
from sqlalchemy.exc import OperationalError

from services import CategoryService
from tokens import issue_token


def _signup_and_signin(client, email, password="p1", name="User"):
    resp = client.post(
        "/auth_users/signup", json={"name": name, "email": email, "password": password}
    )
    assert resp.status_code == 201
    user = resp.json()
    resp = client.post("/auth_users/signin", json={"email": email, "password": password})
    assert resp.status_code == 200
    return user, {"Authorization": f"Bearer {resp.json()['token']}"}


def test_full_scenario_and_cross_user_isolation(client) -> None:
    resp = client.post(
        "/auth_users/signup", json={"name": "A", "email": "a@x.com", "password": "p1"}
    )
    assert resp.status_code == 201
    body = resp.json()
    assert set(body) == {"id", "name", "email", "active"}
    assert body["active"] is True

    resp = client.post("/auth_users/signin", json={"email": "a@x.com", "password": "p1"})
    assert resp.status_code == 200
    headers = {"Authorization": f"Bearer {resp.json()['token']}"}

    resp = client.post(
        "/category", json={"name": "Food", "type": "expense"}, headers=headers
    )
    assert resp.status_code == 201
    category = resp.json()
    assert category["name"] == "Food"
    assert category["type"] == "expense"
    assert category["auth_user_id"] == body["id"]

    resp = client.post(
        "/transaction",
        json={"amount": 12.50, "title": "lunch", "category_id": category["id"]},
        headers=headers,
    )
    assert resp.status_code == 201
    txn = resp.json()
    assert txn["category_id"] == category["id"]
    assert txn["type"] == "expense"
    assert Decimal(txn["amount"]) == Decimal("12.50")

    resp = client.get(f"/transaction/{txn['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["title"] == "lunch"

    _, other = _signup_and_signin(client, "b@x.com")
    resp = client.get("/transaction", headers=other)
    assert resp.status_code == 200
    assert resp.json() == []
    assert client.get(f"/transaction/{txn['id']}", headers=other).status_code == 404
    assert client.get("/category", headers=other).json() == []


def test_wrong_password_is_rejected_without_hint(client) -> None:
    _signup_and_signin(client, "a@x.com")

    wrong = client.post("/auth_users/signin", json={"email": "a@x.com", "password": "nope"})
    unknown = client.post(
        "/auth_users/signin", json={"email": "ghost@x.com", "password": "p1"}
    )

    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Invalid email or password"}
    assert unknown.status_code == 401
    assert unknown.json() == wrong.json()


def test_duplicate_signup_is_400(client) -> None:
    _signup_and_signin(client, "a@x.com")
    resp = client.post(
        "/auth_users/signup", json={"name": "B", "email": "a@x.com", "password": "p2"}
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Email already in use"}


def test_protected_routes_require_a_valid_token(client) -> None:
    assert client.get("/category").status_code == 401
    assert client.get("/category").json() == {"error": "Missing bearer token"}

    bad = {"Authorization": "Bearer not-a-token"}
    resp = client.post("/category", json={"name": "x", "type": "expense"}, headers=bad)
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid token"}

    basic = {"Authorization": "Basic dXNlcjpwYXNz"}
    assert client.get("/transaction", headers=basic).status_code == 401


def test_token_of_deleted_user_is_rejected(client) -> None:
    user, headers = _signup_and_signin(client, "a@x.com")

    resp = client.delete(f"/auth_users/{user['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"message": "User deleted"}

    assert client.get("/category", headers=headers).status_code == 401


def test_token_of_deactivated_user_is_rejected(client) -> None:
    user, headers = _signup_and_signin(client, "a@x.com")

    resp = client.put(
        f"/auth_users/{user['id']}", json={"active": False}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["active"] is False

    resp = client.get("/category", headers=headers)
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid token"}


def test_expired_token_is_rejected(client, monkeypatch) -> None:
    _signup_and_signin(client, "a@x.com")
    two_days_ago = int(time.time()) - 2 * 86400
    with monkeypatch.context() as m:
        m.setattr(TimestampSigner, "get_timestamp", lambda self: two_days_ago)
        resp = client.post(
            "/auth_users/signin", json={"email": "a@x.com", "password": "p1"}
        )
    headers = {"Authorization": f"Bearer {resp.json()['token']}"}

    resp = client.get("/category", headers=headers)
    assert resp.status_code == 401
    assert resp.json() == {"error": "Token expired"}


def test_forged_identity_token_is_rejected(client) -> None:
    headers = {"Authorization": f"Bearer {issue_token('ghost-id', 'ghost@x.com')}"}
    assert client.get("/category", headers=headers).status_code == 401


def test_user_routes_enforce_identity_match(client) -> None:
    alice, alice_headers = _signup_and_signin(client, "alice@x.com", name="Alice")
    bob, _ = _signup_and_signin(client, "bob@x.com", name="Bob")

    resp = client.get(f"/auth_users/{bob['id']}", headers=alice_headers)
    assert resp.status_code == 403
    assert resp.json() == {"error": "Unauthorized access"}
    assert (
        client.put(
            f"/auth_users/{bob['id']}", json={"name": "x"}, headers=alice_headers
        ).status_code
        == 403
    )
    assert (
        client.delete(f"/auth_users/{bob['id']}", headers=alice_headers).status_code
        == 403
    )

    resp = client.get(f"/auth_users/{alice['id']}", headers=alice_headers)
    assert resp.status_code == 200
    assert resp.json()["email"] == "alice@x.com"
    assert "password" not in resp.json()

    resp = client.put(
        f"/auth_users/{alice['id']}", json={"name": "Alice B."}, headers=alice_headers
    )
    assert resp.status_code == 200
    assert resp.json()["name"] == "Alice B."

    listing = client.get("/auth_users", headers=alice_headers)
    assert listing.status_code == 200
    assert {u["email"] for u in listing.json()} == {"alice@x.com", "bob@x.com"}
    assert all("password" not in u for u in listing.json())


def test_category_listing_query_parameters(client) -> None:
    _, headers = _signup_and_signin(client, "a@x.com")
    for i in range(1, 13):
        client.post(
            "/category", json={"name": f"cat-{i:02d}", "type": "expense"}, headers=headers
        )

    resp = client.get(
        "/category",
        params={"page": 2, "pageSize": 5, "sortBy": "name"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert [c["name"] for c in resp.json()] == [f"cat-{i:02d}" for i in range(6, 11)]

    resp = client.get(
        "/category", params={"page": 9, "pageSize": 5}, headers=headers
    )
    assert resp.json() == []

    resp = client.get(
        "/category",
        params={"name": "CAT-1", "sortBy": "name", "order": "desc"},
        headers=headers,
    )
    assert [c["name"] for c in resp.json()] == ["cat-12", "cat-11", "cat-10"]

    resp = client.get(
        "/category", params={"sortBy": "name; DROP TABLE category"}, headers=headers
    )
    assert resp.status_code == 200
    assert len(resp.json()) == 10

    resp = client.get("/category", params={"page": 0}, headers=headers)
    assert resp.status_code == 400
    assert "error" in resp.json()

    too_big = ({"page": 10**19}, {"pageSize": 10**19}, {"page": 2**62, "pageSize": 4})
    for params in too_big:
        resp = client.get("/category", params=params, headers=headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "page or pageSize is out of range"}


def test_category_update_and_delete_of_foreign_row_is_404(client) -> None:
    _, alice = _signup_and_signin(client, "alice@x.com")
    _, bob = _signup_and_signin(client, "bob@x.com")
    category = client.post(
        "/category", json={"name": "Food", "type": "expense"}, headers=alice
    ).json()

    resp = client.put(
        f"/category/{category['id']}",
        json={"name": "Stolen", "type": "income"},
        headers=bob,
    )
    assert resp.status_code == 404
    assert resp.json() == {"error": "Category not found"}
    assert client.delete(f"/category/{category['id']}", headers=bob).status_code == 404

    resp = client.put(
        f"/category/{category['id']}",
        json={"name": "Groceries", "type": "expense"},
        headers=alice,
    )
    assert resp.status_code == 200
    assert resp.json()["name"] == "Groceries"


def test_category_validation_errors_are_400(client) -> None:
    _, headers = _signup_and_signin(client, "a@x.com")

    resp = client.post("/category", json={"name": "Food", "type": "gift"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("type:")

    resp = client.post("/category", json={"type": "expense"}, headers=headers)
    assert resp.status_code == 400


def test_transaction_with_foreign_category_is_404(client) -> None:
    _, alice = _signup_and_signin(client, "alice@x.com")
    _, bob = _signup_and_signin(client, "bob@x.com")
    category = client.post(
        "/category", json={"name": "Food", "type": "expense"}, headers=alice
    ).json()

    resp = client.post(
        "/transaction",
        json={"amount": 1, "description": "sneaky", "category_id": category["id"]},
        headers=bob,
    )
    assert resp.status_code == 404
    assert resp.json() == {"error": "Category not found"}


def test_transaction_update_delete_and_cascade(client) -> None:
    _, headers = _signup_and_signin(client, "a@x.com")
    food = client.post(
        "/category", json={"name": "Food", "type": "expense"}, headers=headers
    ).json()
    txn = client.post(
        "/transaction",
        json={"amount": "4.20", "description": "bread", "category_id": food["id"]},
        headers=headers,
    ).json()

    resp = client.put(
        f"/transaction/{txn['id']}",
        json={"amount": "5.00", "description": "sourdough", "category_id": food["id"]},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["title"] == "sourdough"
    assert Decimal(resp.json()["amount"]) == Decimal("5.00")

    listed = client.get(
        "/transaction", params={"description": "dough"}, headers=headers
    ).json()
    assert [t["id"] for t in listed] == [txn["id"]]

    resp = client.delete(f"/category/{food['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Category deleted successfully"}
    assert client.get(f"/transaction/{txn['id']}", headers=headers).status_code == 404
    assert client.delete(f"/transaction/{txn['id']}", headers=headers).status_code == 404


def test_transaction_delete_then_second_delete(client) -> None:
    _, headers = _signup_and_signin(client, "a@x.com")
    food = client.post(
        "/category", json={"name": "Food", "type": "expense"}, headers=headers
    ).json()
    txn = client.post(
        "/transaction",
        json={"amount": 3, "title": "gum", "category_id": food["id"]},
        headers=headers,
    ).json()

    first = client.delete(f"/transaction/{txn['id']}", headers=headers)
    second = client.delete(f"/transaction/{txn['id']}", headers=headers)

    assert first.status_code == 200
    assert first.json() == {"message": "Transaction deleted successfully"}
    assert second.status_code == 404
    assert second.json() == {"error": "Transaction not found"}


def test_store_failures_are_translated_without_detail(client, monkeypatch) -> None:
    _, headers = _signup_and_signin(client, "a@x.com")

    def locked(self, query=None):
        raise OperationalError("SELECT 1", {}, sqlite3.OperationalError("database is locked"))

    monkeypatch.setattr(CategoryService, "list", locked)
    resp = client.get("/category", headers=headers)
    assert resp.status_code == 503
    assert resp.json() == {"error": "Service temporarily unavailable"}

    def broken(self, query=None):
        raise OperationalError("SELECT 1", {}, sqlite3.OperationalError("no such table: x"))

    monkeypatch.setattr(CategoryService, "list", broken)
    resp = client.get("/category", headers=headers)
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}
