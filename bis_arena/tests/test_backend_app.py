import sys
import uuid
from datetime import timedelta
from pathlib import Path

import jwt
import mongomock
import pytest
from fastapi.testclient import TestClient


PACKAGE_DIR = Path(__file__).resolve().parents[1]
PROJECT_ROOT = PACKAGE_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import bis_arena.main as main  # noqa: E402
from bis_arena.db import client as db_client  # noqa: E402
import bis_arena.db.database as database  # noqa: E402
import bis_arena.utils.session as session  # noqa: E402
import bis_arena.utils.uploads as uploads  # noqa: E402


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64


@pytest.fixture()
def backend_app(monkeypatch, tmp_path):
    mock_client = mongomock.MongoClient()
    mock_db = mock_client["bisDashboard"]

    def fake_connect(reset: bool = False) -> None:
        if reset:
            mock_client.drop_database(mock_db.name)
        db_client._client = mock_client
        db_client._db = mock_db

    async def async_close():
        return None

    monkeypatch.setattr(db_client, "connect", fake_connect)
    monkeypatch.setattr(db_client, "get_db", lambda: mock_db)
    monkeypatch.setattr(db_client, "ping", lambda: True)
    monkeypatch.setattr(db_client, "close", async_close)
    monkeypatch.setattr(database, "connect_to_db", lambda: mock_db)

    upload_dir = tmp_path / "uploads"
    monkeypatch.setattr(uploads, "UPLOAD_DIR", upload_dir)

    with TestClient(main.app) as client:
        yield {"client": client, "db": mock_db, "uploads": upload_dir}


def register_user(client: TestClient, username: str, email: str = None, password: str = "ValidPass1!", **extra) -> dict:
    payload = {"username": username, "email": email or f"{username}@example.com", "password": password, **extra}
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["token"]
    return body


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def complete(client: TestClient, token: str, task_id: str, points: int, title: str = "Mission"):
    return client.post(
        "/api/tasks/complete",
        json={"taskId": task_id, "taskTitle": title, "points": points},
        headers=auth(token),
    )


# ==========================
#           auth
# ==========================
def test_register_then_login_returns_token_for_same_email(backend_app):
    client = backend_app["client"]
    db = backend_app["db"]

    body = register_user(client, "asha", email="Asha@Example.com", age=20, college="IIT Delhi")
    assert body["user"] == {
        "email": "asha@example.com",
        "username": "asha",
        "age": 20,
        "college": "IIT Delhi",
        "profilePic": None,
    }

    stored = db["users"].find_one({"email": "asha@example.com"})
    assert stored["points"] == 0
    assert stored["completed_tasks"] == []
    assert stored["password_hash"] != "ValidPass1!"
    assert stored["created_at"] is not None

    login = client.post("/api/auth/login", json={"email": "ASHA@example.com", "password": "ValidPass1!"})
    assert login.status_code == 200, login.text
    token = login.json()["token"]
    claims = jwt.decode(token, session.SECRET_KEY, algorithms=[session.ALGORITHM])
    assert claims["email"] == "asha@example.com"
    assert claims["userId"] == stored["user_id"]
    assert claims["exp"] - claims["iat"] == 24 * 3600


def test_duplicate_registration_is_case_insensitive(backend_app):
    client = backend_app["client"]
    register_user(client, "first", email="taken@example.com")

    duplicate = client.post(
        "/api/auth/register",
        json={"username": "second", "email": "TAKEN@example.com", "password": "Other1!"},
    )
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "User already exists with this email"
    assert backend_app["db"]["users"].count_documents({}) == 1


def test_register_requires_fields(backend_app):
    client = backend_app["client"]

    blank = client.post("/api/auth/register", json={"username": "", "email": "a@example.com", "password": "x"})
    assert blank.status_code == 400
    assert blank.json()["detail"] == "Required fields are missing"

    missing = client.post("/api/auth/register", json={"email": "a@example.com"})
    assert missing.status_code == 400

    bad_age = client.post(
        "/api/auth/register",
        json={"username": "u", "email": "u@example.com", "password": "x", "age": "twenty"},
    )
    assert bad_age.status_code == 400
    assert backend_app["db"]["users"].count_documents({}) == 0


def test_register_accepts_any_non_empty_email(backend_app):
    client = backend_app["client"]

    for index, email in enumerate(["student@college.local", "admin@localhost", "a@b.test"]):
        response = client.post(
            "/api/auth/register",
            json={"username": f"student{index}", "email": email, "password": "ValidPass1!"},
        )
        assert response.status_code == 201, response.text
        assert response.json()["user"]["email"] == email
    assert backend_app["db"]["users"].count_documents({}) == 3


def test_unencodable_password_is_rejected_without_server_error(backend_app):
    client = backend_app["client"]
    headers = {"Content-Type": "application/json"}

    response = client.post(
        "/api/auth/register",
        content='{"username": "u", "email": "u@example.com", "password": "\\ud800"}',
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Password contains invalid characters"
    assert backend_app["db"]["users"].count_documents({}) == 0

    register_user(client, "surrogate_user")
    login = client.post(
        "/api/auth/login",
        content='{"email": "surrogate_user@example.com", "password": "\\ud800"}',
        headers=headers,
    )
    assert login.status_code == 400
    assert login.json()["detail"] == "Password contains invalid characters"


def test_login_error_paths(backend_app):
    client = backend_app["client"]
    register_user(client, "login_user")

    missing = client.post("/api/auth/login", json={"email": "", "password": ""})
    assert missing.status_code == 400

    unknown = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "x"})
    assert unknown.status_code == 404
    assert unknown.json()["detail"] == "User not found"

    wrong = client.post("/api/auth/login", json={"email": "login_user@example.com", "password": "WrongPass1!"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Invalid password"


def test_protected_routes_reject_missing_and_invalid_tokens(backend_app):
    client = backend_app["client"]
    body = register_user(client, "guarded")
    user_id = backend_app["db"]["users"].find_one({"username": "guarded"})["user_id"]

    expired = session.generate_session(user_id, "guarded@example.com", expires_delta=timedelta(hours=-1))
    forged = jwt.encode({"userId": user_id, "email": "guarded@example.com", "iat": 0, "exp": 4102444800}, "wrong-secret", algorithm="HS256")

    routes = [
        ("get", "/api/leaderboard"),
        ("get", "/api/user/profile/guarded@example.com"),
        ("get", "/api/tasks/missions"),
        ("get", "/api/auth/verify"),
    ]
    for method, url in routes:
        assert getattr(client, method)(url).status_code == 401
        assert getattr(client, method)(url, headers=auth("garbage")).status_code == 403
        assert getattr(client, method)(url, headers=auth(expired)).status_code == 403
        assert getattr(client, method)(url, headers=auth(forged)).status_code == 403

    no_token = client.post("/api/tasks/complete", json={"taskId": "t1", "points": 10})
    assert no_token.status_code == 401
    assert no_token.json()["detail"] == "Authentication token required"

    verify = client.get("/api/auth/verify", headers=auth(body["token"]))
    assert verify.status_code == 200
    assert verify.json() == {"valid": True, "userId": user_id, "email": "guarded@example.com"}


# ==========================
#       tasks / scoring
# ==========================
def test_completing_same_task_twice_awards_points_once(backend_app):
    client = backend_app["client"]
    db = backend_app["db"]
    token = register_user(client, "player_a")["token"]

    first = complete(client, token, "t1", 100)
    assert first.status_code == 200, first.text
    body = first.json()
    assert body["points"] == 100
    assert body["leaderboard"] == [{"username": "player_a", "points": 100, "rank": 1}]

    second = complete(client, token, "t1", 100)
    assert second.status_code == 400
    assert second.json()["detail"] == "Task already completed"

    stored = db["users"].find_one({"username": "player_a"})
    assert stored["points"] == 100
    assert stored["completed_tasks"] == ["t1"]

    leaderboard = client.get("/api/leaderboard", headers=auth(token)).json()["leaderboard"]
    assert leaderboard == [{"username": "player_a", "points": 100, "rank": 1}]


def test_complete_task_for_deleted_user_is_not_found(backend_app):
    client = backend_app["client"]
    token = register_user(client, "ghost")["token"]
    backend_app["db"]["users"].delete_many({"username": "ghost"})

    response = complete(client, token, "t1", 10)
    assert response.status_code == 404


def test_complete_task_requires_task_id_and_points(backend_app):
    client = backend_app["client"]
    token = register_user(client, "sloppy")["token"]

    blank = complete(client, token, "   ", 10)
    assert blank.status_code == 400

    no_points = client.post("/api/tasks/complete", json={"taskId": "t1"}, headers=auth(token))
    assert no_points.status_code == 400
    assert backend_app["db"]["users"].find_one({"username": "sloppy"})["points"] == 0


def test_missions_report_completion_state(backend_app):
    client = backend_app["client"]
    token = register_user(client, "missionary")["token"]
    assert complete(client, token, "task2", 50).status_code == 200

    response = client.get("/api/tasks/missions", headers=auth(token))
    assert response.status_code == 200
    body = response.json()
    assert body["points"] == 50
    assert [(m["id"], m["completed"]) for m in body["missions"]] == [
        ("task1", False),
        ("task2", True),
        ("task3", False),
    ]


# ==========================
#        leaderboard
# ==========================
def test_leaderboard_is_top_ten_sorted_with_ranks(backend_app):
    client = backend_app["client"]
    db = backend_app["db"]
    token = register_user(client, "viewer")["token"]
    db["users"].insert_many(
        [
            {"user_id": str(uuid.uuid4()), "username": f"user{idx:02d}", "email": f"user{idx}@example.com", "points": idx * 10, "completed_tasks": []}
            for idx in range(1, 13)
        ]
    )

    response = client.get("/api/leaderboard", headers=auth(token))
    assert response.status_code == 200
    items = response.json()["leaderboard"]
    assert len(items) == 10
    assert [item["rank"] for item in items] == list(range(1, 11))
    points = [item["points"] for item in items]
    assert points == sorted(points, reverse=True)
    assert items[0] == {"username": "user12", "points": 120, "rank": 1}
    assert all(item["username"] != "viewer" for item in items)

    top3 = client.get("/api/leaderboard", params={"limit": 3}, headers=auth(token)).json()["leaderboard"]
    assert [item["username"] for item in top3] == ["user12", "user11", "user10"]

    too_many = client.get("/api/leaderboard", params={"limit": 11}, headers=auth(token))
    assert too_many.status_code == 400


def test_leaderboard_ties_are_ordered_by_username(backend_app):
    client = backend_app["client"]
    token_b = register_user(client, "bravo")["token"]
    token_a = register_user(client, "alpha")["token"]
    assert complete(client, token_b, "task1", 100).status_code == 200
    response = complete(client, token_a, "task1", 100)
    assert response.status_code == 200

    assert response.json()["leaderboard"] == [
        {"username": "alpha", "points": 100, "rank": 1},
        {"username": "bravo", "points": 100, "rank": 2},
    ]


# ==========================
#          profile
# ==========================
def test_get_profile(backend_app):
    client = backend_app["client"]
    token = register_user(client, "reader", college="NIT")["token"]

    found = client.get("/api/user/profile/READER@example.com", headers=auth(token))
    assert found.status_code == 200
    assert found.json()["user"]["college"] == "NIT"
    assert "password_hash" not in found.json()["user"]

    missing = client.get("/api/user/profile/nobody@example.com", headers=auth(token))
    assert missing.status_code == 404


def test_update_profile_applies_only_present_fields(backend_app):
    client = backend_app["client"]
    token = register_user(client, "editor", age=19, college="Old College")["token"]

    response = client.put(
        "/api/user/profile/editor@example.com",
        data={"username": "Editor Prime", "age": "21"},
        headers=auth(token),
    )
    assert response.status_code == 200, response.text
    assert response.json()["user"] == {
        "email": "editor@example.com",
        "username": "Editor Prime",
        "age": 21,
        "college": "Old College",
        "profilePic": None,
    }

    bad_age = client.put("/api/user/profile/editor@example.com", data={"age": "old"}, headers=auth(token))
    assert bad_age.status_code == 400

    missing = client.put("/api/user/profile/nobody@example.com", data={"username": "x"}, headers=auth(token))
    assert missing.status_code == 404


def test_update_profile_wrong_current_password_changes_nothing(backend_app):
    client = backend_app["client"]
    db = backend_app["db"]
    token = register_user(client, "careful")["token"]
    before = db["users"].find_one({"username": "careful"})

    response = client.put(
        "/api/user/profile/careful@example.com",
        data={"username": "renamed", "currentPassword": "NotMyPass", "newPassword": "NewPass1!"},
        files={"profilePic": ("me.png", PNG_BYTES, "image/png")},
        headers=auth(token),
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Current password is incorrect"

    after = db["users"].find_one({"email": "careful@example.com"})
    assert after["password_hash"] == before["password_hash"]
    assert after["username"] == "careful"
    assert after["profile_pic"] is None
    assert not list(backend_app["uploads"].rglob("*.png"))


def test_update_profile_changes_password(backend_app):
    client = backend_app["client"]
    token = register_user(client, "rotator")["token"]

    response = client.put(
        "/api/user/profile/rotator@example.com",
        data={"currentPassword": "ValidPass1!", "newPassword": "Rotated2!"},
        headers=auth(token),
    )
    assert response.status_code == 200

    old = client.post("/api/auth/login", json={"email": "rotator@example.com", "password": "ValidPass1!"})
    assert old.status_code == 401
    new = client.post("/api/auth/login", json={"email": "rotator@example.com", "password": "Rotated2!"})
    assert new.status_code == 200


def test_update_profile_rejects_email_of_another_user(backend_app):
    client = backend_app["client"]
    register_user(client, "owner")
    token = register_user(client, "mover")["token"]

    conflict = client.put("/api/user/profile/mover@example.com", data={"email": "OWNER@example.com"}, headers=auth(token))
    assert conflict.status_code == 400
    assert conflict.json()["detail"] == "Email already in use"

    moved = client.put("/api/user/profile/mover@example.com", data={"email": "Moved@Example.com"}, headers=auth(token))
    assert moved.status_code == 200
    assert moved.json()["user"]["email"] == "moved@example.com"


# ==========================
#      profile pictures
# ==========================
def test_profile_picture_upload_replaces_and_deletes_previous(backend_app):
    client = backend_app["client"]
    upload_dir = backend_app["uploads"]
    token = register_user(client, "pictured")["token"]

    first = client.put(
        "/api/user/profile/pictured@example.com",
        files={"profilePic": ("me.png", PNG_BYTES, "image/png")},
        headers=auth(token),
    )
    assert first.status_code == 200, first.text
    first_path = first.json()["user"]["profilePic"]
    assert first_path.startswith("/uploads/profiles/") and first_path.endswith(".png")
    first_file = upload_dir / "profiles" / first_path.rsplit("/", 1)[1]
    assert first_file.read_bytes() == PNG_BYTES

    served = client.get(first_path)
    assert served.status_code == 200
    assert served.content == PNG_BYTES

    second = client.put(
        "/api/user/profile/pictured@example.com",
        files={"profilePic": ("me.jpg", JPEG_BYTES, "image/jpeg")},
        headers=auth(token),
    )
    assert second.status_code == 200
    second_path = second.json()["user"]["profilePic"]
    assert second_path.endswith(".jpg")
    assert not first_file.exists()
    assert (upload_dir / "profiles" / second_path.rsplit("/", 1)[1]).exists()
    assert client.get(first_path).status_code == 404


def test_non_image_upload_is_rejected_before_storage(backend_app):
    client = backend_app["client"]
    db = backend_app["db"]
    token = register_user(client, "sneaky")["token"]

    for name, content, mime in [
        ("notes.txt", b"hello", "text/plain"),
        ("fake.png", b"hello", "text/plain"),
        ("script.exe", PNG_BYTES, "image/png"),
    ]:
        response = client.put(
            "/api/user/profile/sneaky@example.com",
            files={"profilePic": (name, content, mime)},
            headers=auth(token),
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Only .png, .jpg and .jpeg format allowed!"

    assert not backend_app["uploads"].exists() or not any(p.is_file() for p in backend_app["uploads"].rglob("*"))
    assert db["users"].find_one({"username": "sneaky"})["profile_pic"] is None


def test_oversized_upload_is_rejected(backend_app, monkeypatch):
    client = backend_app["client"]
    token = register_user(client, "heavy")["token"]
    monkeypatch.setattr(uploads, "UPLOADS_MAX_SIZE_BYTES", 32)

    response = client.put(
        "/api/user/profile/heavy@example.com",
        files={"profilePic": ("big.png", PNG_BYTES, "image/png")},
        headers=auth(token),
    )
    assert response.status_code == 413
    assert backend_app["db"]["users"].find_one({"username": "heavy"})["profile_pic"] is None


def test_uploads_route_does_not_escape_upload_dir(backend_app):
    client = backend_app["client"]
    assert client.get("/uploads/profiles/missing.png").status_code == 404
    assert client.get("/uploads/..%2F..%2Fsecret.txt").status_code == 404


# ==========================
#       learning hub
# ==========================
def test_learning_hub_search_filters_by_title_or_standard(backend_app):
    client = backend_app["client"]

    everything = client.get("/api/learning").json()["categories"]
    assert len(everything) == 4

    by_standard = client.get("/api/learning", params={"search": "is 12345"}).json()["categories"]
    assert [c["title"] for c in by_standard] == ["Safety Standards", "Testing Methods"]
    assert [v["title"] for v in by_standard[0]["videos"]] == ["Introduction to Safety Standards"]

    by_title = client.get("/api/learning", params={"search": "INSPECTION"}).json()["categories"]
    assert len(by_title) == 1 and by_title[0]["videos"][0]["title"] == "Inspection Techniques"

    assert client.get("/api/learning", params={"search": "nothing matches"}).json()["categories"] == []
