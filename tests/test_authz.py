from __future__ import annotations

import json
from pathlib import Path

import pytest

from cinerecap.api.session import SessionStore
from cinerecap.core.authz import (
    INVALID_CREDENTIALS_MESSAGE,
    DeviceNotAuthorized,
    InvalidCredentials,
    User,
    UsersFileError,
    hash_password,
    load_authorized_users,
    login,
    parse_authorized_users,
    verify_password,
)

DEVICE = "0MHWTNJB8DJE"


def _table(**fingerprints: list[str]):
    return parse_authorized_users(
        [
            {
                "username": name,
                "password_hash": hash_password(f"{name}-pass"),
                "allowed_fingerprints": fps,
            }
            for name, fps in fingerprints.items()
        ]
    )


def test_password_hash_is_not_plaintext_and_verifies() -> None:
    hashed = hash_password("recap2025")
    assert "recap2025" not in hashed
    assert verify_password("recap2025", hashed)
    assert not verify_password("recap2026", hashed)


def test_malformed_hash_never_verifies() -> None:
    assert not verify_password("0000", "0000")


@pytest.mark.parametrize(
    ("username", "password"),
    [
        ("mallory", "admin-pass"),  # unknown user
        ("admin", "wrong"),  # wrong password
        ("", ""),
    ],
)
def test_invalid_credentials_never_reveal_which_field(
    tmp_path: Path, username: str, password: str
) -> None:
    store = SessionStore(db_path=tmp_path / "sessions.sqlite3")
    table = _table(admin=[DEVICE])

    with pytest.raises(InvalidCredentials) as excinfo:
        login(table, username, password, DEVICE, store=store, session_key="k1")

    assert str(excinfo.value) == INVALID_CREDENTIALS_MESSAGE
    assert store.load("k1") is None


def test_unregistered_device_is_refused_with_its_fingerprint(tmp_path: Path) -> None:
    store = SessionStore(db_path=tmp_path / "sessions.sqlite3")
    table = _table(admin=[])

    with pytest.raises(DeviceNotAuthorized) as excinfo:
        login(table, "admin", "admin-pass", DEVICE, store=store, session_key="k1")

    assert excinfo.value.device_id == DEVICE
    assert DEVICE in str(excinfo.value)
    assert '"admin"' in str(excinfo.value)
    assert store.load("k1") is None


def test_successful_login_persists_session_record(tmp_path: Path) -> None:
    store = SessionStore(db_path=tmp_path / "sessions.sqlite3")
    table = _table(admin=["OTHERDEVICE1", DEVICE])

    user = login(table, "admin", "admin-pass", DEVICE, store=store, session_key="k1")

    assert user == User(username="admin", device_id=DEVICE)
    assert store.load("k1") == user


def test_load_authorized_users_from_file(tmp_path: Path) -> None:
    path = tmp_path / "authorized_users.json"
    path.write_text(
        json.dumps(
            {
                "users": [
                    {
                        "username": "editor",
                        "password_hash": hash_password("recap2025"),
                        "allowed_fingerprints": [" ABCDEF123456 ", ""],
                    }
                ]
            }
        )
    )

    table = load_authorized_users(path)
    assert set(table) == {"editor"}
    assert table["editor"].allowed_fingerprints == frozenset({"ABCDEF123456"})


def test_missing_users_file_is_an_empty_table(tmp_path: Path) -> None:
    assert load_authorized_users(tmp_path / "missing.json") == {}


def test_invalid_users_file_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "authorized_users.json"
    path.write_text("{not json")
    with pytest.raises(UsersFileError):
        load_authorized_users(path)

    with pytest.raises(UsersFileError):
        parse_authorized_users([{"username": "admin", "password": "0000"}])

    with pytest.raises(UsersFileError):
        parse_authorized_users(
            [
                {"username": "admin", "password_hash": "x"},
                {"username": "admin", "password_hash": "y"},
            ]
        )
