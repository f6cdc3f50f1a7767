from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid username or password."

# pbkdf2 keeps hashing pure-python (no bcrypt backend to install).
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# Verified against when the username is unknown so both failure paths cost the same.
_DUMMY_HASH = pwd_context.hash("cinerecap-dummy-password")


class AuthError(RuntimeError):
    pass


class InvalidCredentials(AuthError):
    def __init__(self) -> None:
        super().__init__(INVALID_CREDENTIALS_MESSAGE)


class DeviceNotAuthorized(AuthError):
    def __init__(self, username: str, device_id: str) -> None:
        super().__init__(
            f'ACCESS DENIED: This device ({device_id}) is not registered for user "{username}".'
        )
        self.username = username
        self.device_id = device_id


class UsersFileError(RuntimeError):
    pass


@dataclass(frozen=True)
class User:
    username: str
    device_id: str

    def to_record(self) -> dict[str, str]:
        return {"username": self.username, "deviceId": self.device_id}

    @classmethod
    def from_record(cls, raw: Mapping[str, Any]) -> User:
        username = raw.get("username")
        device_id = raw.get("deviceId")
        if not isinstance(username, str) or not isinstance(device_id, str):
            raise ValueError("Session record is missing username/deviceId")
        return cls(username=username, device_id=device_id)


@dataclass(frozen=True)
class AuthorizedUser:
    username: str
    password_hash: str
    allowed_fingerprints: frozenset[str] = field(default_factory=frozenset)


class SessionRecords(Protocol):
    def load(self, key: str) -> User | None: ...

    def save(self, key: str, user: User) -> None: ...

    def remove(self, key: str) -> None: ...


def hash_password(password: str) -> str:
    """Hash a plaintext password for the authorized users file."""

    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        # Malformed or unrecognised hash in the users file.
        return False


def parse_authorized_users(payload: Any) -> dict[str, AuthorizedUser]:
    """Parse the users file payload.

    Expected shape::

        [
          {"username": "admin", "password_hash": "$pbkdf2-sha256$...",
           "allowed_fingerprints": ["QXNDEF123456"]}
        ]
    """

    if isinstance(payload, dict) and "users" in payload:
        payload = payload["users"]
    if not isinstance(payload, list):
        raise UsersFileError("Authorized users file must contain a list of users")

    table: dict[str, AuthorizedUser] = {}
    for i, item in enumerate(payload):
        if not isinstance(item, dict):
            raise UsersFileError(f"User entry #{i} is not an object")

        username = item.get("username")
        password_hash = item.get("password_hash")
        fingerprints = item.get("allowed_fingerprints", [])
        if not isinstance(username, str) or not username.strip():
            raise UsersFileError(f"User entry #{i} has no username")
        if not isinstance(password_hash, str) or not password_hash:
            raise UsersFileError(f"User {username!r} has no password_hash")
        if not isinstance(fingerprints, list) or not all(isinstance(f, str) for f in fingerprints):
            raise UsersFileError(f"User {username!r} allowed_fingerprints must be a list of strings")

        username = username.strip()
        if username in table:
            raise UsersFileError(f"Duplicate user {username!r}")

        table[username] = AuthorizedUser(
            username=username,
            password_hash=password_hash,
            allowed_fingerprints=frozenset(f.strip() for f in fingerprints if f.strip()),
        )
    return table


def load_authorized_users(path: Path) -> dict[str, AuthorizedUser]:
    if not path.exists():
        logger.warning("Authorized users file %s not found; every login will be rejected", path)
        return {}

    try:
        payload = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise UsersFileError(f"Authorized users file is not valid JSON: {e}") from e

    table = parse_authorized_users(payload)
    logger.info("Loaded %d authorized user(s) from %s", len(table), path)
    return table


def check_credentials(
    table: Mapping[str, AuthorizedUser], username: str, password: str, device_id: str
) -> User:
    """Check credentials first, then device membership.

    Raises InvalidCredentials or DeviceNotAuthorized.
    """

    entry = table.get(username)
    if entry is None:
        verify_password(password, _DUMMY_HASH)
        raise InvalidCredentials()
    if not verify_password(password, entry.password_hash):
        raise InvalidCredentials()

    if device_id not in entry.allowed_fingerprints:
        raise DeviceNotAuthorized(username, device_id)

    return User(username=username, device_id=device_id)


def login(
    table: Mapping[str, AuthorizedUser],
    username: str,
    password: str,
    device_id: str,
    *,
    store: SessionRecords,
    session_key: str,
) -> User:
    try:
        user = check_credentials(table, username, password, device_id)
    except DeviceNotAuthorized:
        logger.info("Login refused for %r: device %s not registered", username, device_id)
        raise
    except InvalidCredentials:
        logger.info("Login refused: invalid credentials")
        raise

    store.save(session_key, user)
    logger.info("User %r logged in from device %s", username, device_id)
    return user


def restore_session(store: SessionRecords, session_key: str | None, device_id: str) -> User | None:
    """Return the stored user when its fingerprint still matches.

    A record stored for another fingerprint is deleted.
    """

    if not session_key:
        return None

    user = store.load(session_key)
    if user is None:
        return None

    if user.device_id != device_id:
        logger.info(
            "Discarding session for %r: device changed (%s -> %s)",
            user.username,
            user.device_id,
            device_id,
        )
        store.remove(session_key)
        return None
    return user


def logout(store: SessionRecords, session_key: str | None) -> None:
    if session_key:
        store.remove(session_key)
