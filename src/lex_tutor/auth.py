"""Local username/password accounts and the remembered login session.

Passwords are kept as plain values. This is a single-machine convenience
store, not a security boundary.
"""
from loguru import logger

from lex_tutor.errors import DuplicateUser, InvalidCredentials
from lex_tutor.models import User
from lex_tutor.storage import KeyValueStore

AUTH_NAMESPACE = "_auth"
USERS_KEY = "users"
SESSION_KEY = "session"

DEFAULT_USERS = {
    "student": "password123",
    "learner": "sanskrit",
}


class CredentialStore:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def _get_users(self) -> dict[str, str]:
        users = self.store.get(AUTH_NAMESPACE, USERS_KEY)
        if isinstance(users, dict) and users:
            return users
        # First run, or the map was lost: restore the seed accounts.
        self.store.set(AUTH_NAMESPACE, USERS_KEY, DEFAULT_USERS)
        return dict(DEFAULT_USERS)

    def sign_up(self, username: str, password: str) -> User:
        users = self._get_users()
        if username in users:
            raise DuplicateUser(username)
        users[username] = password
        self.store.set(AUTH_NAMESPACE, USERS_KEY, users)
        logger.info(f"Created account '{username}'")
        return User(username)

    def log_in(self, username: str, password: str) -> User:
        users = self._get_users()
        if username not in users or users[username] != password:
            logger.info(f"Rejected login for '{username}'")
            raise InvalidCredentials()
        self.store.set(AUTH_NAMESPACE, SESSION_KEY, {"username": username})
        return User(username)

    def check_session(self) -> User | None:
        session = self.store.get(AUTH_NAMESPACE, SESSION_KEY)
        if isinstance(session, dict) and session.get("username"):
            return User(session["username"])
        return None

    def log_out(self) -> None:
        self.store.remove(AUTH_NAMESPACE, SESSION_KEY)
