"""
User Registry

Keeps the list of registered users under one key ("{prefix}:users").
A user's email is the namespace of all their other data.

NOTE: This is a convenience for separating users of one installation,
not a security boundary. Passwords are stored as bcrypt hashes.

Legacy records carry a plaintext "password" field. They are accepted at
sign-in and rewritten with a hash on the first successful sign-in.
"""

import re
from dataclasses import dataclass
from typing import Optional

import bcrypt
import structlog

from finan_ai.models.finance import User
from finan_ai.services.storage import KeyValueStoreInterface, namespaced_key
from finan_ai.store.app_state import unwrap_envelope, wrap_envelope


logger = structlog.get_logger(__name__)


class AuthenticationError(Exception):
    """Email and password do not match a registered user."""
    pass


class RegistrationError(Exception):
    """A registration request was rejected."""

    def __init__(self, message: str, failed_rules: Optional[list[str]] = None):
        super().__init__(message)
        self.failed_rules = failed_rules or []


@dataclass(frozen=True)
class PasswordRule:
    name: str
    description: str
    pattern: str


PASSWORD_RULES: tuple[PasswordRule, ...] = (
    PasswordRule("length", "At least 8 characters", r".{8,}"),
    PasswordRule("uppercase", "One uppercase letter", r"[A-Z]"),
    PasswordRule("lowercase", "One lowercase letter", r"[a-z]"),
    PasswordRule("number", "One number", r"[0-9]"),
    PasswordRule("special_char", "One special character", r"[^A-Za-z0-9]"),
)


def check_password(password: str) -> dict[str, bool]:
    """
    Evaluate every password rule.

    >>> check_password("Abcdef1!")["special_char"]
    True
    """
    return {
        rule.name: re.search(rule.pattern, password, re.DOTALL) is not None
        for rule in PASSWORD_RULES
    }


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash
        return False


class UserRegistry:
    """Registration and sign-in over the key-value store."""

    def __init__(
        self,
        storage: KeyValueStoreInterface,
        key_prefix: str = "finan-ai",
    ):
        self._storage = storage
        self._key = namespaced_key("users", prefix=key_prefix)

    async def _load_raw(self) -> list[dict]:
        _, items = unwrap_envelope(await self._storage.get(self._key, []))
        return [item for item in items or [] if isinstance(item, dict)]

    async def _store_raw(self, items: list[dict]) -> None:
        await self._storage.set(self._key, wrap_envelope(items))

    @staticmethod
    def _normalize(email: str) -> str:
        return email.strip().lower()

    async def exists(self, email: str) -> bool:
        email = self._normalize(email)
        return any(
            self._normalize(item.get("email", "")) == email
            for item in await self._load_raw()
        )

    async def register(self, email: str, password: str) -> User:
        """
        Register a new user.

        Raises:
            RegistrationError: Empty email, weak password or email taken
        """
        email = self._normalize(email)
        if not email:
            raise RegistrationError("Please fill out all fields correctly.")

        results = check_password(password)
        failed = [name for name, ok in results.items() if not ok]
        if failed:
            raise RegistrationError(
                "Please ensure your password meets all requirements.",
                failed_rules=failed,
            )

        items = await self._load_raw()
        if any(self._normalize(item.get("email", "")) == email for item in items):
            raise RegistrationError("An account with this email already exists.")

        user = User(email=email, password_hash=hash_password(password))
        items.append(user.model_dump())
        await self._store_raw(items)

        logger.info("user_registered", user_id=email)
        return user

    async def authenticate(self, email: str, password: str) -> User:
        """
        Check credentials and return the user.

        Raises:
            AuthenticationError: Unknown email or wrong password
        """
        email = self._normalize(email)
        items = await self._load_raw()

        for i, item in enumerate(items):
            if self._normalize(item.get("email", "")) != email:
                continue

            if "password_hash" in item:
                if verify_password(password, item["password_hash"]):
                    return User.model_validate(item)
                break

            # Legacy plaintext record
            if item.get("password") == password:
                user = User(email=email, password_hash=hash_password(password))
                items[i] = user.model_dump()
                await self._store_raw(items)
                logger.info("legacy_password_rehashed", user_id=email)
                return user
            break

        raise AuthenticationError("Invalid email or password. Please try again.")
