"""Application state and user registry."""

from finan_ai.store.app_state import (
    SCHEMA_VERSION,
    AppState,
    RecordNotFoundError,
    unwrap_envelope,
    wrap_envelope,
)
from finan_ai.store.users import (
    PASSWORD_RULES,
    AuthenticationError,
    RegistrationError,
    UserRegistry,
    check_password,
)

__all__ = [
    "SCHEMA_VERSION",
    "AppState",
    "RecordNotFoundError",
    "unwrap_envelope",
    "wrap_envelope",
    "PASSWORD_RULES",
    "AuthenticationError",
    "RegistrationError",
    "UserRegistry",
    "check_password",
]
