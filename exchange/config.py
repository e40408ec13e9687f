"""Deployment settings, read from the environment."""

import os
from dataclasses import dataclass

from exchange.rules import MIN_PLAYERS, ROOM_CODE_LENGTH, STEAL_LOCK_THRESHOLD

# Env var names
ENV_STEAL_LOCK_THRESHOLD = "WHITE_ELEPHANT_STEAL_LOCK_THRESHOLD"
ENV_MIN_PLAYERS = "WHITE_ELEPHANT_MIN_PLAYERS"
ENV_ROOM_CODE_LENGTH = "WHITE_ELEPHANT_ROOM_CODE_LENGTH"
ENV_ROOM_GRACE_SECONDS = "WHITE_ELEPHANT_ROOM_GRACE_SECONDS"
ENV_SHOW_OWN_SUBMISSION = "WHITE_ELEPHANT_SHOW_OWN_SUBMISSION"
ENV_AUTO_CREATE_ON_JOIN = "WHITE_ELEPHANT_AUTO_CREATE_ON_JOIN"
ENV_HOST_FAILOVER = "WHITE_ELEPHANT_HOST_FAILOVER"
ENV_LOG_LEVEL = "WHITE_ELEPHANT_LOG_LEVEL"

# Idle rooms with nobody connected are evicted after this long
DEFAULT_ROOM_GRACE_SECONDS = 30 * 60

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Resolved settings for one server process."""

    steal_lock_threshold: int = STEAL_LOCK_THRESHOLD
    min_players: int = MIN_PLAYERS
    room_code_length: int = ROOM_CODE_LENGTH
    room_grace_seconds: float = DEFAULT_ROOM_GRACE_SECONDS
    show_own_submission: bool = True  # creators see their own title before reveal
    auto_create_on_join: bool = True  # joining an unknown code creates that room
    host_failover: bool = False  # move host to next connected player on host disconnect
    log_level: str = "INFO"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


def load_settings() -> Settings:
    """Build Settings from env; unset variables keep their defaults."""
    return Settings(
        steal_lock_threshold=_env_int(ENV_STEAL_LOCK_THRESHOLD, STEAL_LOCK_THRESHOLD),
        min_players=max(2, _env_int(ENV_MIN_PLAYERS, MIN_PLAYERS)),
        room_code_length=_env_int(ENV_ROOM_CODE_LENGTH, ROOM_CODE_LENGTH),
        room_grace_seconds=_env_int(ENV_ROOM_GRACE_SECONDS, DEFAULT_ROOM_GRACE_SECONDS),
        show_own_submission=_env_bool(ENV_SHOW_OWN_SUBMISSION, True),
        auto_create_on_join=_env_bool(ENV_AUTO_CREATE_ON_JOIN, True),
        host_failover=_env_bool(ENV_HOST_FAILOVER, False),
        log_level=(os.environ.get(ENV_LOG_LEVEL) or "INFO").upper(),
    )
