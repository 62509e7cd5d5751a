from __future__ import annotations
import os

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}

# Defaults
_DEFAULT_MAX_DEPTH = 100
_DEFAULT_LOG_LEVEL = "WARNING"


def flag_from_env(var: str, default: bool) -> bool:
    raw = os.environ.get(var)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{var} must be a boolean flag, got {raw!r}")


def int_from_env(var: str, default: int) -> int:
    raw = os.environ.get(var)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{var} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{var} must be positive, got {value}")
    return value


def get_max_depth() -> int:
    """Maximum number of closure frames on one evaluator's stack."""
    return int_from_env("RHO_MAX_DEPTH", _DEFAULT_MAX_DEPTH)


def partial_matching_enabled() -> bool:
    return flag_from_env("RHO_PARTIAL_MATCH", True)


def get_log_level() -> str:
    return os.environ.get("RHO_LOG_LEVEL", _DEFAULT_LOG_LEVEL).upper()
