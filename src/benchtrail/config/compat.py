import logging
import os

logger = logging.getLogger(__name__)

_TRUE_VALUES = frozenset(("1", "true", "yes", "y", "on"))
_FALSE_VALUES = frozenset(("0", "false", "no", "n", "off"))


def env_bool(name: str, *, default: bool) -> bool:
    """Read a boolean environment variable.

    Unrecognized values fall back to `default` with a warning.
    """
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    logger.warning("Ignoring invalid boolean %s=%r, using %s", name, raw, default)
    return default


def env_float(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid number %s=%r", name, raw)
        return None
