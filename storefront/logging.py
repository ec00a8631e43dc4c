"""
Centralized logging configuration for the storefront data layer.

LOG_LEVEL sets the root level. STOREFRONT_LOG_LEVEL, when set, overrides
it for the `storefront.*` loggers only, so cart and payment tracing can be
turned up without the HTTP and Supabase clients flooding the output.

Usage:
    from storefront.logging import get_logger
    logger = get_logger(__name__)

    logger.info("Cart synced")
    logger.error("Remote cart failed", exc_info=True)
"""

import logging
import os
import sys
from functools import cache

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s - %(name)s - %(message)s"

PACKAGE_LOGGER = "storefront"

# Third-party loggers that log every request at INFO: the commerce API
# client (httpx/httpcore) and the Supabase stack (postgrest, auth, storage).
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "hpack",
    "postgrest",
    "supabase",
    "supabase_auth",
    "gotrue",
    "storage3",
    "realtime",
)


def _level_from_env(name: str, default: str = "INFO") -> int:
    level_name = os.environ.get(name, default).upper()
    return getattr(logging, level_name, logging.INFO)


def configure_logging(force: bool = False) -> None:
    """
    Attach a stdout handler to the root logger and quiet client libraries.

    Runs once on import. A host that already configured logging (uvicorn,
    pytest) keeps its handlers unless `force` is set.
    """
    root = logging.getLogger()
    if root.handlers and not force:
        _quiet_clients()
        return

    level = _level_from_env("LOG_LEVEL")
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.NOTSET)
    is_production = os.environ.get("STOREFRONT_ENV") == "production"
    handler.setFormatter(logging.Formatter(LOG_FORMAT_SIMPLE if is_production else LOG_FORMAT))

    if force:
        for existing in list(root.handlers):
            root.removeHandler(existing)
    root.addHandler(handler)

    if os.environ.get("STOREFRONT_LOG_LEVEL"):
        logging.getLogger(PACKAGE_LOGGER).setLevel(_level_from_env("STOREFRONT_LOG_LEVEL"))

    _quiet_clients()


def _quiet_clients() -> None:
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


configure_logging()


@cache
def get_logger(name: str) -> logging.Logger:
    """
    Get or create a logger with the given name.

    Names outside the package (scripts, tests) are nested under
    `storefront` so STOREFRONT_LOG_LEVEL applies to them too.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


def _escape_log_injection(value: str) -> str:
    """Escape characters that could forge log entries (CWE-117)."""
    return (
        value.replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x00", "")
    )


def sanitize_id_for_logging(id_value: str | None) -> str:
    """
    Sanitize an identifier for logging.

    Cart ids, customer ids and order ids come back from the browser and
    payment providers, so they are escaped and cut to the first 8 chars.

    Args:
        id_value: ID value to sanitize (can be None)

    Returns:
        Sanitized ID string (first 8 chars) or "N/A" if empty
    """
    if not id_value:
        return "N/A"
    safe_value = _escape_log_injection(str(id_value))
    return safe_value[:8] if len(safe_value) > 8 else safe_value


def sanitize_string_for_logging(value: str | None, max_length: int = 50) -> str:
    """
    Sanitize a free-form string for logging.

    Args:
        value: String value to sanitize (can be None)
        max_length: Maximum length to keep (default: 50)

    Returns:
        Sanitized string or "N/A" if empty
    """
    if not value:
        return "N/A"
    safe_value = _escape_log_injection(str(value))
    if len(safe_value) <= max_length:
        return safe_value
    return safe_value[:max_length] + "..."


__all__ = [
    "LOG_FORMAT",
    "LOG_FORMAT_SIMPLE",
    "NOISY_LOGGERS",
    "configure_logging",
    "get_logger",
    "sanitize_id_for_logging",
    "sanitize_string_for_logging",
]
