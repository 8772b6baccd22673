from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import urlsplit, urlunsplit

URL_TOKEN_RE = re.compile(r"(?:https?|wss?|redis|rediss)://[^\s\"'<>]+", re.IGNORECASE)
API_KEY_ASSIGNMENT_RE = re.compile(r"(?i)((?:api[-_]?key|private[-_]?key)\s*[:=]\s*)([^\s,;\"'&]+)")
API_KEY_QUERY_RE = re.compile(r"(?i)([?&](?:api[-_]?key|key|token)=)([^&#\s]+)")

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _sanitize_url_token(token: str) -> str:
    candidate = token
    trailing = ""
    while candidate and candidate[-1] in ".,);]}":
        trailing = candidate[-1] + trailing
        candidate = candidate[:-1]

    parsed = urlsplit(candidate)
    if parsed.netloc:
        # Drop credentials, query string and fragment; keep host and path.
        host = parsed.hostname or ""
        if parsed.port:
            host = f"{host}:{parsed.port}"
        candidate = urlunsplit((parsed.scheme, host, parsed.path, "", ""))
    return f"{candidate}{trailing}"


def sanitize_text(value: str) -> str:
    masked = URL_TOKEN_RE.sub(lambda match: _sanitize_url_token(match.group(0)), value)
    masked = API_KEY_QUERY_RE.sub(r"\1***", masked)
    masked = API_KEY_ASSIGNMENT_RE.sub(r"\1***", masked)
    return masked


def sanitize_value(value: Any) -> Any:
    if isinstance(value, str):
        return sanitize_text(value)
    if isinstance(value, dict):
        return {key: sanitize_value(child) for key, child in value.items()}
    if isinstance(value, list):
        return [sanitize_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(sanitize_value(item) for item in value)
    return value


def log_event(
    logger: logging.Logger,
    *,
    level: str,
    event: str,
    message: str,
    **fields: Any,
) -> None:
    extra = {"event": sanitize_value(event)}
    extra.update({key: sanitize_value(value) for key, value in fields.items()})
    safe_message = sanitize_text(message)

    if level == "exception":
        logger.exception(safe_message, extra=extra)
        return

    logger.log(LEVELS.get(level, logging.INFO), safe_message, extra=extra)
