"""Caller authentication via bearer API keys."""

import json
import re
from pathlib import Path

from fastapi import HTTPException, Request, status
from pydantic import ValidationError

from llm_relay.models import CallerIdentity
from llm_relay.utils import get_logger

logger = get_logger(__name__)

KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class FileKeyStore:
    """Resolves API keys from ``<keys_dir>/<key>.json`` records."""

    def __init__(self, keys_dir: str | Path) -> None:
        """Initialize key store.

        Args:
            keys_dir: Directory holding one JSON record per key
        """
        self.keys_dir = Path(keys_dir)

    def resolve(self, api_key: str) -> CallerIdentity | None:
        """Look up a key.

        Args:
            api_key: Bearer token presented by the caller

        Returns:
            Caller identity, or None if the key is unknown or its record is broken
        """
        # Keys become file names, so anything outside the pattern is rejected
        if not KEY_PATTERN.match(api_key):
            return None

        path = self.keys_dir / f"{api_key}.json"
        try:
            record = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.error("auth.key_record_unreadable", error=str(e))
            return None

        try:
            return CallerIdentity.model_validate(record)
        except ValidationError as e:
            logger.error("auth.key_record_invalid", errors=e.error_count())
            return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_caller(request: Request) -> CallerIdentity | None:
    """FastAPI dependency resolving the calling API key.

    Returns:
        Caller identity, or None when authentication is disabled

    Raises:
        HTTPException: 401 on a missing, malformed or unknown key
    """
    settings = request.app.state.settings
    if not settings.auth_enabled:
        return None

    header = request.headers.get("Authorization", "")
    scheme, _, api_key = header.partition(" ")
    if scheme != "Bearer" or not api_key.strip():
        raise _unauthorized("Missing or invalid Authorization header")

    caller = request.app.state.key_store.resolve(api_key.strip())
    if caller is None:
        logger.warning("auth.invalid_key")
        raise _unauthorized("Invalid API Key")

    logger.debug("auth.caller_resolved", caller=caller.id, premium=caller.premium)
    return caller
