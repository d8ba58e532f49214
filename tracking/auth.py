# fieldwatch_project_root/tracking/auth.py
# Bearer token lookup for the live stream and the reference API.

import logging
import os
from pathlib import Path
from typing import Callable, Optional, Union

from config import settings

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]


def read_auth_token(token_path: Optional[Union[str, Path]] = None) -> Optional[str]:
    """
    Returns the current session token, or None when the user is not signed in.

    Read fresh on every call since the session layer may rotate it: the
    environment variable wins, then the cookie-like token file.
    """
    env_token = os.environ.get(settings.AUTH_TOKEN_ENV_VAR, "").strip()
    if env_token:
        return env_token

    path = Path(token_path or settings.AUTH_TOKEN_PATH)
    if not path.is_file():
        return None
    try:
        token = path.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.error(f"(Auth) Could not read auth token from {path}: {e}")
        return None
    return token or None
