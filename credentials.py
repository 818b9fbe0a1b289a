"""
Anthropic API credential resolution.
ANTHROPIC_API_KEY wins; otherwise the OAuth token stored by the Claude CLI
in ~/.claude/.credentials.json is used as a bearer token.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

CREDENTIALS_FILE = os.path.join(".claude", ".credentials.json")
OAUTH_SECTION = "claudeAiOauth"


class CredentialsError(Exception):
    """No usable Anthropic credentials could be found."""


@dataclass
class Credentials:
    api_key: str = ""
    access_token: str = ""
    refresh_token: str = ""
    expires_at: int = 0

    def is_oauth(self) -> bool:
        return not self.api_key and bool(self.access_token)


def load_credentials(env: Optional[Mapping[str, str]] = None, home: Optional[str] = None) -> Credentials:
    """Resolve credentials from the environment, then the credentials file."""
    env = os.environ if env is None else env
    key = env.get("ANTHROPIC_API_KEY", "")
    if key:
        return Credentials(api_key=key)

    home = home or os.path.expanduser("~")
    if not home or home == "~":
        raise CredentialsError("no ANTHROPIC_API_KEY set and cannot determine home directory")

    path = os.path.join(home, CREDENTIALS_FILE)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        raise CredentialsError("no ANTHROPIC_API_KEY set and ~/.claude/.credentials.json not found") from None
    except (OSError, json.JSONDecodeError) as e:
        raise CredentialsError(f"malformed credentials file: {e}") from None

    if not isinstance(raw, dict) or OAUTH_SECTION not in raw:
        raise CredentialsError(f"credentials file missing {OAUTH_SECTION} key")
    oauth = raw[OAUTH_SECTION]
    if not isinstance(oauth, dict):
        raise CredentialsError("malformed OAuth section in credentials")

    token = oauth.get("accessToken") or ""
    if not token:
        raise CredentialsError("credentials file has empty accessToken")

    logger.info("Using OAuth access token from credentials file")
    return Credentials(
        access_token=token,
        refresh_token=oauth.get("refreshToken") or "",
        expires_at=int(oauth.get("expiresAt") or 0),
    )
