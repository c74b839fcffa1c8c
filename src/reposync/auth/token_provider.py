"""Bearer credential lookup.

The sync engine never performs an interactive login; it only consumes a
token that some other part of the system obtained. ``TokenProvider``
looks it up in a fixed order and ``login`` checks that it works.
"""

from pathlib import Path
from typing import Optional

from ..api_clients.github import GitHubClient
from ..api_clients.models import AuthenticatedUser
from ..config.settings import GitHubSettings, get_settings
from ..exceptions import AuthenticationError
from ..utils.logging import get_logger


logger = get_logger("auth.token_provider")


class TokenProvider:
    """Supplies the bearer credential for remote calls.

    Lookup order: explicit token, ``GITHUB_TOKEN`` setting, ``GITHUB_TOKEN_FILE``.
    """

    def __init__(self, token: Optional[str] = None, settings: Optional[GitHubSettings] = None):
        self._token = token
        self.settings = settings or get_settings().github

    def get_token(self) -> str:
        if self._token:
            return self._token

        if self.settings.token:
            return self.settings.token

        if self.settings.token_file:
            token_path = Path(self.settings.token_file).expanduser()
            try:
                token = token_path.read_text(encoding="utf-8").strip()
            except OSError as e:
                raise AuthenticationError(f"Cannot read token file {token_path}: {e}") from e
            if token:
                return token

        raise AuthenticationError(
            "No GitHub token configured. Set GITHUB_TOKEN or GITHUB_TOKEN_FILE."
        )

    def set_token(self, token: Optional[str]) -> None:
        """Replace the explicit token (``None`` falls back to settings)."""
        self._token = token


async def login(token: str, settings: Optional[GitHubSettings] = None) -> AuthenticatedUser:
    """Validate a token by reading the identity it belongs to."""
    async with GitHubClient(token=token, settings=settings) as client:
        user = await client.get_authenticated_user()

    logger.info("Token validated", login=user.login)
    return user
