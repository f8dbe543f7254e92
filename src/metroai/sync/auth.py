"""Bearer token access for authenticated API calls."""

import os
from pathlib import Path
from typing import Protocol


class AuthProvider(Protocol):
    """Source of the bearer token sent with every API request."""

    def get_bearer_token(self) -> str | None:
        """Return the current access token, or None when signed out."""
        ...

    def clear_session(self) -> None:
        """Forget stored credentials."""
        ...


class TokenFileAuth:
    """Stores the access token in a single owner-readable file."""

    def __init__(self, token_path: Path) -> None:
        self.token_path = Path(token_path)

    def get_bearer_token(self) -> str | None:
        if not self.token_path.exists():
            return None
        try:
            token = self.token_path.read_text().strip()
        except OSError:
            return None
        return token or None

    def save_token(self, token: str) -> None:
        """Persist a new access token."""
        token = token.strip()
        if not token:
            raise ValueError("token must not be empty")
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.token_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(token)

    def clear_session(self) -> None:
        self.token_path.unlink(missing_ok=True)

    @property
    def is_authenticated(self) -> bool:
        """Whether a token is currently stored."""
        return self.get_bearer_token() is not None
