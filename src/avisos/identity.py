"""Acting-user identity for authoring and modifying notes."""

import logging
from typing import List, Optional, Sequence

from avisos.config import config
from avisos.exceptions import ErrorCode, IdentityError

logger = logging.getLogger(__name__)


class UserSession:
    """Holds the user currently operating the app.

    The user must be one of the configured identities. Author and
    ``modified_by`` values are taken from here by the note service.
    """

    def __init__(
        self,
        username: Optional[str] = None,
        available_users: Optional[Sequence[str]] = None,
    ):
        self._available = list(available_users or config.available_users)
        self._current: Optional[str] = None
        if username is not None:
            self.switch(username)

    @property
    def available_users(self) -> List[str]:
        return list(self._available)

    @property
    def current_user(self) -> Optional[str]:
        return self._current

    @property
    def is_active(self) -> bool:
        return self._current is not None

    def switch(self, username: str) -> str:
        """Make ``username`` the acting user.

        Raises:
            IdentityError: If the name is not a configured user.
        """
        name = (username or "").strip()
        if name not in self._available:
            raise IdentityError(
                f"Unknown user '{username}'. Available: {', '.join(self._available)}",
                username=username,
                code=ErrorCode.UNKNOWN_USER,
            )
        if name != self._current:
            logger.info(f"Acting user is now {name}")
        self._current = name
        return name

    def clear(self) -> None:
        self._current = None

    def require_user(self) -> str:
        """Return the acting user, raising IdentityError if none is selected."""
        if self._current is None:
            raise IdentityError(
                "No user selected", code=ErrorCode.NO_ACTIVE_USER
            )
        return self._current
