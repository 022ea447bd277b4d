from typing import Iterable, Optional

from app.platform.config import settings


class AuthorizationPolicy:
    """
    Decides which authenticated callers bypass quota checks.

    Built from settings by default, but passed into the ledger explicitly so
    tests and other environments can swap it.
    """

    def __init__(self, exempt_user_ids: Optional[Iterable[str]] = None):
        self._exempt_user_ids = frozenset(exempt_user_ids or ())

    def is_quota_exempt(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and user_id in self._exempt_user_ids

    @classmethod
    def from_settings(cls) -> "AuthorizationPolicy":
        return cls(settings.quota_exempt_user_ids)
