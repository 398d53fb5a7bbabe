"""Expiring verification codes for linking a delivery chat to a subscriber.

Codes live in an explicit store with an injected clock instead of ambient
process state, so expiry is deterministic under test.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 10 * 60
CODE_DIGITS = 6


@dataclass(frozen=True)
class PendingCode:
    owner: str
    expires_at: float


class VerificationCodeStore:
    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.clock = clock
        self._codes: Dict[str, PendingCode] = {}

    def __len__(self) -> int:
        return len(self._codes)

    def _new_code(self) -> str:
        while True:
            code = f"{secrets.randbelow(10 ** CODE_DIGITS):0{CODE_DIGITS}d}"
            if code not in self._codes:
                return code

    def issue(self, owner: str) -> str:
        """Issue a fresh code for owner. Earlier codes for the same owner are revoked."""
        self.purge_expired()
        for code in [c for c, p in self._codes.items() if p.owner == owner]:
            del self._codes[code]

        code = self._new_code()
        self._codes[code] = PendingCode(owner=owner, expires_at=self.clock() + self.ttl)
        logger.debug("Issued verification code for %s", owner)
        return code

    def verify(self, code: str) -> Optional[str]:
        """Consume code and return its owner, or None if unknown or expired."""
        self.purge_expired()
        pending = self._codes.pop(code.strip(), None)
        if pending is None:
            return None
        return pending.owner

    def purge_expired(self) -> int:
        now = self.clock()
        expired = [c for c, p in self._codes.items() if p.expires_at <= now]
        for code in expired:
            del self._codes[code]
        if expired:
            logger.debug("Purged %d expired verification codes", len(expired))
        return len(expired)
