"""Shared-secret gate for the premium resolution tier."""
from __future__ import annotations

import hmac
import logging
from typing import Optional

from .errors import AccessDenied
from .schemas import ResolutionTier

logger = logging.getLogger(__name__)


class AccessGate:
    def __init__(self, secret: Optional[str]):
        self._secret = (secret or "").strip()

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def allows(self, tier: ResolutionTier, supplied: Optional[str] = None) -> bool:
        if tier is not ResolutionTier.PREMIUM:
            return True
        if not self._secret or not supplied:
            return False
        return hmac.compare_digest(supplied.strip().encode(), self._secret.encode())

    def check(self, tier: ResolutionTier, supplied: Optional[str] = None) -> None:
        if not self.allows(tier, supplied):
            logger.warning("Premium tier refused (secret %s)", "missing" if not supplied else "mismatch")
            raise AccessDenied(f"The {tier.value} tier requires a valid access secret")
