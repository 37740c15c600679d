"""
Request gate: the pairing-code check in front of tenant data access.

Gated entry points: query execution and session attach. Database
create/list/get/delete and the pairing endpoints are open.
"""

from __future__ import annotations

import logging

from ..errors import AuthFailedError
from ..state.pairing import PairingSecret

logger = logging.getLogger(__name__)


class RequestGate:
    """Checks presented pairing codes against the live secret."""

    def __init__(self, pairing: PairingSecret) -> None:
        self.pairing = pairing

    def authorize(self, presented_code: str | None) -> bool:
        return self.pairing.validate(presented_code)

    def require(self, presented_code: str | None) -> None:
        """Raise AuthFailedError unless the code matches."""
        if not self.authorize(presented_code):
            logger.warning("Rejected request with invalid pairing code")
            raise AuthFailedError()
