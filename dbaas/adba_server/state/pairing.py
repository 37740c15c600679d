"""
Pairing code held by the running server.

The pairing code is a 6 character shared secret shown to the device owner
and entered into client apps. It gates query execution.

Invariants:
    - Exactly one code is valid at any time
    - rotate() swaps the code under a lock; readers see old or new, never both
    - Old codes are not remembered; rotation invalidates them immediately
    - The code is never persisted
"""

from __future__ import annotations

import hmac
import threading
import uuid

PAIRING_CODE_LENGTH = 6


def generate_pairing_code(length: int = PAIRING_CODE_LENGTH) -> str:
    """Upper-cased prefix of a random UUID4."""
    return str(uuid.uuid4())[:length].upper()


class PairingSecret:
    """Process-wide rotatable pairing code.

    Example:
        >>> secret = PairingSecret()
        >>> old = secret.current()
        >>> new = secret.rotate()
        >>> secret.validate(old)
        False
    """

    def __init__(self, initial: str | None = None) -> None:
        self._lock = threading.Lock()
        self._code = initial or generate_pairing_code()

    def current(self) -> str:
        with self._lock:
            return self._code

    def rotate(self) -> str:
        """Install a freshly generated code and return it."""
        new_code = generate_pairing_code()
        with self._lock:
            self._code = new_code
        return new_code

    def validate(self, candidate: str | None) -> bool:
        """Exact, case-sensitive match against the current code."""
        if not isinstance(candidate, str):
            return False
        return hmac.compare_digest(candidate.encode("utf-8"), self.current().encode("utf-8"))

    def prefix(self, length: int) -> str:
        return self.current()[:length]
