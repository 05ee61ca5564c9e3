"""Turn buffer that accumulates fragments of one reply."""

from __future__ import annotations

import time
from collections.abc import Callable


class TurnBuffer:
    """Accumulate reply fragments until a boundary seals the turn.

    A sealed buffer keeps its text readable until the next text-bearing frame
    arrives; that frame clears it and opens a fresh buffer.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._parts: list[str] = []
        self._sealed = False
        self.last_activity: float | None = None

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def is_empty(self) -> bool:
        return not any(self._parts)

    def _open_if_sealed(self) -> None:
        if self._sealed:
            self.reset()

    def append(self, chunk: str) -> None:
        self._open_if_sealed()
        if chunk:
            self._parts.append(chunk)
        self.last_activity = self._clock()

    def replace(self, text: str) -> None:
        self._open_if_sealed()
        self._parts = [text] if text else []
        self.last_activity = self._clock()

    def seal(self) -> str:
        """Mark the turn boundary and return the final text."""
        self._sealed = True
        return self.text

    def reset(self) -> None:
        self._parts = []
        self._sealed = False
        self.last_activity = None
