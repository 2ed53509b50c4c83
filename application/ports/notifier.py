"""
Outbound user messaging port.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Notifier(Protocol):
    """Delivers a pre-rendered HTML message to a chat; raises on transport failure."""

    @property
    def enabled(self) -> bool: ...

    async def send_message(self, chat_id: str, text: str) -> None: ...
