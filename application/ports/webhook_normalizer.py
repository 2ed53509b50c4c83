"""
Webhook normalizer port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; per-provider adapters live under
infrastructure.external.payments.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from application.dtos.payments import NormalizedNotification


@runtime_checkable
class WebhookNormalizer(Protocol):
    """Turns a raw provider body into a NormalizedNotification.

    Implementations must be pure: no IO, no exceptions for malformed input
    (return None instead).
    """

    provider: str

    def normalize(self, body: Mapping[str, Any]) -> Optional[NormalizedNotification]: ...
