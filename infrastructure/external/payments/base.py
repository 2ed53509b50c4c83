"""
Base webhook normalizer implementing shared concerns: path extraction,
status classification, logging.

Concrete providers subclass and declare their ordered path tables; only
providers with unusual payloads override the hooks.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from core.logging_config import get_logger
from application.dtos.payments import NormalizedNotification, StatusBucket
from application.ports.webhook_normalizer import WebhookNormalizer
from shared.codes.payment_codes import PROVIDER_FAILURE_STATUSES, PROVIDER_SUCCESS_STATUSES


logger = get_logger(__name__)

FieldPath = tuple[str, ...]


def resolve_path(body: Mapping[str, Any], path: FieldPath) -> Any:
    node: Any = body
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def pick_first_string(body: Mapping[str, Any], paths: Sequence[FieldPath]) -> Optional[str]:
    """First non-empty string across the ordered paths, stripped."""
    for path in paths:
        value = resolve_path(body, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class BaseWebhookNormalizer(WebhookNormalizer):
    provider: str = "base"

    status_paths: tuple[FieldPath, ...] = ()
    transaction_id_paths: tuple[FieldPath, ...] = ()
    # One entry per logical correlation field, in lookup priority order
    candidate_groups: tuple[tuple[FieldPath, ...], ...] = ()

    def normalize(self, body: Mapping[str, Any]) -> Optional[NormalizedNotification]:
        if not isinstance(body, Mapping) or not body:
            self._log("webhook_body_empty")
            return None

        status = self._extract_status(body)
        if not status:
            self._log("webhook_status_missing", keys=sorted(body.keys()))
            return None

        notification = NormalizedNotification(
            provider=self.provider,
            status=status,
            bucket=self._classify(status),
            transaction_id=pick_first_string(body, self.transaction_id_paths),
            correlation_candidates=self._extract_candidates(body),
        )
        self._log(
            "webhook_normalized",
            status=notification.status,
            bucket=notification.bucket.value,
            transaction_id=notification.transaction_id,
            candidates=len(notification.correlation_candidates),
        )
        return notification

    # Hooks
    def _extract_status(self, body: Mapping[str, Any]) -> Optional[str]:
        status = pick_first_string(body, self.status_paths)
        return status.upper() if status else None

    def _extract_candidates(self, body: Mapping[str, Any]) -> list[str]:
        candidates = [pick_first_string(body, group) for group in self.candidate_groups]
        return [c for c in candidates if c]

    def _classify(self, status: str) -> StatusBucket:
        if status in PROVIDER_SUCCESS_STATUSES.get(self.provider, frozenset()):
            return StatusBucket.SUCCESS
        if status in PROVIDER_FAILURE_STATUSES.get(self.provider, frozenset()):
            return StatusBucket.FAILURE
        return StatusBucket.IGNORED

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
