"""
Factory for the control-plane adapter.
"""
from __future__ import annotations

from typing import Optional

from core.settings import payment_settings
from .client import RemnawaveClient


def get_control_plane_client() -> Optional[RemnawaveClient]:
    """None when Remnawave is not configured; fulfillment then fails softly and is retried later."""
    cfg = payment_settings.remnawave
    if not cfg.api_url or not cfg.admin_token:
        return None
    return RemnawaveClient(cfg.api_url, cfg.admin_token)


__all__ = ["RemnawaveClient", "get_control_plane_client"]
