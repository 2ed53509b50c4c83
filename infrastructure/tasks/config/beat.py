"""Celery beat schedule configuration.

Keeping the structure close to the Celery docs makes copying snippets
straightforward for new periodic jobs.
"""
from __future__ import annotations

CELERY_BEAT_SCHEDULE = {
    # Recovers fulfillments interrupted by crashes when providers stop redelivering
    "reconcile-pending-activations": {
        "task": "payments.reconcile_pending_activations",
        "schedule": 300.0,  # every 5 minutes
        "options": {"queue": "low", "expires": 290},
    },
}
