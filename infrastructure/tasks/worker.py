"""Convenience entry point for running a Celery worker with the beat scheduler.

Deployments normally use the Celery CLI
(``celery -A infrastructure.tasks worker -B``); this keeps Procfile-style
runners and local testing to a single command.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(
        argv=[
            "worker",
            "--beat",
            "--loglevel=INFO",
            "--hostname=payments@%h",
            "--queues=high,default,low",
        ]
    )


if __name__ == "__main__":
    main()
