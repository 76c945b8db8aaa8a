"""Convenience entry point for running a Celery worker with the beat scheduler.

Deployments usually invoke the Celery CLI; this keeps local runs to a single
command: python -m infrastructure.tasks.worker
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(
        argv=[
            "worker",
            "--beat",
            "--loglevel=INFO",
            "--hostname=worker@%h",
        ]
    )


if __name__ == "__main__":
    main()
