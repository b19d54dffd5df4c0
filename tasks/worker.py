"""Celery application factory."""

from __future__ import annotations

from typing import Any

import structlog
from celery import Celery, signals
from kombu import Queue

from app.backend.src.core.config import get_settings
from app.backend.src.core.logging import configure_logging

LOGGER = structlog.get_logger(__name__)

settings = get_settings()
configure_logging()

LOGGER.info(
    "celery_bootstrap_ready",
    broker=settings.broker_url,
    backend=settings.result_backend,
)


celery = Celery(
    "fuel_ops",
    broker=settings.broker_url,
    backend=settings.result_backend,
)

# Explicit registration; without it the worker and beat start but never see
# `tasks.activate_due_prices`.
celery.conf.update(include=["tasks.price_tasks"])

celery_conf: dict[str, object] = {
    "task_default_queue": "workflow",
    "task_queues": (Queue("workflow"),),
    "task_serializer": "json",
    "accept_content": ["json"],
    "result_serializer": "json",
    "worker_prefetch_multiplier": 1,
    "broker_transport_options": {
        "global_keyprefix": "fuel-ops-broker:",
    },
    "result_backend_transport_options": {
        "global_keyprefix": "fuel-ops-result:",
    },
    "broker_connection_retry_on_startup": True,
    "beat_schedule": {
        "activate-due-prices": {
            "task": "tasks.activate_due_prices",
            "schedule": float(settings.price_activation_interval_seconds),
        },
    },
    "timezone": "UTC",
}

celery.conf.update(**celery_conf)

from . import price_tasks  # noqa: F401,E402  # isort: skip


@signals.worker_ready.connect
def _log_worker_configuration(sender: Any | None = None, **_: Any) -> None:
    """Emit structured worker configuration details after startup."""

    app = sender.app if sender is not None else celery
    registered_tasks = sorted(
        task_name for task_name in app.tasks.keys() if task_name.startswith("tasks.")
    )
    LOGGER.info(
        "celery_worker_configuration",
        default_queue=app.conf.task_default_queue,
        registered_tasks=registered_tasks,
        beat_schedule=sorted(app.conf.beat_schedule or {}),
    )


@signals.task_postrun.connect
def _log_task_postrun(
    sender: Any | None = None,
    task_id: str | None = None,
    task: Any | None = None,
    retval: Any | None = None,
    state: str | None = None,
    **_: Any,
) -> None:
    """Emit completion information after a task finishes."""

    task_name = getattr(task, "name", None) or ""
    if task_name and not task_name.startswith("tasks."):
        return
    payload: dict[str, Any] = {"task_id": task_id, "task_name": task_name, "state": state}
    if state == "SUCCESS" and isinstance(retval, dict):
        payload["result_keys"] = sorted(retval.keys())
    LOGGER.info("celery_task_postrun", **payload)


__all__ = ["celery"]
