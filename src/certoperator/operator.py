"""kopf event wiring for the reconciliation engine.

Handlers are registered on an explicit registry by `build_registry()` so the
resync interval can come from runtime settings. Every handler runs one
reconcile pass through the shared `ReconcileOrchestrator` and converts the
result into kopf's retry semantics:

- configuration errors raise `kopf.PermanentError` (no retry);
- any other error, or a requeue request, raises `kopf.TemporaryError`
  with an exponential backoff delay.
"""

from __future__ import annotations

import logging
from typing import Any

import kopf

from . import global_config as g
from .config import OperatorSettings
from .pipeline.orchestrator import ReconcileOrchestrator, ReconcileResult
from .store.client import load_client_config
from .utils.deadline import Deadline

logger = logging.getLogger(__name__)

PROGRESS_PREFIX = g.API_GROUP


def backoff_delay(retry: int, base_s: float, max_s: float) -> float:
    """Exponential backoff for the given retry count, capped at `max_s`."""
    return min(base_s * (2 ** max(retry, 0)), max_s)


def raise_for_result(result: ReconcileResult, settings: OperatorSettings, retry: int = 0) -> None:
    """Translate a pass result into kopf's error handling.

    Raises:
        kopf.PermanentError: For configuration errors.
        kopf.TemporaryError: For any other error, or a requeue request.
    """
    if result.fatal:
        raise kopf.PermanentError(result.message)
    if result.error is not None or result.requeue:
        delay = backoff_delay(retry, settings.retry_backoff_s, settings.retry_backoff_max_s)
        raise kopf.TemporaryError(result.message, delay=delay)


def build_registry(operator_settings: OperatorSettings) -> kopf.OperatorRegistry:
    """Register every handler for the descriptor kind on a fresh registry."""
    registry = kopf.OperatorRegistry()
    resource = (g.API_GROUP, g.API_VERSION, g.DESCRIPTOR_PLURAL)

    @kopf.on.startup(registry=registry)
    def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_: Any) -> None:
        settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=PROGRESS_PREFIX)
        settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(prefix=PROGRESS_PREFIX)
        settings.posting.level = logging.WARNING
        load_client_config()
        memo.engine = ReconcileOrchestrator.from_settings(operator_settings)
        logger.info("Reconcile engine ready (repo root %s)", operator_settings.repo_root)

    def _pass(memo: kopf.Memo, namespace: str, name: str, retry: int) -> None:
        deadline = Deadline(operator_settings.reconcile_timeout_s)
        result = memo.engine.reconcile(namespace, name, deadline=deadline)
        raise_for_result(result, operator_settings, retry)

    @kopf.on.resume(*resource, registry=registry)
    @kopf.on.create(*resource, registry=registry)
    @kopf.on.update(*resource, registry=registry)
    def reconcile(namespace: str, name: str, memo: kopf.Memo, retry: int, **_: Any) -> None:
        _pass(memo, namespace, name, retry)

    @kopf.timer(
        *resource,
        interval=operator_settings.resync_interval_s,
        idle=operator_settings.resync_interval_s,
        registry=registry,
    )
    def resync(namespace: str, name: str, memo: kopf.Memo, retry: int, **_: Any) -> None:
        _pass(memo, namespace, name, retry)

    # The engine manages its own finalizer; kopf must not add one.
    @kopf.on.delete(*resource, optional=True, registry=registry)
    def finalize(namespace: str, name: str, memo: kopf.Memo, retry: int, **_: Any) -> None:
        _pass(memo, namespace, name, retry)

    return registry


def run(settings: OperatorSettings) -> None:
    """Run the operator until interrupted."""
    registry = build_registry(settings)
    if settings.watch_namespace:
        logger.info("Watching namespace %s", settings.watch_namespace)
        kopf.run(registry=registry, namespaces=[settings.watch_namespace])
    else:
        logger.info("Watching all namespaces")
        kopf.run(registry=registry, clusterwide=True)
