"""Main entry point for the NSX Operator."""

from __future__ import annotations

import logging
import os
from typing import Any

import kopf

from . import handlers  # noqa: F401
from . import health
from . import logging as structured_logging
from .config import OperatorConfig
from .k8s import KubeClient, load_kube_config
from .runtime import OperatorRuntime, get_runtime, set_runtime
from .services.nsx import NSXClient
from .tracing import initialize_tracing, shutdown_tracing
from .utils.context import ReconcileContext
from .utils.errors import ConfigError, sanitize_exception

logger = logging.getLogger(__name__)

_health_server: Any = None
_health_state = health.HealthState()


def _runtime_started() -> bool:
    try:
        get_runtime()
    except RuntimeError:
        return False
    return True


_health_state.register("runtime", _runtime_started)


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_: Any) -> None:
    """Configure the operator."""
    # Set up structured JSON logging
    structured_logging.setup_structured_logging()

    try:
        config = OperatorConfig.from_env()
    except ConfigError as e:
        raise kopf.PermanentError(f"invalid configuration: {e}") from e
    memo.config = config

    settings.posting.level = logging.WARNING
    settings.networking.request_timeout = 30.0
    settings.execution.max_workers = 4

    if config.webhook_cert and config.webhook_key:
        settings.admission.server = kopf.WebhookServer(
            addr="0.0.0.0",
            port=config.webhook_port,
            certfile=config.webhook_cert,
            pkeyfile=config.webhook_key,
        )
    else:
        logger.warning("WEBHOOK_CERT/WEBHOOK_KEY not set, admission webhooks are not served")


@kopf.on.startup()
def start_operator(memo: kopf.Memo, **_: Any) -> None:
    """Build the components, rehydrate the stores and start the workers."""
    global _health_server

    config: OperatorConfig = memo.config
    initialize_tracing()
    load_kube_config()

    if _health_server is None:
        # Start metrics HTTP server with health check endpoints
        _health_server = health.start_health_server(config.metrics_port, _health_state)

    runtime = OperatorRuntime(config, KubeClient(), NSXClient.from_config(config), health_state=_health_state)
    try:
        runtime.start(ReconcileContext(timeout=config.reconcile_timeout_seconds))
    except Exception as e:
        runtime.stop()
        logger.error(f"Failed to start operator: {sanitize_exception(e)}")
        raise kopf.TemporaryError(f"operator startup failed: {sanitize_exception(e)}", delay=10)
    set_runtime(runtime)
    logger.info(f"NSX Operator started for cluster {config.cluster}")


@kopf.on.cleanup()
def stop_operator(**_: Any) -> None:
    global _health_server

    try:
        runtime = get_runtime()
    except RuntimeError:
        runtime = None
    if runtime is not None:
        runtime.stop(timeout=float(os.getenv("SHUTDOWN_TIMEOUT_SECONDS", "10")))
        set_runtime(None)
    if _health_server is not None:
        _health_server.shutdown()
        _health_server = None
    shutdown_tracing()
    logger.info("NSX Operator stopped")


def run() -> None:
    """Console entry point, equivalent to ``kopf run -m nsx_operator.main``."""
    kopf.run(clusterwide=True, standalone=True)


def clean() -> None:
    """Console entry point removing every NSX object the operator created for the cluster.

    Run after the operator is uninstalled; no watch or webhook is started.
    """
    structured_logging.setup_structured_logging()
    config = OperatorConfig.from_env()
    load_kube_config()
    runtime = OperatorRuntime(config, KubeClient(), NSXClient.from_config(config))
    count = runtime.cleanup(ReconcileContext())
    logger.info(f"Cleaned up {count} NSX objects of cluster {config.cluster}")
