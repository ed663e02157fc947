"""CloudWatch custom metrics for generation latency and business events.

``configure_metrics`` is called once from the app lifespan with the app's
settings; until then, and whenever ``metrics_enabled`` is off, the ``emit_*``
helpers return immediately. Emission is fire-and-forget: boto3 calls run on a
small thread pool and failures are logged, never raised.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime

import boto3
import structlog

from optimizecode.core.config import Settings

logger = structlog.get_logger(__name__)

LLM_NAMESPACE = "OptimizeCode/LLM"
BUSINESS_NAMESPACE = "OptimizeCode/Business"

_enabled = False
_region = "us-east-1"
_client = None
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="cw-metrics")


def configure_metrics(settings: Settings) -> None:
    global _enabled, _region, _client

    if settings.aws_region != _region:
        _client = None
    _enabled = settings.metrics_enabled
    _region = settings.aws_region
    logger.info("metrics_configured", enabled=_enabled, region=_region)


def metrics_enabled() -> bool:
    return _enabled


def _get_client():
    global _client
    if _client is None:
        _client = boto3.client("cloudwatch", region_name=_region)
    return _client


def _put(namespace: str, metric_name: str, value: float, unit: str, dimensions: dict[str, str]) -> None:
    """Blocking put_metric_data; runs on the executor."""
    try:
        _get_client().put_metric_data(
            Namespace=namespace,
            MetricData=[{
                "MetricName": metric_name,
                "Dimensions": [{"Name": k, "Value": v} for k, v in dimensions.items()],
                "Value": value,
                "Unit": unit,
                "Timestamp": datetime.now(UTC),
            }],
        )
    except Exception as e:
        logger.warning("metric_emit_failed", namespace=namespace, metric=metric_name, error=str(e))


def _submit(*args) -> None:
    asyncio.get_running_loop().run_in_executor(_executor, _put, *args)


async def emit_llm_latency(optimization_type: str, duration_ms: float, model: str) -> None:
    if not _enabled:
        return
    _submit(
        LLM_NAMESPACE,
        "Latency",
        duration_ms,
        "Milliseconds",
        {"OptimizationType": optimization_type, "Model": model},
    )


async def emit_business_event(event_name: str, plan: str | None = None) -> None:
    if not _enabled:
        return
    dimensions = {"Event": event_name}
    if plan:
        dimensions["Plan"] = plan
    _submit(BUSINESS_NAMESPACE, "EventCount", 1.0, "Count", dimensions)
