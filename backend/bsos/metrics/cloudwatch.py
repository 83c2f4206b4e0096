"""CloudWatch business metrics for webhook and reconciliation outcomes.

Emission is fire-and-forget: boto3 is synchronous, so calls run on a small
thread pool and failures are logged, never raised. Disabled unless
settings.metrics_enabled is set.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime

import boto3
import structlog

from bsos.core.config import get_settings

logger = structlog.get_logger(__name__)

_cw_client = None
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="cw-metrics")


def _get_client():
    global _cw_client
    if _cw_client is None:
        _cw_client = boto3.client("cloudwatch", region_name=get_settings().aws_region)
    return _cw_client


def _put_business_event(namespace: str, event_name: str, value: float) -> None:
    """Synchronous put_metric_data. Runs in the thread pool."""
    try:
        _get_client().put_metric_data(
            Namespace=namespace,
            MetricData=[{
                "MetricName": "EventCount",
                "Dimensions": [{"Name": "Event", "Value": event_name}],
                "Value": value,
                "Unit": "Count",
                "Timestamp": datetime.now(UTC),
            }],
        )
    except Exception as e:
        logger.warning("business_event_emit_failed", error=str(e), metric=event_name)


async def emit_business_event(event_name: str, value: float = 1.0) -> None:
    """Emit a business event count. Non-blocking, no-op when metrics are disabled."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    loop = asyncio.get_running_loop()
    loop.run_in_executor(_executor, _put_business_event, settings.metrics_namespace, event_name, value)
