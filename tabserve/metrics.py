"""
Prometheus 指标：推理服务可观测性

- invocations_requests_total：/invocations 请求总数（按 content_type、status 分桶）
- invocations_duration_seconds：/invocations 耗时直方图
- invocations_batch_records：JSON Lines 单批记录数
- model_version_info：当前加载的模型版本（Gauge，label=version）
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.responses import Response

INVOCATIONS_REQUESTS = Counter(
    "invocations_requests_total",
    "Total /invocations requests",
    ["content_type", "status"],
)
INVOCATIONS_LATENCY = Histogram(
    "invocations_duration_seconds",
    "Invocation request duration in seconds",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)
BATCH_RECORDS = Histogram(
    "invocations_batch_records",
    "Records per JSON lines request",
    buckets=(1, 2, 5, 10, 25, 50, 100, 250, 500, 1000),
)
MODEL_VERSION_INFO = Gauge(
    "model_version_info",
    "Loaded model version (1 = loaded, labels hold version)",
    ["version"],
)


UNSUPPORTED_CONTENT_TYPE = "unsupported"


def metrics_response() -> Response:
    """返回 Prometheus 文本格式的 /metrics 响应。"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def set_model_version(version: str | None) -> None:
    """更新 model_version_info，当前版本对应 label 置 1。"""
    MODEL_VERSION_INFO.labels(version=version or "unknown").set(1)


def inc_invocations(content_type: str, status: str) -> None:
    INVOCATIONS_REQUESTS.labels(content_type=content_type, status=status).inc()


def observe_batch_records(count: int) -> None:
    BATCH_RECORDS.observe(count)


def invocations_latency_histogram():
    """返回 INVOCATIONS_LATENCY 的 context manager（with 块内计时）。"""
    return INVOCATIONS_LATENCY.time()
