"""Prometheus metrics for Conductor.

Tracks runs, latencies, tool executions, token usage and background hooks.
"""

from prometheus_client import Counter, Gauge, Histogram

RUN_COUNT = Counter(
    "conductor_runs_total",
    "Total number of agent runs finished",
    labelnames=["agent_id", "status"],
)

RUN_LATENCY = Histogram(
    "conductor_run_latency_seconds",
    "Agent run latency in seconds",
    labelnames=["agent_id"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

RUN_ATTEMPTS = Counter(
    "conductor_run_attempts_total",
    "Total number of loop attempts, retries included",
    labelnames=["agent_id", "outcome"],
)

MODEL_TOKENS = Counter(
    "conductor_model_tokens_total",
    "Total model tokens used",
    labelnames=["provider", "model", "direction"],
)

TOOL_EXECUTIONS = Counter(
    "conductor_tool_executions_total",
    "Total number of tool executions",
    labelnames=["tool_name", "outcome"],
)

TOOL_LATENCY = Histogram(
    "conductor_tool_latency_seconds",
    "Tool execution latency in seconds",
    labelnames=["tool_name"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)

HOOK_FAILURES = Counter(
    "conductor_hook_failures_total",
    "Total number of hook failures",
    labelnames=["hook_name", "phase", "blocking"],
)

BACKGROUND_HOOKS = Gauge(
    "conductor_background_hooks",
    "Number of non-blocking hooks currently in flight",
)

_enabled = True


def setup_metrics(enabled: bool = True) -> None:
    """Turn metric recording on or off.

    Metrics register themselves on import; disabling only stops the
    runtime from recording into them.
    """
    global _enabled
    _enabled = enabled


def metrics_enabled() -> bool:
    return _enabled


def record_run(agent_id: str, status: str, duration_seconds: float) -> None:
    if not _enabled:
        return
    RUN_COUNT.labels(agent_id=agent_id, status=status).inc()
    RUN_LATENCY.labels(agent_id=agent_id).observe(duration_seconds)


def record_attempt(agent_id: str, outcome: str) -> None:
    if _enabled:
        RUN_ATTEMPTS.labels(agent_id=agent_id, outcome=outcome).inc()


def record_tokens(provider: str, model: str, input_tokens: int, output_tokens: int) -> None:
    if not _enabled:
        return
    MODEL_TOKENS.labels(provider=provider, model=model, direction="input").inc(input_tokens)
    MODEL_TOKENS.labels(provider=provider, model=model, direction="output").inc(output_tokens)


def record_tool(tool_name: str, outcome: str, duration_seconds: float) -> None:
    if not _enabled:
        return
    TOOL_EXECUTIONS.labels(tool_name=tool_name, outcome=outcome).inc()
    TOOL_LATENCY.labels(tool_name=tool_name).observe(duration_seconds)


def record_hook_failure(hook_name: str, phase: str, blocking: bool) -> None:
    if _enabled:
        HOOK_FAILURES.labels(
            hook_name=hook_name, phase=phase, blocking=str(blocking).lower()
        ).inc()


def set_background_hooks(count: int) -> None:
    if _enabled:
        BACKGROUND_HOOKS.set(count)
