"""Prometheus metrics for the outbox pipeline and broker gateway."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# Custom registry so tests and embedding apps control exposition
REGISTRY = CollectorRegistry()

# Tick durations from 1ms (idle poll) up to the publish timeout range
TICK_LATENCY_BUCKETS = (
    0.001,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
)

BATCH_SIZE_BUCKETS = (0, 1, 5, 10, 25, 50, 100, 250, 500, 1000)

# Outbox staging (transactor side)
outbox_events_staged_total = Counter(
    "outbox_events_staged_total",
    "Total number of events written to the outbox inside a business transaction",
    ["topic"],
    registry=REGISTRY,
)

# Outbox delivery (worker side)
outbox_events_published_total = Counter(
    "outbox_events_published_total",
    "Total number of outbox events published to the broker and marked processed",
    ["topic"],
    registry=REGISTRY,
)

outbox_publish_failures_total = Counter(
    "outbox_publish_failures_total",
    "Total number of failed outbox publish attempts",
    ["topic", "reason"],
    registry=REGISTRY,
)

outbox_dead_lettered_total = Counter(
    "outbox_dead_lettered_total",
    "Total number of outbox events parked after exhausting publish attempts",
    ["topic"],
    registry=REGISTRY,
)

outbox_tick_duration_seconds = Histogram(
    "outbox_tick_duration_seconds",
    "Duration of one outbox claim/publish/commit tick in seconds",
    buckets=TICK_LATENCY_BUCKETS,
    registry=REGISTRY,
)

outbox_batch_size = Histogram(
    "outbox_batch_size",
    "Number of outbox rows claimed per tick",
    buckets=BATCH_SIZE_BUCKETS,
    registry=REGISTRY,
)

outbox_pending_events = Gauge(
    "outbox_pending_events",
    "Number of undelivered, non-dead-lettered outbox events (sampled every tick)",
    registry=REGISTRY,
)

# Broker gateway
broker_reconnects_total = Counter(
    "broker_reconnects_total",
    "Total number of broker reconnections performed by the publish gateway",
    registry=REGISTRY,
)

broker_connection_status = Gauge(
    "broker_connection_status",
    "Broker connection status (1=connected, 0=disconnected)",
    registry=REGISTRY,
)
