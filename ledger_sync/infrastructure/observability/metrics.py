"""Prometheus metrics for mutation outcomes, retries, sync queue and cache activity"""

from prometheus_client import Counter, Gauge, Histogram

# Mutation metrics
mutation_counter = Counter(
    "ledger_sync_mutations_total",
    "Mutations submitted by outcome",
    ["mutation_type", "outcome"],  # committed | queued | failed
)

# Request metrics
api_request_histogram = Histogram(
    "ledger_sync_api_request_seconds",
    "Ledger API response time",
    ["method", "status"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

retry_counter = Counter(
    "ledger_sync_retries_total",
    "Requests retried after a failure",
    ["failure_kind"],
)

# Sync queue
sync_queue_depth = Gauge(
    "ledger_sync_queue_depth",
    "Mutations waiting in the offline sync queue",
)

replay_counter = Counter(
    "ledger_sync_replay_total",
    "Queued mutations replayed by outcome",
    ["outcome"],  # committed | dropped | halted
)

# Cache
cache_invalidation_counter = Counter(
    "ledger_sync_cache_invalidations_total",
    "Cache entries marked stale",
)

cache_fetch_counter = Counter(
    "ledger_sync_cache_fetches_total",
    "Cache fetches by result",
    ["result"],  # hit | fetched | error
)


def record_mutation(mutation_type: str, outcome: str) -> None:
    mutation_counter.labels(mutation_type=mutation_type, outcome=outcome).inc()
