# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Metrics:
- Shares computed and reward tokens credited, by formula
- Chain read failures, by call
- Transaction submissions and confirmation latency
- Current round and indexed record counts
"""

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# ACCOUNTING METRICS
# ═══════════════════════════════════════════════════════════════════

shares_computed_total = Counter(
    'bondwatch_shares_computed_total',
    'Reward shares computed from reward events',
    ['formula'],
    registry=metrics_registry
)

reward_tokens_credited_total = Counter(
    'bondwatch_reward_tokens_credited_total',
    'Reward tokens folded into pending stake',
    ['formula'],
    registry=metrics_registry
)

share_replays_total = Counter(
    'bondwatch_share_replays_total',
    'Share recomputations for rounds already credited',
    registry=metrics_registry
)

unbonding_locks_created_total = Counter(
    'bondwatch_unbonding_locks_created_total',
    'Unbonding locks indexed',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# CHAIN METRICS
# ═══════════════════════════════════════════════════════════════════

chain_read_failures_total = Counter(
    'bondwatch_chain_read_failures_total',
    'Failed chain-read collaborator calls',
    ['call'],
    registry=metrics_registry
)

current_round = Gauge(
    'bondwatch_current_round',
    'Last current round observed from the chain',
    registry=metrics_registry
)

indexed_delegators = Gauge(
    'bondwatch_indexed_delegators',
    'Number of locally indexed delegators',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# TRANSACTION METRICS
# ═══════════════════════════════════════════════════════════════════

transactions_submitted_total = Counter(
    'bondwatch_transactions_submitted_total',
    'State-changing calls submitted',
    ['method', 'outcome'],
    registry=metrics_registry
)

tx_confirmation_time_seconds = Histogram(
    'bondwatch_tx_confirmation_time_seconds',
    'Time from submission to a definitive receipt',
    buckets=[0.5, 1, 5, 15, 30, 60, 120, 300, 600],
    registry=metrics_registry
)

receipt_polls_total = Counter(
    'bondwatch_receipt_polls_total',
    'Receipt polls issued while waiting for confirmation',
    registry=metrics_registry
)


def update_metrics(records, chain_round: int = None):
    """
    Refresh gauges from indexed state.

    Args:
        records: LedgerRecords instance
        chain_round: Current round, if already read for this request
    """
    indexed_delegators.set(len(records.get_all_delegators()))
    if chain_round is not None:
        current_round.set(chain_round)
