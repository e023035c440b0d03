# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports ledger metrics in Prometheus format.

Metrics:
- Operations by type and result (ok / rejection code)
- Emitted events by type
- Custody balance, total staked principal, owed reward
- Current parameters (rate, lock duration, pause flag)
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

from stakeproto.config.params import PRECISION

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# OPERATION METRICS
# ═══════════════════════════════════════════════════════════════════

operations_total = Counter(
    'stakeledger_operations_total',
    'Ledger operations by type and result',
    ['op', 'result'],
    registry=metrics_registry
)

events_total = Counter(
    'stakeledger_events_total',
    'Ledger events emitted',
    ['event_type'],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# CUSTODY METRICS
# ═══════════════════════════════════════════════════════════════════

custody_balance = Gauge(
    'stakeledger_custody_balance',
    'Asset units held in custody',
    registry=metrics_registry
)

total_staked = Gauge(
    'stakeledger_total_staked',
    'Principal held in active stakes',
    registry=metrics_registry
)

total_unclaimed_reward = Gauge(
    'stakeledger_total_unclaimed_reward',
    'Checkpointed reward not yet claimed (whole units)',
    registry=metrics_registry
)

accounts_total = Gauge(
    'stakeledger_accounts_total',
    'Number of accounts that ever staked',
    registry=metrics_registry
)

active_stakes = Gauge(
    'stakeledger_active_stakes',
    'Number of stake records with principal left',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# PARAMETER METRICS
# ═══════════════════════════════════════════════════════════════════

reward_rate_percent = Gauge(
    'stakeledger_reward_rate_percent',
    'Annual reward rate in percent',
    registry=metrics_registry
)

lock_duration_seconds = Gauge(
    'stakeledger_lock_duration_seconds',
    'Lock duration applied to withdrawals',
    registry=metrics_registry
)

paused = Gauge(
    'stakeledger_paused',
    '1 while the ledger is paused',
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def update_metrics(ledger):
    """
    Update all Prometheus gauges from ledger state.
    Called when metrics are scraped. Counters are updated where the
    operations happen.

    Args:
        ledger: StakingLedger instance
    """
    state = ledger.state
    accounts = state.get_all_accounts()

    custody_balance.set(ledger.custody.balance())
    total_staked.set(sum(acc.staked_balance for acc in accounts))
    total_unclaimed_reward.set(sum(acc.unclaimed_reward for acc in accounts) // PRECISION)
    accounts_total.set(len(accounts))
    active_stakes.set(sum(len(acc.active_stakes()) for acc in accounts))

    params = ledger.params
    reward_rate_percent.set(params.reward_rate_percent)
    lock_duration_seconds.set(params.lock_duration)
    paused.set(1 if params.paused else 0)
