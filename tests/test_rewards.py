"""
Tests for reward share accounting

Tests:
- Legacy and current formulas, truncation
- Formula selection at the upgrade height
- Delegator layout selection for claim-round checks
- Replay of a round leaves pending stake unchanged
- Concurrent computations for one delegator credit once
"""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from bondwatch.protocol.types.common import (
    ChainReadFailure, EventType, NotFound, RewardFormula,
)
from bondwatch.protocol.types.delegator import IndexedDelegator
from bondwatch.protocol.types.layouts import (
    GENESIS_DELEGATOR_FIELDS, LOCK_DELEGATOR_FIELDS, decode_delegator,
)
from bondwatch.ledger.core.rewards import (
    RewardInputs, current_formula, legacy_formula, select_formula,
)
from bondwatch.ledger.observability.metrics import metrics_registry

DELEGATOR = "0x" + "d" * 40
TRANSCODER = "0x" + "a" * 40
OTHER = "0x" + "b" * 40


def index(records, address=DELEGATOR, delegate=TRANSCODER, **fields):
    records.set_delegator(IndexedDelegator(address=address, delegate=delegate, **fields))


# ═══════════════════════════════════════════════════════════════════
# FORMULAS
# ═══════════════════════════════════════════════════════════════════

def test_current_formula_pro_rata():
    inputs = RewardInputs(reward_pool=100, bonded_amount=10, claimable_stake=100, is_transcoder=False)
    assert current_formula(inputs) == 10


def test_current_formula_transcoder_gets_its_reward_pool():
    inputs = RewardInputs(reward_pool=100, bonded_amount=10, claimable_stake=100, is_transcoder=True,
                          transcoder_reward_pool=7)
    assert current_formula(inputs) == 17


def test_legacy_formula_takes_reward_cut_first():
    inputs = RewardInputs(reward_pool=100, bonded_amount=50, claimable_stake=100, is_transcoder=False,
                          reward_cut=5_000, percent_denominator=10_000)
    # transcoder cut 50, delegators share 50 * 50 / 100
    assert legacy_formula(inputs) == 25


def test_legacy_formula_transcoder_adds_cut():
    inputs = RewardInputs(reward_pool=100, bonded_amount=50, claimable_stake=100, is_transcoder=True,
                          reward_cut=5_000, percent_denominator=10_000)
    assert legacy_formula(inputs) == 75


def test_formulas_truncate():
    inputs = RewardInputs(reward_pool=10, bonded_amount=1, claimable_stake=3, is_transcoder=False)
    assert current_formula(inputs) == 3
    assert legacy_formula(inputs) == 3


def test_zero_claimable_stake_yields_nothing():
    for is_transcoder in (False, True):
        inputs = RewardInputs(reward_pool=100, bonded_amount=10, claimable_stake=0,
                              is_transcoder=is_transcoder, reward_cut=5_000, percent_denominator=10_000)
        assert legacy_formula(inputs) == 0
        assert current_formula(inputs) == 0


def test_select_formula_boundary():
    assert select_formula(999, 1_000) is RewardFormula.LEGACY
    assert select_formula(1_000, 1_000) is RewardFormula.CURRENT
    assert select_formula(6_248_557, 6_248_558) is RewardFormula.LEGACY
    assert select_formula(6_248_558, 6_248_558) is RewardFormula.CURRENT


# ═══════════════════════════════════════════════════════════════════
# LAYOUTS
# ═══════════════════════════════════════════════════════════════════

def test_claim_round_position_depends_on_block(chain):
    chain.set_delegator(DELEGATOR, bonded_amount=10, delegate_address=TRANSCODER,
                        last_claim_round=99, next_unbonding_lock_id=3)

    # Genesis layout below the lock layout height
    genesis = chain.get_delegator(DELEGATOR, 100)
    assert genesis[6] == 99
    assert decode_delegator(genesis, GENESIS_DELEGATOR_FIELDS).last_claim_round == 99

    lock_layout = chain.get_delegator(DELEGATOR, 600)
    assert lock_layout[5] == 99
    assert lock_layout[6] == 3
    assert decode_delegator(lock_layout, LOCK_DELEGATOR_FIELDS).last_claim_round == 99


# ═══════════════════════════════════════════════════════════════════
# ACCOUNTANT
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def bonded(chain, records):
    """Delegator bonded 10 to TRANSCODER, last claimed round 99; round 100 pool of 100."""
    index(records)
    chain.set_transcoder(TRANSCODER, total_stake=100, reward_cut=5_000)
    chain.set_delegator(DELEGATOR, bonded_amount=10, delegate_address=TRANSCODER, last_claim_round=99)
    chain.set_earnings_pool(TRANSCODER, 100, reward_pool=100, claimable_stake=100, transcoder_reward_pool=7)


def test_compute_share_current_formula(accountant, records, bonded):
    share = accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000)

    assert share.reward_tokens == 10
    assert share.formula is RewardFormula.CURRENT
    assert share.id == f"{DELEGATOR}:100"
    assert share.pool == f"{TRANSCODER}:100"
    assert share.round == 100

    assert records.get_delegator(DELEGATOR).pending_stake == 10
    assert records.get_share(DELEGATOR, 100).reward_tokens == 10


def test_compute_share_legacy_formula(accountant, chain, records, bonded):
    chain.set_delegator(DELEGATOR, bonded_amount=50)

    # Between the two thresholds: legacy formula, unbonding-lock layout
    share = accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=800)

    assert share.formula is RewardFormula.LEGACY
    assert share.reward_tokens == 25


def test_compute_share_genesis_layout(accountant, chain, bonded):
    # Claimed through round 100: the genesis layout must be used to see it
    chain.set_delegator(DELEGATOR, last_claim_round=100)
    assert accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=100) is None

    chain.set_delegator(DELEGATOR, last_claim_round=99)
    share = accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=100)
    assert share.formula is RewardFormula.LEGACY


def test_replay_leaves_pending_stake_unchanged(accountant, records, bonded):
    accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000)
    accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000)

    assert records.get_delegator(DELEGATOR).pending_stake == 10
    assert len(records.get_shares(DELEGATOR)) == 1


def test_recompute_applies_only_the_difference(accountant, chain, records, bonded):
    accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000)

    chain.set_earnings_pool(TRANSCODER, 100, reward_pool=200)
    share = accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000)

    assert share.reward_tokens == 20
    assert records.get_delegator(DELEGATOR).pending_stake == 20


def test_shares_accumulate_across_rounds(accountant, chain, records, bonded):
    accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000)

    chain.advance_round()
    chain.set_earnings_pool(TRANSCODER, 101, reward_pool=300, claimable_stake=100)
    accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_010)

    assert records.get_delegator(DELEGATOR).pending_stake == 10 + 30
    assert [s.round for s in accountant.get_shares(DELEGATOR)] == [100, 101]


def test_claimed_rounds_are_dropped_from_credit_record(accountant, chain, records, bonded):
    accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000)
    assert records.get_delegator(DELEGATOR).credited_rounds == {100: 10}

    chain.set_delegator(DELEGATOR, last_claim_round=100)
    chain.advance_round()
    chain.set_earnings_pool(TRANSCODER, 101, reward_pool=300, claimable_stake=100)
    accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_010)

    delegator = records.get_delegator(DELEGATOR)
    assert delegator.credited_rounds == {101: 30}
    assert delegator.pending_stake == 10 + 30


def test_concurrent_computations_credit_once(accountant, records, bonded):
    workers = 8
    barrier = threading.Barrier(workers)

    def compute(_):
        barrier.wait()
        return accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000)

    with ThreadPoolExecutor(max_workers=workers) as executor:
        shares = list(executor.map(compute, range(workers)))

    assert all(s.reward_tokens == 10 for s in shares)
    delegator = records.get_delegator(DELEGATOR)
    assert delegator.pending_stake == 10
    assert delegator.credited_rounds == {100: 10}
    assert len(records.get_shares(DELEGATOR)) == 1


def test_trigger_round_overrides_chain_round(accountant, chain, bonded):
    chain.set_earnings_pool(TRANSCODER, 105, reward_pool=500, claimable_stake=100)
    share = accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000, trigger_round=105)

    assert share.round == 105
    assert share.reward_tokens == 50


def test_transcoder_share_includes_transcoder_pool(accountant, chain, records, bonded):
    index(records, address=TRANSCODER, delegate=TRANSCODER)
    chain.set_delegator(TRANSCODER, bonded_amount=10, delegate_address=TRANSCODER, last_claim_round=99)

    share = accountant.compute_share(TRANSCODER, TRANSCODER, trigger_block=2_000)
    assert share.reward_tokens == 17


def test_not_delegated_to_transcoder(accountant, records, bonded):
    assert accountant.compute_share(DELEGATOR, OTHER, trigger_block=2_000) is None
    assert records.get_shares(DELEGATOR) == []
    assert records.get_delegator(DELEGATOR).pending_stake == 0


def test_already_claimed_round_is_skipped(accountant, chain, records, bonded):
    chain.set_delegator(DELEGATOR, last_claim_round=100)
    assert accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000) is None
    assert records.get_delegator(DELEGATOR).pending_stake == 0


def test_unindexed_delegator(accountant, bonded):
    with pytest.raises(NotFound):
        accountant.compute_share(OTHER, TRANSCODER, trigger_block=2_000)
    with pytest.raises(NotFound):
        accountant.get_shares(OTHER)


def test_addresses_compared_case_insensitively(accountant, bonded):
    share = accountant.compute_share(DELEGATOR.upper().replace("0X", "0x"), TRANSCODER.upper().replace("0X", "0x"),
                                     trigger_block=2_000)
    assert share is not None
    assert share.delegator == DELEGATOR


def test_chain_read_failure_is_wrapped(accountant, chain, records, bonded):
    cause = RuntimeError("node unavailable")
    chain.fail_reads["getTranscoderEarningsPoolForRound"] = cause

    with pytest.raises(ChainReadFailure) as exc:
        accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000)

    assert str(exc.value) == "Error: getTranscoderEarningsPoolForRound\nnode unavailable"
    assert exc.value.__cause__ is cause
    assert records.get_delegator(DELEGATOR).pending_stake == 0


def test_share_computed_event(accountant, bus, bonded):
    received = []
    bus.subscribe(EventType.SHARE_COMPUTED, lambda share: received.append(share))

    share = accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000)
    assert received == [share]


def test_metrics_count_shares_and_replays(accountant, bonded):
    def sample(name, labels=None):
        return metrics_registry.get_sample_value(name, labels or {}) or 0

    computed = sample('bondwatch_shares_computed_total', {'formula': 'current'})
    replays = sample('bondwatch_share_replays_total')

    accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000)
    accountant.compute_share(DELEGATOR, TRANSCODER, trigger_block=2_000)

    assert sample('bondwatch_shares_computed_total', {'formula': 'current'}) == computed + 2
    assert sample('bondwatch_share_replays_total') == replays + 1
