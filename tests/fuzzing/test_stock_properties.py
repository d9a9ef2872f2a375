"""
Property-based tests for stock conservation.

Properties:
- Netting preserves the per-(cell, status) sum of any delta set
- Any sequence of transfers between warehouses conserves the total per
  (wood type, thickness) across all warehouses
- Controlled warehouses never hold a negative count
- Reconciliation passes for every warehouse after any such sequence
"""

from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from stock_kernel.domain.reconciliation import CheckStatus
from stock_kernel.domain.values import CellKey, DryingStatus, StockDelta, TransferItemInput
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.services.ledger_service import net_deltas
from stock_kernel.services.reconciliation_service import ReconciliationService

THICKNESSES = ['1"', '2"']
WAREHOUSE_NAMES = ["main", "branch", "yard"]

_KEYS = [CellKey(uuid4(), uuid4(), t) for t in THICKNESSES]

moves_strategy = st.lists(
    st.tuples(
        st.sampled_from(WAREHOUSE_NAMES),
        st.sampled_from(WAREHOUSE_NAMES),
        st.sampled_from(THICKNESSES),
        st.integers(min_value=1, max_value=80),
        st.booleans(),
    ),
    min_size=1,
    max_size=8,
)


@given(
    raw=st.lists(
        st.tuples(
            st.sampled_from(_KEYS),
            st.sampled_from(list(DryingStatus)),
            st.integers(min_value=-50, max_value=50),
        ),
        max_size=20,
    )
)
def test_netting_preserves_sums(raw):
    deltas = [StockDelta(key, status, qty) for key, status, qty in raw]
    netted = net_deltas(deltas)

    for key in _KEYS:
        for status in DryingStatus:
            raw_sum = sum(d.quantity for d in deltas if d.key == key and d.status is status)
            net_sum = sum(d.quantity for d in netted if d.key == key and d.status is status)
            assert raw_sum == net_sum
    assert all(d.quantity != 0 for d in netted)
    assert len({(d.key, d.status) for d in netted}) == len(netted)


class TestTransferConservation:
    @pytest.fixture
    def seeded(self, completed_receipt, warehouses, wood_types):
        mninga = wood_types["mninga"]
        completed_receipt("LOT-MAIN", warehouses["main"], mninga, [('1"', 100), ('2"', 100)])
        completed_receipt("LOT-BRANCH", warehouses["branch"], mninga, [('1"', 100), ('2"', 100)])
        return mninga

    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
    )
    @given(moves=moves_strategy)
    def test_random_transfers_conserve_stock(
        self, session, seeded, ledger, transfers, warehouses, deterministic_clock, actor, moves
    ):
        savepoint = session.begin_nested()
        try:
            for source, destination, thickness, quantity, dispatch in moves:
                if source == destination:
                    continue
                try:
                    record = transfers.create(
                        warehouses[source].id,
                        warehouses[destination].id,
                        [TransferItemInput(seeded.id, thickness, quantity)],
                        actor=actor,
                    )
                except InsufficientStockError:
                    continue
                transfers.approve(record.id, actor=actor)
                if dispatch:
                    transfers.dispatch(record.id, actor=actor)
                transfers.complete(record.id, actor=actor)

            for thickness in THICKNESSES:
                levels = {
                    name: ledger.get(warehouses[name].id, seeded.id, thickness)
                    for name in WAREHOUSE_NAMES
                }
                assert sum(level.total for level in levels.values()) == 200
                assert not levels["main"].is_negative()
                assert not levels["branch"].is_negative()

            reconciliation = ReconciliationService(session, deterministic_clock)
            for name in WAREHOUSE_NAMES:
                assert reconciliation.reconcile(warehouses[name].id).status is CheckStatus.PASSED
        finally:
            savepoint.rollback()
