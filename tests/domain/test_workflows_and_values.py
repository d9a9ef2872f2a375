"""
Pure domain tests: state machine tables and value objects.

No database.
"""

from uuid import uuid4

import pytest

from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.values import (
    Actor,
    CellKey,
    DryingStatus,
    StockDelta,
    StockLevels,
    TransferItemInput,
    TransferStatus,
    normalize_thickness,
    require_positive,
)
from stock_kernel.domain.workflow import (
    RECEIPT_WORKFLOW,
    TRANSFER_WORKFLOW,
    Transition,
    Workflow,
    find_transition,
)
from stock_kernel.exceptions import InvalidQuantityError, InvalidStateTransitionError, InvalidThicknessError


class TestTransferWorkflowTable:
    @pytest.mark.parametrize(
        "state, action, target",
        [
            ("PENDING", "approve", "APPROVED"),
            ("PENDING", "reject", "REJECTED"),
            ("APPROVED", "dispatch", "IN_TRANSIT"),
            ("IN_TRANSIT", "complete", "COMPLETED"),
            ("APPROVED", "complete", "COMPLETED"),
        ],
    )
    def test_allowed(self, state, action, target):
        transition = find_transition(TRANSFER_WORKFLOW, state, action, entity_type="transfer", entity_id="t")
        assert transition.to_state == target

    def test_terminal_states_have_no_actions(self):
        for state in TRANSFER_WORKFLOW.terminal_states:
            assert TRANSFER_WORKFLOW.actions_from(state) == ()

    def test_only_completion_moves_stock(self):
        moving = {t.action for t in TRANSFER_WORKFLOW.transitions if t.moves_stock}
        assert moving == {"complete"}

    @pytest.mark.parametrize(
        "state, action",
        [("PENDING", "complete"), ("IN_TRANSIT", "reject"), ("COMPLETED", "approve"), ("REJECTED", "dispatch")],
    )
    def test_rejected(self, state, action):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            find_transition(TRANSFER_WORKFLOW, state, action, entity_type="transfer", entity_id="t-1")
        assert exc_info.value.from_status == state
        assert exc_info.value.entity_id == "t-1"


class TestReceiptWorkflowTable:
    def test_complete_sources(self):
        sources = {t.from_state for t in RECEIPT_WORKFLOW.transitions if t.action == "complete"}
        assert sources == {"PENDING", "PROCESSING"}

    def test_cancel_not_from_terminal(self):
        sources = {t.from_state for t in RECEIPT_WORKFLOW.transitions if t.action == "cancel"}
        assert not sources & set(RECEIPT_WORKFLOW.terminal_states)

    def test_unknown_state_in_definition(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="A",
                states=("A",),
                transitions=(Transition("A", "B", action="go"),),
            )


class TestValues:
    def test_thickness_labels(self):
        assert normalize_thickness(' 2" ') == '2"'
        assert normalize_thickness("1 1/2\"") == '1 1/2"'
        for bad in (None, "", "   "):
            with pytest.raises(InvalidThicknessError):
                normalize_thickness(bad)

    @pytest.mark.parametrize("bad", [0, -1, True, 2.5, "3"])
    def test_require_positive(self, bad):
        with pytest.raises(InvalidQuantityError):
            require_positive(bad)

    def test_item_input_normalises(self):
        item = TransferItemInput(uuid4(), ' 2" ', 3, "DRIED")
        assert item.thickness == '2"'
        assert item.wood_status is DryingStatus.DRIED

    def test_levels(self):
        levels = StockLevels(not_dried=5).with_delta(DryingStatus.DAMAGED, -2)
        assert levels.total == 3
        assert levels.get(DryingStatus.DAMAGED) == -2
        assert levels.is_negative()

    def test_delta_rejects_non_int(self):
        key = CellKey(uuid4(), uuid4(), '2"')
        with pytest.raises(InvalidQuantityError):
            StockDelta(key, DryingStatus.DRIED, 1.5)

    def test_cell_key_sort(self):
        a = CellKey(uuid4(), uuid4(), '2"')
        b = CellKey(a.warehouse_id, a.wood_type_id, '1"')
        assert sorted([a, b], key=CellKey.sort_key) == [b, a]

    def test_actor_requires_id(self):
        with pytest.raises(ValueError):
            Actor(id=" ", name="Nobody")

    def test_editable_statuses(self):
        from stock_kernel.domain.values import EDITABLE_TRANSFER_STATUSES

        assert EDITABLE_TRANSFER_STATUSES == {TransferStatus.PENDING, TransferStatus.IN_TRANSIT}


class TestDeterministicClock:
    def test_advance(self):
        clock = DeterministicClock()
        start = clock.now()
        clock.advance(30)
        assert (clock.now() - start).total_seconds() == 30
