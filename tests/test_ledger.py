"""
Tests for the ledger gate and the file-backed account ledger.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from companion.generation.ledger import FileAccountLedger, LedgerGate
from companion.generation.types import CostQuote


def cost(units: int) -> CostQuote:
    return CostQuote(base_units=units, quality_multiplier=1.0, size_multiplier=1.0,
                     provider_multiplier=1.0, total_units=units)


@pytest.fixture
def ledger(tmp_path):
    return FileAccountLedger(tmp_path / "ledger")


class TestFileAccountLedger:
    @pytest.mark.asyncio
    async def test_new_account_starts_at_initial_balance(self, tmp_path):
        ledger = FileAccountLedger(tmp_path / "ledger", initial_balance=25)
        assert await ledger.get_balance("new") == 25

    @pytest.mark.asyncio
    async def test_credit_and_debit_persist(self, ledger):
        await ledger.credit("acct", 100)
        assert await ledger.debit("acct", 30, "req-1") is True
        assert await ledger.get_balance("acct") == 70

        data = json.loads(ledger._account_file("acct").read_text())
        assert data["balance"] == 70
        assert data["applied_keys"] == ["req-1"]
        assert not ledger._account_file("acct").with_suffix(".json.tmp").exists()

    @pytest.mark.asyncio
    async def test_debit_is_idempotent(self, ledger):
        await ledger.credit("acct", 100)
        assert await ledger.debit("acct", 30, "req-1") is True
        assert await ledger.debit("acct", 30, "req-1") is False
        assert await ledger.get_balance("acct") == 70

    @pytest.mark.asyncio
    async def test_reload_from_disk(self, tmp_path):
        first = FileAccountLedger(tmp_path / "ledger")
        await first.credit("acct", 40)
        await first.debit("acct", 10, "req-9")

        second = FileAccountLedger(tmp_path / "ledger")
        assert await second.get_balance("acct") == 30
        assert await second.debit("acct", 10, "req-9") is False


class TestLedgerGate:
    @pytest.mark.asyncio
    async def test_denied_when_balance_short(self, ledger):
        await ledger.credit("acct", 10)
        gate = LedgerGate(ledger)

        reservation = await gate.reserve("acct", "req-1", cost(50))

        assert reservation.allowed is False
        assert reservation.required_units == 50
        assert reservation.available_units == 10
        assert gate.pending_units("acct") == 0

    @pytest.mark.asyncio
    async def test_settle_charges_once(self, ledger):
        await ledger.credit("acct", 200)
        gate = LedgerGate(ledger)

        assert (await gate.reserve("acct", "req-1", cost(113))).allowed
        assert gate.pending_units("acct") == 113
        assert await gate.settle("acct", "req-1", cost(113)) is True
        assert await gate.settle("acct", "req-1", cost(113)) is False

        assert await ledger.get_balance("acct") == 87
        assert gate.pending_units("acct") == 0

    @pytest.mark.asyncio
    async def test_release_does_not_charge(self, ledger):
        await ledger.credit("acct", 100)
        gate = LedgerGate(ledger)
        await gate.reserve("acct", "req-1", cost(60))

        await gate.release("acct", "req-1")

        assert gate.pending_units("acct") == 0
        assert await ledger.get_balance("acct") == 100

    @pytest.mark.asyncio
    async def test_pending_reservations_count_against_balance(self, ledger):
        """Test two concurrent requests cannot both spend the same coins."""
        await ledger.credit("acct", 100)
        gate = LedgerGate(ledger)

        first, second = await asyncio.gather(
            gate.reserve("acct", "req-1", cost(60)),
            gate.reserve("acct", "req-2", cost(60)),
        )

        assert sorted([first.allowed, second.allowed]) == [False, True]

    @pytest.mark.asyncio
    async def test_accounts_are_independent(self, ledger):
        await ledger.credit("a", 100)
        gate = LedgerGate(ledger)
        await gate.reserve("a", "req-1", cost(90))
        assert (await gate.reserve("b", "req-2", cost(1))).allowed is False
        assert gate.pending_units("b") == 0

    @pytest.mark.asyncio
    async def test_denial_reports_balance_net_of_pending(self, ledger):
        await ledger.credit("acct", 100)
        gate = LedgerGate(ledger)
        await gate.reserve("acct", "req-1", cost(60))

        reservation = await gate.reserve("acct", "req-2", cost(75))

        assert reservation.allowed is False
        assert reservation.available_units == 40

    @pytest.mark.asyncio
    async def test_settle_error_drops_reservation(self, ledger):
        await ledger.credit("acct", 100)
        gate = LedgerGate(ledger)
        await gate.reserve("acct", "req-1", cost(75))
        ledger.debit = AsyncMock(side_effect=OSError("disk full"))

        with pytest.raises(OSError):
            await gate.settle("acct", "req-1", cost(75))

        assert gate.pending_units("acct") == 0
        assert "acct" not in gate._pending

    @pytest.mark.asyncio
    async def test_released_accounts_leave_no_pending_entry(self, ledger):
        await ledger.credit("acct", 100)
        gate = LedgerGate(ledger)
        await gate.reserve("acct", "req-1", cost(10))
        await gate.release("acct", "req-1")
        assert gate._pending == {}


class TestAppliedKeyRetention:
    @pytest.mark.asyncio
    async def test_only_recent_keys_are_kept(self, tmp_path):
        ledger = FileAccountLedger(tmp_path / "ledger", max_applied_keys=3)
        await ledger.credit("acct", 100)
        for n in range(5):
            assert await ledger.debit("acct", 1, f"req-{n}") is True

        data = json.loads(ledger._account_file("acct").read_text())
        assert data["applied_keys"] == ["req-2", "req-3", "req-4"]
        assert data["balance"] == 95
        assert await ledger.debit("acct", 1, "req-4") is False
