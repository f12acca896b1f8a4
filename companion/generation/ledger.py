"""
Ledger Gate - balance checks before generation, charges after success only

The gate holds per-account reservations in memory and serializes every
balance read-modify-write for an account behind one asyncio.Lock. The
balance itself lives in an AccountLedger collaborator; FileAccountLedger
keeps one JSON document per account with atomic writes.
"""

from __future__ import annotations
import asyncio
import json
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from companion.utils.logging import get_logger
from .types import CostQuote

logger = get_logger(__name__)

MAX_APPLIED_KEYS = 1000


def _account_lock(locks: "weakref.WeakValueDictionary[str, asyncio.Lock]", account_id: str) -> asyncio.Lock:
    """Per-account lock; entries vanish once no coroutine holds or awaits the lock"""
    lock = locks.get(account_id)
    if lock is None:
        lock = asyncio.Lock()
        locks[account_id] = lock
    return lock


class AccountLedger(ABC):
    """Balance-tracking collaborator"""

    @abstractmethod
    async def get_balance(self, account_id: str) -> int:
        """Current balance in account units"""

    @abstractmethod
    async def debit(self, account_id: str, units: int, idempotency_key: str) -> bool:
        """
        Subtract units once per idempotency_key.

        Returns True if this call applied the debit, False if the key was
        already applied earlier.
        """


@dataclass
class AccountState:
    account_id: str
    balance: int = 0
    applied_keys: List[str] = field(default_factory=list)
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "balance": self.balance,
            "applied_keys": self.applied_keys,
            "updated_at": self.updated_at,
        }


class FileAccountLedger(AccountLedger):
    """One JSON file per account; writes go to a temp file and are renamed into place"""

    def __init__(self, ledger_dir: Path, initial_balance: int = 0, max_applied_keys: int = MAX_APPLIED_KEYS):
        self.ledger_dir = Path(ledger_dir)
        self.ledger_dir.mkdir(parents=True, exist_ok=True)
        self.initial_balance = initial_balance
        self.max_applied_keys = max_applied_keys
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        logger.info(f"Account ledger initialized - ledger_dir: {self.ledger_dir}")

    def _account_file(self, account_id: str) -> Path:
        safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in account_id)
        return self.ledger_dir / f"{safe_id}.json"

    def _get_lock(self, account_id: str) -> asyncio.Lock:
        return _account_lock(self._locks, account_id)

    async def _load(self, account_id: str) -> AccountState:
        account_file = self._account_file(account_id)
        if not account_file.exists():
            return AccountState(account_id=account_id, balance=self.initial_balance)
        async with aiofiles.open(account_file, "r") as f:
            data = json.loads(await f.read())
        return AccountState(**data)

    async def _save(self, state: AccountState) -> None:
        account_file = self._account_file(state.account_id)
        temp_file = account_file.with_suffix(".json.tmp")
        state.updated_at = datetime.now(timezone.utc).isoformat()
        try:
            async with aiofiles.open(temp_file, "w") as f:
                await f.write(json.dumps(state.to_dict(), indent=2))
                await f.flush()
            temp_file.replace(account_file)
        except OSError:
            if temp_file.exists():
                temp_file.unlink()
            raise

    async def get_balance(self, account_id: str) -> int:
        async with self._get_lock(account_id):
            return (await self._load(account_id)).balance

    async def debit(self, account_id: str, units: int, idempotency_key: str) -> bool:
        async with self._get_lock(account_id):
            state = await self._load(account_id)
            if idempotency_key in state.applied_keys:
                return False
            state.balance -= units
            state.applied_keys.append(idempotency_key)
            # keep the most recent keys only
            del state.applied_keys[:-self.max_applied_keys]
            await self._save(state)
            return True

    async def credit(self, account_id: str, units: int) -> int:
        """Add units (purchases, seeding); returns the new balance"""
        async with self._get_lock(account_id):
            state = await self._load(account_id)
            state.balance += units
            await self._save(state)
            return state.balance


@dataclass(frozen=True)
class Reservation:
    """Outcome of a balance check; ``allowed`` False means Denied"""
    allowed: bool
    account_id: str
    request_id: str
    required_units: int
    available_units: int


class LedgerGate:
    """
    Reserve before the orchestrator, settle only after a provider success.

    Pending reservations count against the balance so two concurrent requests
    from one account cannot both pass on the same coins. Settlement is
    idempotent per request id.
    """

    def __init__(self, ledger: AccountLedger):
        self.ledger = ledger
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._pending: Dict[str, Dict[str, int]] = {}

    def _get_account_lock(self, account_id: str) -> asyncio.Lock:
        return _account_lock(self._locks, account_id)

    def _drop_pending(self, account_id: str, request_id: str) -> Optional[int]:
        account_pending = self._pending.get(account_id)
        if account_pending is None:
            return None
        units = account_pending.pop(request_id, None)
        if not account_pending:
            del self._pending[account_id]
        return units

    def pending_units(self, account_id: str) -> int:
        return sum(self._pending.get(account_id, {}).values())

    async def reserve(self, account_id: str, request_id: str, cost: CostQuote) -> Reservation:
        async with self._get_account_lock(account_id):
            balance = await self.ledger.get_balance(account_id)
            available = balance - self.pending_units(account_id)
            allowed = available >= cost.total_units

            if allowed:
                self._pending.setdefault(account_id, {})[request_id] = cost.total_units
                logger.debug(
                    f"Reserved {cost.total_units} units",
                    extra={"event": "ledger.reserve.allowed", "account_id": account_id, "request_id": request_id},
                )
            else:
                logger.warning(
                    f"Reservation denied: need {cost.total_units}, available {available}",
                    extra={
                        "event": "ledger.reserve.denied",
                        "account_id": account_id,
                        "request_id": request_id,
                        "detail": {"required": cost.total_units, "available": available},
                    },
                )

            return Reservation(
                allowed=allowed,
                account_id=account_id,
                request_id=request_id,
                required_units=cost.total_units,
                available_units=available,
            )

    async def settle(self, account_id: str, request_id: str, cost: CostQuote) -> bool:
        """Charge the quote; a repeated call for the same request id charges nothing"""
        async with self._get_account_lock(account_id):
            try:
                applied = await self.ledger.debit(account_id, cost.total_units, request_id)
            finally:
                self._drop_pending(account_id, request_id)

        logger.info(
            f"Settled {cost.total_units} units" if applied else "Settlement already applied",
            extra={
                "event": "ledger.settle" if applied else "ledger.settle.duplicate",
                "account_id": account_id,
                "request_id": request_id,
                "detail": {"units": cost.total_units},
            },
        )
        return applied

    async def release(self, account_id: str, request_id: str) -> None:
        """Drop a reservation without charging (generation failed or was cancelled)"""
        async with self._get_account_lock(account_id):
            released = self._drop_pending(account_id, request_id)
        if released is not None:
            logger.debug(
                f"Released {released} units",
                extra={"event": "ledger.release", "account_id": account_id, "request_id": request_id},
            )
