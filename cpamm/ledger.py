"""
In-memory asset and share ledgers.

The pool engine only talks to its collaborators through the two protocols
below, so any object with the same surface can stand in for these classes.

Rollback works on an undo journal. Pool.transaction() holds each ledger's
lock for the whole scope, so no other thread can read or write the ledger
while the scope is open. Every write made under a savepoint records the
value it replaced, and rollback() puts back only those values, newest first.
"""
import logging
import threading
from collections import defaultdict
from typing import Protocol

from cpamm.errors import InsufficientBalance, InvalidAmount, TransferRejected
from cpamm.crypto import is_null_address

logger = logging.getLogger(__name__)


class AssetLedgerProtocol(Protocol):
    lock: threading.RLock

    def balance_of(self, asset_id, holder) -> int: ...

    def transfer(self, asset_id, sender, recipient, amount: int) -> bool: ...

    def savepoint(self) -> int: ...

    def rollback(self, savepoint: int): ...

    def release(self, savepoint: int): ...


class ShareLedgerProtocol(Protocol):
    lock: threading.RLock

    def mint(self, to, amount: int): ...

    def burn(self, from_, amount: int): ...

    def total_supply(self) -> int: ...

    def balance_of(self, holder) -> int: ...

    def savepoint(self) -> int: ...

    def rollback(self, savepoint: int): ...

    def release(self, savepoint: int): ...


def _require_amount(amount):
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidAmount(f"Amount must be an integer, got {type(amount).__name__}")
    if amount < 0:
        raise InvalidAmount(f"Amount cannot be negative: {amount}")


def _short(holder) -> str:
    if isinstance(holder, (bytes, bytearray)):
        return holder.hex()[:8]
    return str(holder)


_MISSING = object()


class _Journal:
    """Undo log shared by both ledgers. Callers hold the owning ledger's lock."""

    def __init__(self):
        self.entries = []
        self.open_scopes = 0

    def savepoint(self) -> int:
        self.open_scopes += 1
        return len(self.entries)

    def record(self, undo):
        if self.open_scopes:
            self.entries.append(undo)

    def rollback(self, savepoint: int):
        while len(self.entries) > savepoint:
            undo = self.entries.pop()
            undo()
        self._close()

    def release(self, savepoint: int):
        self._close()

    def _close(self):
        self.open_scopes -= 1
        if self.open_scopes == 0:
            self.entries.clear()


class AssetLedger:
    """Balances of any number of fungible assets, keyed by holder."""

    def __init__(self):
        # {asset_id: {holder: amount}}
        self.balances = defaultdict(dict)
        self.lock = threading.RLock()
        self._journal = _Journal()

    def balance_of(self, asset_id, holder) -> int:
        with self.lock:
            return self.balances.get(asset_id, {}).get(holder, 0)

    def _set(self, asset_id, holder, amount: int):
        holders = self.balances[asset_id]
        previous = holders.get(holder, _MISSING)

        def undo():
            if previous is _MISSING:
                holders.pop(holder, None)
            else:
                holders[holder] = previous

        self._journal.record(undo)
        holders[holder] = amount

    def credit(self, asset_id, holder, amount: int):
        """Create `amount` of an asset out of thin air for `holder`."""
        _require_amount(amount)
        with self.lock:
            self._set(asset_id, holder, self.balance_of(asset_id, holder) + amount)

    def transfer(self, asset_id, sender, recipient, amount: int) -> bool:
        """
        Move `amount` of `asset_id` from sender to recipient.

        Raises:
            TransferRejected: recipient is a null address
            InsufficientBalance: sender holds less than amount
        """
        _require_amount(amount)
        if is_null_address(recipient):
            raise TransferRejected("Cannot transfer to the null address")

        with self.lock:
            held = self.balance_of(asset_id, sender)
            if held < amount:
                raise InsufficientBalance(
                    f"Insufficient balance: {_short(sender)} holds {held}, needs {amount}"
                )
            self._set(asset_id, sender, held - amount)
            self._set(asset_id, recipient, self.balance_of(asset_id, recipient) + amount)

        logger.debug(f"Transfer {amount} of {_short(asset_id)}: {_short(sender)} -> {_short(recipient)}")
        return True

    def savepoint(self) -> int:
        with self.lock:
            return self._journal.savepoint()

    def rollback(self, savepoint: int):
        with self.lock:
            self._journal.rollback(savepoint)

    def release(self, savepoint: int):
        with self.lock:
            self._journal.release(savepoint)


class ShareLedger:
    """
    Pool share (LP token) ledger.

    Tracks per-holder balances and the minted/burned totals the supply is
    derived from.
    """

    def __init__(self):
        self.balances = {}
        self.total_minted = 0
        self.total_burned = 0
        self.lock = threading.RLock()
        self._journal = _Journal()

    def total_supply(self) -> int:
        with self.lock:
            return self.total_minted - self.total_burned

    def balance_of(self, holder) -> int:
        with self.lock:
            return self.balances.get(holder, 0)

    def _set(self, holder, amount: int):
        previous = self.balances.get(holder, _MISSING)

        def undo():
            if previous is _MISSING:
                self.balances.pop(holder, None)
            else:
                self.balances[holder] = previous

        self._journal.record(undo)
        self.balances[holder] = amount

    def _set_totals(self, minted: int, burned: int):
        previous = self.total_minted, self.total_burned

        def undo():
            self.total_minted, self.total_burned = previous

        self._journal.record(undo)
        self.total_minted, self.total_burned = minted, burned

    def mint(self, to, amount: int):
        _require_amount(amount)
        if is_null_address(to):
            raise TransferRejected("Cannot mint to the null address")
        with self.lock:
            self._set(to, self.balance_of(to) + amount)
            self._set_totals(self.total_minted + amount, self.total_burned)
        logger.debug(f"Minted {amount} shares to {_short(to)}")

    def burn(self, from_, amount: int):
        _require_amount(amount)
        with self.lock:
            held = self.balance_of(from_)
            if held < amount:
                raise InsufficientBalance(
                    f"Cannot burn {amount} shares, {_short(from_)} holds {held}"
                )
            self._set(from_, held - amount)
            self._set_totals(self.total_minted, self.total_burned + amount)
        logger.debug(f"Burned {amount} shares from {_short(from_)}")

    def transfer(self, sender, recipient, amount: int) -> bool:
        _require_amount(amount)
        if is_null_address(recipient):
            raise TransferRejected("Cannot transfer shares to the null address")
        with self.lock:
            held = self.balance_of(sender)
            if held < amount:
                raise InsufficientBalance(
                    f"Insufficient shares: {_short(sender)} holds {held}, needs {amount}"
                )
            self._set(sender, held - amount)
            self._set(recipient, self.balance_of(recipient) + amount)
        return True

    def savepoint(self) -> int:
        with self.lock:
            return self._journal.savepoint()

    def rollback(self, savepoint: int):
        with self.lock:
            self._journal.rollback(savepoint)

    def release(self, savepoint: int):
        with self.lock:
            self._journal.release(savepoint)
