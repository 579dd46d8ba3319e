"""
Constant-product pool engine.

The pool never receives an explicit input amount. Callers move assets (or
shares) into the pool's custody address first and then call the operation;
the engine works out what arrived by comparing the ledgers against its cached
reserves. Both steps belong in one `pool.transaction()` scope:

    with pool.transaction():
        assets.transfer(asset_a, trader, pool.address, 110)
        pool.swap(363, trader, asset_a)

The scope holds the pool lock and both ledger locks, and undoes the pool
state and every ledger write made inside it if anything raises.
"""
import logging
import math
import threading
import time
from contextlib import contextmanager

from cpamm.amm_state import PoolState
from cpamm.crypto import POOL_ADDRESS, address_from_hex, is_null_address, public_key_to_address
from cpamm.errors import (
    AlreadyInitialized,
    InsufficientLiquidity,
    InvalidAmount,
    InvalidAssetIdentity,
    InvariantViolation,
    PoolError,
    PoolNotInitialized,
    Unauthorized,
    UnsupportedAsset,
    ZeroAmount,
    ZeroShares,
)
from cpamm.config import configure_logging
from cpamm.ledger import AssetLedgerProtocol, ShareLedgerProtocol
from cpamm.monitoring import PoolMonitor

logger = logging.getLogger(__name__)


def _require_amount(amount, allow_zero: bool = True):
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidAmount(f"Amount must be an integer, got {type(amount).__name__}")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmount(f"Amount must be positive, got {amount}")


class Pool:
    """
    Two-asset constant-product pool.

    Mutating operations are serialized on one re-entrant lock. Quotes from
    other threads read the last committed copy of the reserve ledger and
    never block on a writer.
    """

    def __init__(self, assets: AssetLedgerProtocol, shares: ShareLedgerProtocol,
                 address: bytes = POOL_ADDRESS, owner: bytes = None,
                 monitor: PoolMonitor = None):
        """
        Args:
            assets: Asset ledger the pool holds its reserves in
            shares: Share ledger the pool mints and burns against
            address: Custody address the pool holds assets and shares under
            owner: If set, only this caller may run init_pool
            monitor: Optional PoolMonitor for Prometheus metrics
        """
        self.assets = assets
        self.shares = shares
        self.address = address
        self.owner = owner
        self.monitor = monitor

        self.state = PoolState()
        self._published = self.state.copy()

        self._lock = threading.RLock()
        self._writer = None
        self._depth = 0

    @classmethod
    def from_config(cls, config, assets, shares, owner: bytes = None) -> 'Pool':
        """
        Build a pool from a Config, initializing it when both asset ids are set.

        The owner comes from `owner` or, failing that, from the PEM public key
        in config.pool.owner_public_key. The metrics server only starts once
        the pool is fully built.
        """
        configure_logging(config.logging)

        if owner is None and config.pool.owner_public_key:
            owner = public_key_to_address(config.pool.owner_public_key)

        monitor = None
        if config.monitoring.enabled:
            monitor = PoolMonitor(host=config.monitoring.host, port=config.monitoring.port)

        pool = cls(assets, shares, address=address_from_hex(config.pool.address),
                   owner=owner, monitor=monitor)
        if config.pool.asset_a and config.pool.asset_b:
            pool.init_pool(address_from_hex(config.pool.asset_a),
                           address_from_hex(config.pool.asset_b), caller=owner)

        if monitor is not None:
            monitor.start_server()
        return pool

    # ==========================================================================
    # TRANSACTION SCOPE
    # ==========================================================================

    @contextmanager
    def transaction(self):
        """
        Atomic, serialized scope over the pool and both ledgers.

        The outermost scope holds the pool lock and both ledger locks until it
        exits, so other threads neither see its uncommitted transfers nor write
        to the ledgers underneath it. Scopes nest. Each level opens its own
        ledger savepoint, so an inner failure that the caller catches still
        leaves no partial effects. Readers on other threads only see reserves
        once the outermost scope exits cleanly.
        """
        with self._lock, self.assets.lock, self.shares.lock:
            outermost = self._depth == 0
            saved_state = self.state.copy()
            asset_point = self.assets.savepoint()
            share_point = self.shares.savepoint()

            self._depth += 1
            if outermost:
                self._writer = threading.get_ident()
            try:
                yield self
            except Exception as e:
                self.state = saved_state
                self.shares.rollback(share_point)
                self.assets.rollback(asset_point)
                if outermost:
                    logger.warning(f"Pool transaction rolled back: {e}")
                raise
            else:
                self.shares.release(share_point)
                self.assets.release(asset_point)
                if outermost:
                    self._published = self.state.copy()
            finally:
                self._depth -= 1
                if outermost:
                    self._writer = None

    @contextmanager
    def _operation(self, name: str):
        start = time.time()
        try:
            with self.transaction():
                yield
        except Exception:
            self._record(name, 'failed', start)
            raise
        self._record(name, 'success', start)

    def _record(self, name: str, status: str, start: float):
        if self.monitor is None:
            return
        self.monitor.record_op(name, status, time.time() - start)
        reserve_a, reserve_b = self._view().get_reserves()
        self.monitor.update(reserve_a, reserve_b, self.shares.total_supply())

    def _view(self) -> PoolState:
        """Working state for the writer thread, committed copy for everyone else."""
        if self._writer == threading.get_ident():
            return self.state
        return self._published

    # ==========================================================================
    # INITIALIZATION
    # ==========================================================================

    def init_pool(self, asset_a, asset_b, caller: bytes = None):
        """
        Set the two asset identities. Runs once per pool.

        Raises:
            Unauthorized: an owner is configured and caller is someone else
            AlreadyInitialized: the pool already has its assets
            InvalidAssetIdentity: an id is null, not bytes or str, or both ids are equal
        """
        with self._operation('init_pool'):
            if self.owner is not None and caller != self.owner:
                raise Unauthorized("Only the pool owner may initialize the pool")
            if self.state.initialized:
                raise AlreadyInitialized("Pool already initialized")
            if not isinstance(asset_a, (bytes, str)) or not isinstance(asset_b, (bytes, str)):
                raise InvalidAssetIdentity("Asset ids must be bytes or str")
            if is_null_address(asset_a) or is_null_address(asset_b):
                raise InvalidAssetIdentity("Asset ids cannot be null")
            if asset_a == asset_b:
                raise InvalidAssetIdentity("Asset ids must differ")

            self.state.asset_a = asset_a
            self.state.asset_b = asset_b
            self.state.initialized = True

        logger.info(f"Pool initialized with assets {_label(asset_a)} / {_label(asset_b)}")

    def _require_initialized(self) -> PoolState:
        if not self.state.initialized:
            raise PoolNotInitialized("Pool has not been initialized")
        return self.state

    # ==========================================================================
    # QUOTES
    # ==========================================================================

    def get_reserves(self) -> tuple[int, int]:
        return self._view().get_reserves()

    @staticmethod
    def _resolve(state: PoolState, asset_in) -> tuple[int, int, bool]:
        """Return (reserve_in, reserve_out, input_is_a) for an input asset."""
        if state.initialized:
            if asset_in == state.asset_a:
                return state.reserve_a, state.reserve_b, True
            if asset_in == state.asset_b:
                return state.reserve_b, state.reserve_a, False
        raise UnsupportedAsset(f"Asset {_label(asset_in)} is not traded by this pool")

    def get_amount_out(self, asset_in, amount_in: int) -> int:
        """
        Output a swap of `amount_in` would realize against current reserves.

        Formula: Δy = (y * Δx) / (x + Δx), truncated toward the pool.
        """
        _require_amount(amount_in)
        reserve_in, reserve_out, _ = self._resolve(self._view(), asset_in)

        denominator = reserve_in + amount_in
        if denominator == 0:
            return 0
        amount_out = (reserve_out * amount_in) // denominator
        logger.debug(f"Quote: {amount_in} {_label(asset_in)} -> {amount_out}")
        return amount_out

    def get_pair_ratio(self, asset_in, amount_in: int) -> int:
        """
        Spot-price conversion of `amount_in`: (y * Δx) / x.

        This is the marginal price, not what a swap of that size returns.
        """
        _require_amount(amount_in)
        reserve_in, reserve_out, _ = self._resolve(self._view(), asset_in)

        if reserve_in == 0:
            raise InsufficientLiquidity("Empty pool")
        return (reserve_out * amount_in) // reserve_in

    # ==========================================================================
    # SWAP
    # ==========================================================================

    def swap(self, amount_out: int, recipient: bytes, asset_in):
        """
        Release `amount_out` of the other asset to `recipient`.

        The input must already sit in the pool's custody. The new reserves are
        read back from the asset ledger and must not shrink the product of the
        reserves captured before this call.
        """
        with self._operation('swap'):
            _require_amount(amount_out, allow_zero=False)
            state = self.state
            _, reserve_out, input_is_a = self._resolve(state, asset_in)

            if amount_out >= reserve_out:
                raise InsufficientLiquidity(
                    f"Requested {amount_out} but reserve holds {reserve_out}"
                )

            old_a, old_b = state.get_reserves()
            asset_out = state.asset_b if input_is_a else state.asset_a

            self.assets.transfer(asset_out, self.address, recipient, amount_out)

            balance_in = self.assets.balance_of(asset_in, self.address)
            balance_out = self.assets.balance_of(asset_out, self.address)
            if input_is_a:
                new_a, new_b = balance_in, balance_out
            else:
                new_a, new_b = balance_out, balance_in

            state._set_reserves(new_a, new_b)

            if new_a * new_b < old_a * old_b:
                raise InvariantViolation(
                    f"Product decreased from {old_a * old_b} to {new_a * new_b}"
                )

        logger.info(
            f"Swap: {amount_out} {_label(asset_out)} -> {_label(recipient)}, "
            f"reserves ({old_a}, {old_b}) -> ({new_a}, {new_b})"
        )

    # ==========================================================================
    # LIQUIDITY
    # ==========================================================================

    def add_liquidity(self, recipient: bytes) -> int:
        """
        Mint shares for assets deposited since the last settled operation.

        First deposit: shares = floor(sqrt(a * b)).
        Later deposits: the lesser of the two per-asset ratios to supply.

        Returns:
            Number of shares minted to `recipient`
        """
        with self._operation('add_liquidity'):
            state = self._require_initialized()
            reserve_a, reserve_b = state.get_reserves()

            balance_a = self.assets.balance_of(state.asset_a, self.address)
            balance_b = self.assets.balance_of(state.asset_b, self.address)
            amount_a = balance_a - reserve_a
            amount_b = balance_b - reserve_b

            if amount_a <= 0 or amount_b <= 0:
                raise ZeroAmount(f"Nothing deposited: ({amount_a}, {amount_b})")

            total_supply = self.shares.total_supply()
            if total_supply == 0:
                # Use geometric mean for initial liquidity
                shares = math.isqrt(amount_a * amount_b)
            else:
                if reserve_a == 0 or reserve_b == 0:
                    raise InsufficientLiquidity("Shares outstanding against an empty reserve")
                shares = min(
                    (amount_a * total_supply) // reserve_a,
                    (amount_b * total_supply) // reserve_b,
                )

            if shares == 0:
                raise ZeroShares("Liquidity addition too small")

            self.shares.mint(recipient, shares)
            state._set_reserves(
                self.assets.balance_of(state.asset_a, self.address),
                self.assets.balance_of(state.asset_b, self.address),
            )

        logger.info(
            f"Liquidity added: ({amount_a}, {amount_b}) for {shares} shares "
            f"to {_label(recipient)}"
        )
        return shares

    def remove_liquidity(self, recipient: bytes) -> tuple[int, int]:
        """
        Burn the shares held in the pool's custody and pay out their portion
        of both balances.

        Returns:
            (amount_a, amount_b) sent to `recipient`
        """
        with self._operation('remove_liquidity'):
            state = self._require_initialized()

            shares = self.shares.balance_of(self.address)
            total_supply = self.shares.total_supply()
            if shares == 0 or total_supply == 0:
                raise ZeroAmount("No shares returned to the pool")

            balance_a = self.assets.balance_of(state.asset_a, self.address)
            balance_b = self.assets.balance_of(state.asset_b, self.address)
            amount_a = (shares * balance_a) // total_supply
            amount_b = (shares * balance_b) // total_supply

            if amount_a == 0 or amount_b == 0:
                raise ZeroAmount(f"Withdrawal rounds to zero: ({amount_a}, {amount_b})")

            self.shares.burn(self.address, shares)
            state._set_reserves(balance_a - amount_a, balance_b - amount_b)

            self.assets.transfer(state.asset_a, self.address, recipient, amount_a)
            self.assets.transfer(state.asset_b, self.address, recipient, amount_b)

        logger.info(
            f"Liquidity removed: {shares} shares for ({amount_a}, {amount_b}) "
            f"to {_label(recipient)}"
        )
        return amount_a, amount_b

    # ==========================================================================
    # PUBLIC API METHODS
    # ==========================================================================

    def get_pool_stats(self) -> dict:
        """Get current pool statistics."""
        state = self._view()

        return {
            'reserve_a': str(state.reserve_a),
            'reserve_b': str(state.reserve_b),
            'share_supply': str(self.shares.total_supply()),
            'k': str(state.product),
            'current_price': str(state.current_price),
        }

    def export_state(self) -> bytes:
        """Committed reserve ledger, msgpack-encoded for an external store."""
        return self._view().encode()

    def load_state(self, raw: bytes):
        """
        Restore an exported reserve ledger into a fresh pool.

        The ledgers must already hold what the checkpoint says the pool holds.
        """
        with self._operation('load_state'):
            if self.state.initialized:
                raise AlreadyInitialized("Pool already initialized")
            state = PoolState.decode(raw)
            if not state.initialized:
                raise PoolNotInitialized("Checkpoint is of an uninitialized pool")

            balances = (
                self.assets.balance_of(state.asset_a, self.address),
                self.assets.balance_of(state.asset_b, self.address),
            )
            if balances != state.get_reserves():
                raise PoolError(
                    f"Checkpoint reserves {state.get_reserves()} do not match balances {balances}"
                )
            self.state = state

        logger.info(f"Pool state loaded: {self.state!r}")


def _label(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        return value.hex()[:8]
    return str(value)
