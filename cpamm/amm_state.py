"""
AMM (Automated Market Maker) reserve ledger.
Holds the two asset identities and the cached reserves used for pricing.
"""
from decimal import Decimal

import msgpack


class PoolState:
    """
    The pool's cached view of its own holdings.

    reserve_a and reserve_b always change together through _set_reserves();
    they are the single source of truth for every quote.
    """

    def __init__(self, data: dict = None):
        """
        Initialize reserve ledger state.

        Args:
            data: Dict with asset ids, reserves and the initialized flag
        """
        if data is None:
            data = {
                'asset_a': None,
                'asset_b': None,
                'reserve_a': 0,
                'reserve_b': 0,
                'initialized': False,
            }

        self.asset_a = data['asset_a']
        self.asset_b = data['asset_b']
        self.reserve_a = int(data['reserve_a'])
        self.reserve_b = int(data['reserve_b'])
        self.initialized = bool(data['initialized'])

        if self.reserve_a < 0 or self.reserve_b < 0:
            raise ValueError("Reserves cannot be negative")

    def to_dict(self) -> dict:
        """
        Convert to dict for storage.
        """
        return {
            'asset_a': self.asset_a,
            'asset_b': self.asset_b,
            'reserve_a': self.reserve_a,
            'reserve_b': self.reserve_b,
            'initialized': self.initialized,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PoolState':
        return cls(data)

    def encode(self) -> bytes:
        """Pack the state with msgpack. Reserves go as strings, they can exceed 64 bits."""
        data = self.to_dict()
        data['reserve_a'] = str(self.reserve_a)
        data['reserve_b'] = str(self.reserve_b)
        return msgpack.packb(data, use_bin_type=True)

    @classmethod
    def decode(cls, raw: bytes) -> 'PoolState':
        return cls(msgpack.unpackb(raw, raw=False))

    def copy(self) -> 'PoolState':
        return PoolState(self.to_dict())

    def get_reserves(self) -> tuple[int, int]:
        return self.reserve_a, self.reserve_b

    def _set_reserves(self, reserve_a: int, reserve_b: int):
        """Replace both reserves in one step. Only the pool engine calls this."""
        if not isinstance(reserve_a, int) or not isinstance(reserve_b, int):
            raise TypeError("Reserves must be integers")
        if reserve_a < 0 or reserve_b < 0:
            raise ValueError("Reserves cannot be negative")
        self.reserve_a, self.reserve_b = reserve_a, reserve_b

    @property
    def product(self) -> int:
        """Constant product k = reserve_a * reserve_b."""
        return self.reserve_a * self.reserve_b

    @property
    def current_price(self) -> Decimal:
        """
        Spot price of one unit of asset A, in units of asset B.

        Returns Decimal(0) for an empty pool.
        """
        if self.reserve_a == 0:
            return Decimal(0)
        return Decimal(self.reserve_b) / Decimal(self.reserve_a)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"PoolState("
            f"reserve_a={self.reserve_a}, "
            f"reserve_b={self.reserve_b}, "
            f"initialized={self.initialized})"
        )
