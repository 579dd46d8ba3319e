"""
Test the reserve ledger state.
"""
import unittest
from decimal import Decimal
from cpamm.amm_state import PoolState
from cpamm.crypto import generate_address


class TestPoolState(unittest.TestCase):

    def test_defaults(self):
        state = PoolState()
        self.assertFalse(state.initialized)
        self.assertIsNone(state.asset_a)
        self.assertEqual(state.get_reserves(), (0, 0))
        self.assertEqual(state.product, 0)
        self.assertEqual(state.current_price, Decimal(0))

    def test_set_reserves_updates_both(self):
        state = PoolState()
        state._set_reserves(1000, 4000)
        self.assertEqual(state.get_reserves(), (1000, 4000))
        self.assertEqual(state.product, 4_000_000)
        self.assertEqual(state.current_price, Decimal(4))

    def test_set_reserves_rejects_bad_values(self):
        state = PoolState()
        state._set_reserves(5, 6)
        with self.assertRaises(ValueError):
            state._set_reserves(-1, 10)
        with self.assertRaises(TypeError):
            state._set_reserves(1.5, 10)
        self.assertEqual(state.get_reserves(), (5, 6))

    def test_negative_reserves_in_data(self):
        with self.assertRaises(ValueError):
            PoolState({'asset_a': None, 'asset_b': None,
                       'reserve_a': -1, 'reserve_b': 0, 'initialized': False})

    def test_encode_decode(self):
        state = PoolState({
            'asset_a': generate_address(),
            'asset_b': generate_address(),
            'reserve_a': 10**30,
            'reserve_b': 7,
            'initialized': True,
        })
        decoded = PoolState.decode(state.encode())
        self.assertEqual(decoded.to_dict(), state.to_dict())

    def test_copy_is_independent(self):
        state = PoolState()
        state._set_reserves(1, 2)
        copy = state.copy()
        state._set_reserves(3, 4)
        self.assertEqual(copy.get_reserves(), (1, 2))

    def test_repr(self):
        state = PoolState()
        state._set_reserves(1, 2)
        self.assertIn("reserve_a=1", repr(state))


if __name__ == '__main__':
    unittest.main()
