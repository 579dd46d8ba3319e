"""
Test account address derivation and address parsing.
"""
import unittest
from cryptography.hazmat.primitives.asymmetric import ed25519
from cpamm.crypto import (
    ADDRESS_LENGTH,
    NULL_ADDRESS,
    address_from_hex,
    address_from_public_key,
    generate_address,
    is_null_address,
    new_signing_key,
    public_key_pem,
    public_key_to_address,
)


class TestAddresses(unittest.TestCase):
    def test_pem_and_key_give_same_address(self):
        key = new_signing_key()
        address = public_key_to_address(public_key_pem(key))

        self.assertEqual(len(address), ADDRESS_LENGTH)
        self.assertEqual(address, address_from_public_key(key.public_key()))
        self.assertEqual(address, public_key_to_address(public_key_pem(key.public_key()).encode()))

    def test_distinct_keys_distinct_addresses(self):
        self.assertNotEqual(generate_address(), generate_address())

    def test_non_ec_key_rejected(self):
        pem = public_key_pem(ed25519.Ed25519PrivateKey.generate().public_key())
        with self.assertRaises(ValueError):
            public_key_to_address(pem)

    def test_null_addresses(self):
        for value in (None, b'', '', NULL_ADDRESS):
            self.assertTrue(is_null_address(value))
        self.assertFalse(is_null_address(generate_address()))
        self.assertFalse(is_null_address("usd"))

    def test_address_from_hex(self):
        address = generate_address()
        self.assertEqual(address_from_hex(address.hex()), address)
        self.assertEqual(address_from_hex('0x' + address.hex()), address)
        with self.assertRaises(ValueError):
            address_from_hex("abcd")


if __name__ == '__main__':
    unittest.main()
