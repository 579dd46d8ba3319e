"""
Address helpers for pool accounts and asset identities.

An account address is the first 20 bytes of the SHA-256 of the account's
compressed SECP256R1 public point. The pool owner is configured as a PEM
public key and reduced to an address with public_key_to_address().
"""
import hashlib
from typing import Union

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives import serialization

ADDRESS_LENGTH = 20

# Reserved addresses
NULL_ADDRESS = b'\x00' * ADDRESS_LENGTH
POOL_ADDRESS = b'\x00' * 19 + b'\x05'


def new_signing_key() -> ec.EllipticCurvePrivateKey:
    """Fresh SECP256R1 key for an account that has none yet."""
    return ec.generate_private_key(ec.SECP256R1())


def public_key_pem(key) -> str:
    """PEM text for the public half of `key` (private or public)."""
    if isinstance(key, ec.EllipticCurvePrivateKey):
        key = key.public_key()
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('ascii')


def address_from_public_key(public_key: ec.EllipticCurvePublicKey) -> bytes:
    point = public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.CompressedPoint
    )
    return hashlib.sha256(point).digest()[:ADDRESS_LENGTH]


def public_key_to_address(pem: Union[str, bytes]) -> bytes:
    """
    Account address for a PEM encoded public key.

    Raises:
        ValueError: the PEM does not hold an elliptic-curve public key
    """
    if isinstance(pem, str):
        pem = pem.encode('ascii')
    public_key = serialization.load_pem_public_key(pem)
    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise ValueError(f"Expected an EC public key, got {type(public_key).__name__}")
    return address_from_public_key(public_key)


def generate_address() -> bytes:
    return address_from_public_key(new_signing_key().public_key())


def is_null_address(address) -> bool:
    """
    True for identities that cannot name an account or asset.

    Empty values and all-zero byte strings count as null.
    """
    if not address:
        return True
    if isinstance(address, (bytes, bytearray)):
        return not any(address)
    return False


def address_from_hex(value: str) -> bytes:
    """Parse a hex address, with or without a 0x prefix."""
    if value.startswith('0x'):
        value = value[2:]
    address = bytes.fromhex(value)
    if len(address) != ADDRESS_LENGTH:
        raise ValueError(f"Address must be {ADDRESS_LENGTH} bytes, got {len(address)}")
    return address
