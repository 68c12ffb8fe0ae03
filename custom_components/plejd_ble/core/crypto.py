from __future__ import annotations

import logging
from typing import Final

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .exceptions import InvalidInputError

_LOGGER = logging.getLogger(__name__)

CRYPTO_KEY_SIZE: Final = 16
CHALLENGE_SIZE: Final = 16
ADDRESS_SIZE: Final = 6
KEYSTREAM_SIZE: Final = 16


def _require_size(name: str, value: bytes, size: int) -> None:
    if len(value) != size:
        raise InvalidInputError(
            f"Invalid {name} size: expected {size} bytes, got {len(value)}"
        )


def _xor(left: bytes, right: bytes) -> bytes:
    return bytes(a ^ b for a, b in zip(left, right, strict=True))


def parse_crypto_key(value: str) -> bytes:
    """Parse the mesh crypto key from its hex representation.

    Args:
        value: The key as hex, optionally in dashed UUID-like form.

    Returns:
        The 16-byte key.
    """
    try:
        key = bytes.fromhex(value.strip().replace("-", ""))
    except ValueError as err:
        raise InvalidInputError(f"Crypto key is not valid hex: {err}") from err

    _require_size("crypto key", key, CRYPTO_KEY_SIZE)
    return key


def parse_address(value: str) -> bytes:
    """Parse a BLE address like ``AA:BB:CC:DD:EE:FF`` into 6 raw bytes."""
    try:
        address = bytes.fromhex(value.replace(":", "").replace("-", ""))
    except ValueError as err:
        raise InvalidInputError(f"Address is not valid hex: {value}") from err

    _require_size("address", address, ADDRESS_SIZE)
    return address


def reverse_address(address: bytes) -> bytes:
    """Return the address in the byte order the mesh uses as cipher nonce."""
    _require_size("address", address, ADDRESS_SIZE)
    return address[::-1]


def derive_keystream(key: bytes, address: bytes) -> bytes:
    """Derive the 16-byte keystream block for a session.

    Args:
        key: The 16-byte mesh crypto key.
        address: The reversed 6-byte peripheral address.

    Returns:
        AES-128-ECB(key, address + address + address[:4]).
    """
    _require_size("crypto key", key, CRYPTO_KEY_SIZE)
    _require_size("address", address, ADDRESS_SIZE)

    encryptor = Cipher(algorithms.AES(key), modes.ECB()).encryptor()
    return encryptor.update(address + address + address[:4]) + encryptor.finalize()


def encrypt_decrypt(key: bytes, address: bytes, data: bytes) -> bytes:
    """Encrypt or decrypt a payload with the address-keyed stream cipher.

    The operation is its own inverse: applying it twice with the same key and
    address returns the original bytes.

    Args:
        key: The 16-byte mesh crypto key.
        address: The reversed 6-byte peripheral address.
        data: Payload of any length.

    Returns:
        The payload XOR-ed with the repeating keystream.
    """
    keystream = derive_keystream(key, address)
    return bytes(
        byte ^ keystream[index % KEYSTREAM_SIZE] for index, byte in enumerate(data)
    )


def create_challenge_response(key: bytes, challenge: bytes) -> bytes:
    """Compute the answer to an authentication challenge.

    Args:
        key: The 16-byte mesh crypto key.
        challenge: The 16-byte nonce read from the auth characteristic.

    Returns:
        The two halves of SHA-256(key XOR challenge) XOR-ed together.
    """
    _require_size("crypto key", key, CRYPTO_KEY_SIZE)
    _require_size("challenge", challenge, CHALLENGE_SIZE)

    digest = hashes.Hash(hashes.SHA256())
    digest.update(_xor(key, challenge))
    intermediate = digest.finalize()

    _LOGGER.debug("Computed challenge response for challenge %s", challenge.hex())
    return _xor(intermediate[:16], intermediate[16:])


def key_fingerprint(key: bytes) -> str:
    """Return a short, non-secret identifier for a mesh key."""
    _require_size("crypto key", key, CRYPTO_KEY_SIZE)

    digest = hashes.Hash(hashes.SHA256())
    digest.update(key)
    return digest.finalize()[:8].hex()
