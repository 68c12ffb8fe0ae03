"""Unit tests for the Plejd BLE crypto module."""

import hashlib

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from custom_components.plejd_ble.core import crypto
from custom_components.plejd_ble.core.exceptions import InvalidInputError

KEY = bytes.fromhex("000102030405060708090a0b0c0d0e0f")
ADDRESS = bytes.fromhex("0123456789ab")


def test_keystream_is_aes_of_repeated_address():
    """Test the keystream block layout."""
    encryptor = Cipher(algorithms.AES(KEY), modes.ECB()).encryptor()
    expected = encryptor.update(ADDRESS + ADDRESS + ADDRESS[:4]) + encryptor.finalize()

    assert crypto.derive_keystream(KEY, ADDRESS) == expected


def test_encrypt_decrypt_repeats_keystream():
    """Payloads longer than one block wrap around the keystream."""
    keystream = crypto.derive_keystream(KEY, ADDRESS)

    assert crypto.encrypt_decrypt(KEY, ADDRESS, bytes(20)) == keystream + keystream[:4]
    assert crypto.encrypt_decrypt(KEY, ADDRESS, b"") == b""


def test_encrypt_decrypt_is_involution():
    """Encrypting twice returns the plaintext."""
    plaintext = bytes.fromhex("0b0110009801ffff") * 5

    ciphertext = crypto.encrypt_decrypt(KEY, ADDRESS, plaintext)
    assert ciphertext != plaintext
    assert crypto.encrypt_decrypt(KEY, ADDRESS, ciphertext) == plaintext

    # Another address gives another keystream
    other = crypto.encrypt_decrypt(KEY, bytes.fromhex("0123456789ac"), plaintext)
    assert other != ciphertext


def test_challenge_response():
    """Test the challenge response against a direct computation."""
    challenge = bytes(range(0xF0, 0x100))

    digest = hashlib.sha256(bytes(k ^ c for k, c in zip(KEY, challenge))).digest()
    expected = bytes(a ^ b for a, b in zip(digest[:16], digest[16:]))

    response = crypto.create_challenge_response(KEY, challenge)
    assert len(response) == 16
    assert response == expected
    assert crypto.create_challenge_response(KEY, challenge) == response


def test_known_answer_vectors():
    """Test fixed vectors computed outside of this package."""
    assert crypto.derive_keystream(KEY, ADDRESS) == bytes.fromhex(
        "5cb6f3ad8706c5ea8cc51f594e9c12d5"
    )

    # KEY xor challenge is sixteen 0xf0 bytes
    challenge = bytes(range(0xF0, 0x100))
    assert crypto.create_challenge_response(KEY, challenge) == bytes.fromhex(
        "87fb87c77cabc51abd208faf304607ee"
    )


@pytest.mark.parametrize(
    ("key", "address", "challenge"),
    [
        (KEY[:15], ADDRESS, bytes(16)),
        (KEY, ADDRESS[:5], bytes(16)),
        (KEY, ADDRESS, bytes(17)),
    ],
)
def test_wrong_sizes_fail_fast(key, address, challenge):
    """Malformed inputs are never truncated or padded."""
    with pytest.raises(InvalidInputError):
        crypto.encrypt_decrypt(key, address, b"data")
        crypto.create_challenge_response(key, challenge)


def test_challenge_of_wrong_size():
    with pytest.raises(InvalidInputError):
        crypto.create_challenge_response(KEY, bytes(15))


def test_parse_crypto_key():
    """Test parsing the key in the dashed form handed out by the cloud API."""
    key = crypto.parse_crypto_key("00010203-0405-0607-0809-0A0B0C0D0E0F")
    assert key == KEY

    with pytest.raises(InvalidInputError):
        crypto.parse_crypto_key("0001")
    with pytest.raises(ValueError):
        crypto.parse_crypto_key("not a key")


def test_parse_and_reverse_address():
    address = crypto.parse_address("01:23:45:67:89:AB")

    assert address == ADDRESS
    assert crypto.reverse_address(address) == bytes.fromhex("ab8967452301")
    with pytest.raises(InvalidInputError):
        crypto.parse_address("01:23:45")


def test_key_fingerprint():
    fingerprint = crypto.key_fingerprint(KEY)

    assert len(fingerprint) == 16
    assert KEY.hex() not in fingerprint
    assert crypto.key_fingerprint(KEY) == fingerprint
