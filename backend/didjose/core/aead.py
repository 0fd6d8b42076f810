"""XChaCha20-Poly1305 content encryption (JWE ``enc`` = ``XC20P``)."""

import os
from dataclasses import dataclass

from nacl import bindings
from nacl.exceptions import CryptoError

from didjose.core.errors import DecryptionFailed

XC20P = "XC20P"
KEY_SIZE = bindings.crypto_aead_xchacha20poly1305_ietf_KEYBYTES  # 32
NONCE_SIZE = bindings.crypto_aead_xchacha20poly1305_ietf_NPUBBYTES  # 24
TAG_SIZE = bindings.crypto_aead_xchacha20poly1305_ietf_ABYTES  # 16


@dataclass
class AeadResult:
    """Result of content encryption."""

    ciphertext: bytes
    tag: bytes
    iv: bytes


def xc20p_encrypt(
    key: bytes,
    plaintext: bytes,
    aad: bytes | None = None,
    iv: bytes | None = None,
) -> AeadResult:
    """Encrypt with a fresh 24-byte nonce unless one is supplied."""
    if len(key) != KEY_SIZE:
        raise ValueError(f"XC20P requires a {KEY_SIZE}-byte key")
    iv = iv if iv is not None else os.urandom(NONCE_SIZE)
    sealed = bindings.crypto_aead_xchacha20poly1305_ietf_encrypt(plaintext, aad, iv, key)
    # Split ciphertext and tag (tag is last 16 bytes)
    return AeadResult(ciphertext=sealed[:-TAG_SIZE], tag=sealed[-TAG_SIZE:], iv=iv)


def xc20p_decrypt(
    key: bytes,
    ciphertext: bytes,
    tag: bytes,
    iv: bytes,
    aad: bytes | None = None,
) -> bytes:
    """Authenticate and decrypt; nothing is returned unless the tag verifies.

    Raises:
        DecryptionFailed: on any authentication failure or bad parameter.
    """
    if len(key) != KEY_SIZE or len(iv) != NONCE_SIZE or len(tag) != TAG_SIZE:
        raise DecryptionFailed("Failed to decrypt")
    try:
        return bindings.crypto_aead_xchacha20poly1305_ietf_decrypt(ciphertext + tag, aad, iv, key)
    except CryptoError:
        raise DecryptionFailed("Failed to decrypt") from None
