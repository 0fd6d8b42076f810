"""Concat KDF and key wrapping.

Concat KDF per NIST SP 800-56A §5.8.1 as profiled by RFC 7518 §4.6.2:

    OtherInfo = AlgorithmID || PartyUInfo || PartyVInfo || SuppPubInfo

where each of the first three is a 32-bit big-endian length followed by
the data, and SuppPubInfo is the key length in bits (32-bit big-endian).

Key wrap (``*+XC20PKW``) seals the content encryption key with
XChaCha20-Poly1305 under the KDF output; ``iv`` and ``tag`` travel in the
recipient header.
"""

import struct
from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.concatkdf import ConcatKDFHash

from didjose.core.aead import xc20p_decrypt, xc20p_encrypt
from didjose.core.errors import DecryptionFailed, KeyWrapFailed


def _length_prefixed(data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + data


def concat_kdf(
    secret: bytes,
    key_len_bits: int,
    algorithm_id: str,
    party_u_info: bytes = b"",
    party_v_info: bytes = b"",
) -> bytes:
    """Derive ``key_len_bits`` of key material from a shared secret."""
    if key_len_bits <= 0 or key_len_bits % 8:
        raise ValueError("Key length must be a positive multiple of 8 bits")
    other_info = (
        _length_prefixed(algorithm_id.encode("ascii"))
        + _length_prefixed(party_u_info)
        + _length_prefixed(party_v_info)
        + struct.pack(">I", key_len_bits)
    )
    ckdf = ConcatKDFHash(
        algorithm=hashes.SHA256(),
        length=key_len_bits // 8,
        otherinfo=other_info,
    )
    return ckdf.derive(secret)


@dataclass
class WrappedKey:
    encrypted_key: bytes
    iv: bytes
    tag: bytes


def wrap_cek(kek: bytes, cek: bytes) -> WrappedKey:
    sealed = xc20p_encrypt(kek, cek)
    return WrappedKey(encrypted_key=sealed.ciphertext, iv=sealed.iv, tag=sealed.tag)


def unwrap_cek(kek: bytes, wrapped: WrappedKey) -> bytes:
    """Recover the content encryption key.

    Raises:
        KeyWrapFailed: if the wrapped key does not authenticate.
    """
    try:
        return xc20p_decrypt(kek, wrapped.encrypted_key, wrapped.tag, wrapped.iv)
    except DecryptionFailed:
        raise KeyWrapFailed("Failed to unwrap content encryption key") from None
