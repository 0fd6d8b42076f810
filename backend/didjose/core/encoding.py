"""Encoding primitives shared by the JWS and JWE paths.

Covers base64url (RFC 7515 §2, unpadded), the JSON header/payload sections,
the JOSE ``r||s`` encoding of ECDSA signatures, and decoding of public key
material out of DID verification methods.
"""

import base64
import binascii
import json
import re
from typing import Any

import base58

from didjose.core.errors import RecoveryParamMissing
from didjose.core.signatures import EcdsaSignature
from didjose.schemas.did import VerificationMethod

_B64URL_RE = re.compile(r"^[A-Za-z0-9_-]*$")

# Multicodec varint prefixes for public keys
MULTICODEC_PREFIXES = {
    "ed25519-pub": b"\xed\x01",
    "x25519-pub": b"\xec\x01",
    "secp256k1-pub": b"\xe7\x01",
    "p256-pub": b"\x80\x24",
}


def b64url_encode(data: bytes) -> str:
    """Base64url encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(data: str) -> bytes:
    """Strict base64url decode.

    Raises:
        ValueError: on characters outside the url-safe alphabet, impossible
            lengths, or non-canonical trailing bits.
    """
    if not isinstance(data, str) or not _B64URL_RE.match(data) or len(data) % 4 == 1:
        raise ValueError("Invalid base64url")
    try:
        decoded = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except binascii.Error as e:
        raise ValueError(f"Invalid base64url: {e}") from e
    # Reject encodings whose unused trailing bits are set
    if b64url_encode(decoded) != data:
        raise ValueError("Non-canonical base64url")
    return decoded


def encode_section(data: dict[str, Any], canonicalize: bool = False) -> str:
    """JSON-serialize a header or payload and base64url encode it."""
    serialized = json.dumps(
        data,
        separators=(",", ":"),
        sort_keys=canonicalize,
        ensure_ascii=False,
    )
    return b64url_encode(serialized.encode("utf-8"))


def decode_section(data: str) -> dict[str, Any]:
    """Decode a base64url JSON object section."""
    try:
        decoded = json.loads(b64url_decode(data).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Invalid JSON section: {e}") from e
    if not isinstance(decoded, dict):
        raise ValueError("Section is not a JSON object")
    return decoded


def to_jose(signature: EcdsaSignature, recoverable: bool = False) -> str:
    """Encode an ECDSA signature as JOSE ``r||s`` (plus recovery byte)."""
    raw = _left_pad(signature.r, 32) + _left_pad(signature.s, 32)
    if recoverable:
        if signature.recovery_param is None:
            raise RecoveryParamMissing("Signer did not return a recoveryParam")
        raw += bytes([signature.recovery_param])
    return b64url_encode(raw)


def from_jose(signature: str) -> EcdsaSignature:
    """Decode a JOSE ECDSA signature into its components."""
    raw = b64url_decode(signature)
    if len(raw) not in (64, 65):
        raise ValueError(f"Wrong signature length: {len(raw)}")
    return EcdsaSignature(
        r=raw[:32],
        s=raw[32:64],
        recovery_param=raw[64] if len(raw) == 65 else None,
    )


def _left_pad(value: bytes, size: int) -> bytes:
    if len(value) > size:
        raise ValueError(f"Signature component longer than {size} bytes")
    return value.rjust(size, b"\x00")


def multibase_to_bytes(value: str) -> bytes:
    """Decode a base58btc multibase string, stripping a known multicodec prefix."""
    if not value.startswith("z"):
        raise ValueError("Only base58btc multibase ('z') is supported")
    decoded = base58.b58decode(value[1:])
    for prefix in MULTICODEC_PREFIXES.values():
        if decoded.startswith(prefix):
            return decoded[len(prefix):]
    return decoded


def multibase_codec(value: str) -> str | None:
    """Name of the multicodec prefix on a base58btc multibase value, if known."""
    if not value.startswith("z"):
        return None
    decoded = base58.b58decode(value[1:])
    for name, prefix in MULTICODEC_PREFIXES.items():
        if decoded.startswith(prefix):
            return name
    return None


def bytes_to_multibase(data: bytes, codec: str | None = None) -> str:
    prefix = MULTICODEC_PREFIXES[codec] if codec else b""
    return "z" + base58.b58encode(prefix + data).decode("ascii")


def extract_public_key_bytes(method: VerificationMethod) -> bytes:
    """Raw public key bytes from a verification method.

    EC keys come back as SEC1 points (compressed or uncompressed, whichever
    the document holds); OKP keys as their 32 raw bytes.

    Raises:
        ValueError: if the method carries no decodable key.
    """
    if method.public_key_base58:
        return base58.b58decode(method.public_key_base58)
    if method.public_key_base64:
        data = method.public_key_base64
        return base64.b64decode(data + "=" * (-len(data) % 4))
    if method.public_key_hex:
        return bytes.fromhex(method.public_key_hex)
    if method.public_key_multibase:
        return multibase_to_bytes(method.public_key_multibase)
    if method.public_key_jwk:
        jwk = method.public_key_jwk
        kty = jwk.get("kty")
        if kty == "OKP" and jwk.get("x"):
            return b64url_decode(jwk["x"])
        if kty == "EC" and jwk.get("x") and jwk.get("y"):
            return b"\x04" + b64url_decode(jwk["x"]) + b64url_decode(jwk["y"])
        raise ValueError(f"Unsupported JWK: kty={kty}")
    raise ValueError(f"No public key material in {method.id}")
