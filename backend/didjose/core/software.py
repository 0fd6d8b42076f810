"""Software signing and verification backends.

Keys are supplied by the caller as raw bytes (or ``cryptography`` key
objects) and held only for the lifetime of the signer instance.
"""

import hashlib
import logging

from cryptography.exceptions import InvalidSignature as CryptoInvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)
from Crypto.Hash import keccak
from ecdsa import SECP256k1, VerifyingKey
from ecdsa.util import sigdecode_string

from didjose.core.encoding import b64url_decode, b64url_encode, extract_public_key_bytes
from didjose.core.errors import InvalidSignature, UnsupportedAlgorithm
from didjose.core.signatures import AbstractSigner, AbstractVerifier, EcdsaSignature
from didjose.schemas.did import VerificationMethod

logger = logging.getLogger(__name__)

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

_SECP256K1_TYPES = {
    "EcdsaSecp256k1VerificationKey2019",
    # Deprecated, kept for older documents
    "EcdsaSecp256k1RecoveryMethod2020",
    "Secp256k1VerificationKey2018",
    "Secp256k1SignatureVerificationKey2018",
    "EcdsaPublicKeySecp256k1",
    "JsonWebKey2020",
    "Multikey",
}

_ED25519_TYPES = {
    "ED25519SignatureVerification",
    "Ed25519VerificationKey2018",
    "Ed25519VerificationKey2020",
    "JsonWebKey2020",
    "Multikey",
}

SUPPORTED_PUBLIC_KEY_TYPES: dict[str, frozenset[str]] = {
    "ES256": frozenset({"JsonWebKey2020", "Multikey", "EcdsaSecp256r1VerificationKey2019"}),
    "ES256K": frozenset(_SECP256K1_TYPES),
    "ES256K-R": frozenset(_SECP256K1_TYPES | {"ConditionalProof2022"}),
    "Ed25519": frozenset(_ED25519_TYPES),
    "EdDSA": frozenset(_ED25519_TYPES),
}


def _ec_private_key(key: bytes | ec.EllipticCurvePrivateKey, curve: ec.EllipticCurve):
    if isinstance(key, ec.EllipticCurvePrivateKey):
        if key.curve.name != curve.name:
            raise ValueError(f"Expected a {curve.name} key, got {key.curve.name}")
        return key
    if len(key) != 32:
        raise ValueError("EC private key must be 32 bytes")
    return ec.derive_private_key(int.from_bytes(key, "big"), curve)


def _uncompressed(public_key: ec.EllipticCurvePublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )


def to_ethereum_address(public_key: bytes) -> str:
    """Ethereum address (``0x`` + lowercase hex) for a secp256k1 public key.

    Accepts compressed or uncompressed SEC1 bytes.
    """
    point = _uncompressed(ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), public_key))
    digest = keccak.new(digest_bits=256, data=point[1:]).digest()
    return "0x" + digest[-20:].hex()


def _account_address(account_id: str) -> str:
    # CAIP-10 "eip155:1:0xabc" or the legacy "0xabc@eip155:1"
    if "@" in account_id:
        return account_id.split("@", 1)[0].lower()
    return account_id.rsplit(":", 1)[-1].lower()


class ES256Signer(AbstractSigner):
    """ECDSA P-256 signer returning ``r``/``s`` components."""

    def __init__(self, private_key: bytes | ec.EllipticCurvePrivateKey):
        self._key = _ec_private_key(private_key, ec.SECP256R1())

    async def sign(self, data: bytes) -> EcdsaSignature:
        r, s = decode_dss_signature(self._key.sign(data, ec.ECDSA(hashes.SHA256())))
        return EcdsaSignature(r=r.to_bytes(32, "big"), s=s.to_bytes(32, "big"))


class ES256KSigner(AbstractSigner):
    """ECDSA secp256k1 signer.

    Signatures are normalised to low-S and carry the recovery parameter so
    the same signer serves both ``ES256K`` and ``ES256K-R``.
    """

    def __init__(self, private_key: bytes | ec.EllipticCurvePrivateKey):
        self._key = _ec_private_key(private_key, ec.SECP256K1())
        self._public = _uncompressed(self._key.public_key())

    async def sign(self, data: bytes) -> EcdsaSignature:
        r, s = decode_dss_signature(self._key.sign(data, ec.ECDSA(hashes.SHA256())))
        if s > SECP256K1_ORDER // 2:
            s = SECP256K1_ORDER - s
        raw = r.to_bytes(32, "big") + s.to_bytes(32, "big")
        return EcdsaSignature(
            r=raw[:32],
            s=raw[32:],
            recovery_param=self._recovery_param(raw, data),
        )

    def _recovery_param(self, raw: bytes, data: bytes) -> int | None:
        candidates = VerifyingKey.from_public_key_recovery_with_digest(
            raw,
            hashlib.sha256(data).digest(),
            curve=SECP256k1,
            hashfunc=hashlib.sha256,
            sigdecode=sigdecode_string,
        )
        for index, candidate in enumerate(candidates):
            if candidate.to_string("uncompressed") == self._public:
                return index
        return None


class EdDSASigner(AbstractSigner):
    """Ed25519 signer returning the base64url-encoded signature."""

    def __init__(self, private_key: bytes | ed25519.Ed25519PrivateKey):
        if isinstance(private_key, ed25519.Ed25519PrivateKey):
            self._key = private_key
        else:
            # NaCl-style 64-byte secret keys are seed || public key
            if len(private_key) not in (32, 64):
                raise ValueError("Ed25519 private key must be 32 or 64 bytes")
            self._key = ed25519.Ed25519PrivateKey.from_private_bytes(private_key[:32])

    async def sign(self, data: bytes) -> str:
        return b64url_encode(self._key.sign(data))


class SoftwareVerifier(AbstractVerifier):
    """Verifies ES256, ES256K, ES256K-R and EdDSA signatures in-process."""

    def get_supported_verification_methods(self, alg: str) -> set[str]:
        types = SUPPORTED_PUBLIC_KEY_TYPES.get(alg)
        if types is None:
            raise UnsupportedAlgorithm(f"Unsupported algorithm {alg}", alg=alg)
        return set(types)

    async def verify(
        self,
        alg: str,
        signing_input: bytes,
        signature: str,
        candidates: list[VerificationMethod],
    ) -> VerificationMethod:
        if alg in ("ES256", "ES256K"):
            check = self._ecdsa_check(
                ec.SECP256R1() if alg == "ES256" else ec.SECP256K1(), signing_input, signature
            )
        elif alg == "ES256K-R":
            check = self._recoverable_check(signing_input, signature)
        elif alg in ("Ed25519", "EdDSA"):
            check = self._ed25519_check(signing_input, signature)
        else:
            raise UnsupportedAlgorithm(f"Unsupported algorithm {alg}", alg=alg)

        if check is not None:
            for method in candidates:
                if check(method):
                    return method
        raise InvalidSignature("Signature invalid for JWT")

    @staticmethod
    def _key_bytes(method: VerificationMethod) -> bytes | None:
        try:
            return extract_public_key_bytes(method)
        except ValueError:
            logger.debug("Skipping %s: no decodable key material", method.id)
            return None

    @staticmethod
    def _raw_signature(signature: str, lengths: tuple[int, ...]) -> bytes | None:
        try:
            raw = b64url_decode(signature)
        except ValueError:
            return None
        return raw if len(raw) in lengths else None

    def _ecdsa_check(self, curve: ec.EllipticCurve, data: bytes, signature: str):
        raw = self._raw_signature(signature, (64,))
        if raw is None:
            return None
        der = encode_dss_signature(
            int.from_bytes(raw[:32], "big"), int.from_bytes(raw[32:], "big")
        )

        def check(method: VerificationMethod) -> bool:
            key_bytes = self._key_bytes(method)
            if key_bytes is None:
                return False
            try:
                public_key = ec.EllipticCurvePublicKey.from_encoded_point(curve, key_bytes)
                public_key.verify(der, data, ec.ECDSA(hashes.SHA256()))
                return True
            except (ValueError, CryptoInvalidSignature):
                return False

        return check

    def _recoverable_check(self, data: bytes, signature: str):
        raw = self._raw_signature(signature, (64, 65))
        if raw is None:
            return None
        if len(raw) == 64:
            return self._ecdsa_check(ec.SECP256K1(), data, signature)

        recovery_param = raw[64] - 27 if raw[64] >= 27 else raw[64]
        try:
            recovered = VerifyingKey.from_public_key_recovery_with_digest(
                raw[:64],
                hashlib.sha256(data).digest(),
                curve=SECP256k1,
                hashfunc=hashlib.sha256,
                sigdecode=sigdecode_string,
            )
        except Exception:
            # python-ecdsa raises several unrelated types for unrecoverable input
            return None
        if recovery_param not in (0, 1) or recovery_param >= len(recovered):
            return None
        expected = recovered[recovery_param].to_string("uncompressed")
        address = to_ethereum_address(expected)

        def check(method: VerificationMethod) -> bool:
            if method.blockchain_account_id is not None:
                return _account_address(method.blockchain_account_id) == address
            key_bytes = self._key_bytes(method)
            if key_bytes is None:
                return False
            try:
                public_key = ec.EllipticCurvePublicKey.from_encoded_point(
                    ec.SECP256K1(), key_bytes
                )
            except ValueError:
                return False
            return _uncompressed(public_key) == expected

        return check

    def _ed25519_check(self, data: bytes, signature: str):
        raw = self._raw_signature(signature, (64,))
        if raw is None:
            return None

        def check(method: VerificationMethod) -> bool:
            key_bytes = self._key_bytes(method)
            if key_bytes is None:
                return False
            try:
                ed25519.Ed25519PublicKey.from_public_bytes(key_bytes).verify(raw, data)
                return True
            except (ValueError, CryptoInvalidSignature):
                return False

        return check
