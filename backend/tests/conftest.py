"""Shared fixtures: key pairs, DID documents and a static resolver."""

import base58
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from didjose.core.ecdh import generate_x25519_keypair
from didjose.core.encoding import bytes_to_multibase
from didjose.core.software import EdDSASigner, ES256KSigner, ES256Signer

ISSUER = "did:example:alice"
OTHER = "did:example:bob"

SECP256K1_PRIVATE = bytes.fromhex("278a5de700e29faae8e40e366ec5012b5ec63d36ec77e8a2417154cc1d25383f")
P256_PRIVATE = bytes.fromhex("c9afa9d845ba75166b5c215767b1d6934e50c3db36e89b127b8a622b120f6721")
ED25519_SEED = bytes.fromhex("9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60")


def ec_public_bytes(private: bytes, curve: ec.EllipticCurve, compressed: bool = False) -> bytes:
    key = ec.derive_private_key(int.from_bytes(private, "big"), curve)
    fmt = (
        serialization.PublicFormat.CompressedPoint
        if compressed
        else serialization.PublicFormat.UncompressedPoint
    )
    return key.public_key().public_bytes(serialization.Encoding.X962, fmt)


def ed25519_public_bytes(seed: bytes) -> bytes:
    return (
        ed25519.Ed25519PrivateKey.from_private_bytes(seed)
        .public_key()
        .public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
    )


class StaticResolver:
    """Resolver returning canned results and recording requested DIDs."""

    def __init__(self, documents: dict | None = None):
        self.documents = dict(documents or {})
        self.calls: list[str] = []

    async def resolve(self, did: str):
        self.calls.append(did)
        if did not in self.documents:
            return {
                "didResolutionMetadata": {"error": "notFound", "message": f"{did} not found"},
                "didDocument": None,
                "didDocumentMetadata": {},
            }
        return {
            "didResolutionMetadata": {"contentType": "application/did+ld+json"},
            "didDocument": self.documents[did],
            "didDocumentMetadata": {},
        }


@pytest.fixture
def secp256k1_public() -> bytes:
    return ec_public_bytes(SECP256K1_PRIVATE, ec.SECP256K1())


@pytest.fixture
def p256_public() -> bytes:
    return ec_public_bytes(P256_PRIVATE, ec.SECP256R1())


@pytest.fixture
def ed25519_public() -> bytes:
    return ed25519_public_bytes(ED25519_SEED)


@pytest.fixture
def es256k_signer():
    return ES256KSigner(SECP256K1_PRIVATE)


@pytest.fixture
def es256_signer():
    return ES256Signer(P256_PRIVATE)


@pytest.fixture
def eddsa_signer():
    return EdDSASigner(ED25519_SEED)


@pytest.fixture
def x25519_alice():
    return generate_x25519_keypair()


@pytest.fixture
def x25519_bob():
    return generate_x25519_keypair()


@pytest.fixture
def issuer_doc(secp256k1_public, p256_public, ed25519_public):
    """Issuer document with one key per algorithm family."""
    return {
        "@context": "https://www.w3.org/ns/did/v1",
        "id": ISSUER,
        "verificationMethod": [
            {
                "id": f"{ISSUER}#secp256k1",
                "type": "EcdsaSecp256k1VerificationKey2019",
                "controller": ISSUER,
                "publicKeyHex": secp256k1_public.hex(),
            },
            {
                "id": f"{ISSUER}#p256",
                "type": "JsonWebKey2020",
                "controller": ISSUER,
                "publicKeyMultibase": bytes_to_multibase(
                    ec_public_bytes(P256_PRIVATE, ec.SECP256R1(), compressed=True), "p256-pub"
                ),
            },
            {
                "id": "#ed25519",
                "type": "Ed25519VerificationKey2018",
                "controller": ISSUER,
                "publicKeyBase58": base58.b58encode(ed25519_public).decode(),
            },
        ],
        "authentication": [f"{ISSUER}#secp256k1"],
        "assertionMethod": [f"{ISSUER}#secp256k1", f"{ISSUER}#p256", "#ed25519"],
    }


@pytest.fixture
def recipient_doc(x25519_bob):
    return {
        "id": OTHER,
        "verificationMethod": [],
        "keyAgreement": [
            {
                "id": "#x25519",
                "type": "X25519KeyAgreementKey2019",
                "controller": OTHER,
                "publicKeyBase58": base58.b58encode(x25519_bob.public_key).decode(),
            }
        ],
    }


@pytest.fixture
def resolver(issuer_doc, recipient_doc):
    return StaticResolver({ISSUER: issuer_doc, OTHER: recipient_doc})
