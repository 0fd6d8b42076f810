"""X25519 key agreement for ECDH-ES and ECDH-1PU.

ECDH-ES: ``Z = Ze`` where ``Ze`` is ephemeral-static.
ECDH-1PU: ``Z = Ze || Zs`` where ``Zs`` is the static-static agreement
between sender and recipient, so only the holder of the sender's static
key can produce a key the recipient will accept.
"""

from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import x25519

from didjose.core.errors import InvalidKeyFormat, MissingSenderKey

KEY_SIZE = 32


@dataclass
class X25519KeyPair:
    public_key: bytes
    secret_key: bytes


@dataclass
class SenderAgreement:
    """Sender side of an agreement: the secret plus the ephemeral public key to publish."""

    shared_secret: bytes
    ephemeral_public_key: bytes


def _raw_public(key: x25519.X25519PublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def generate_x25519_keypair() -> X25519KeyPair:
    private_key = x25519.X25519PrivateKey.generate()
    return X25519KeyPair(
        public_key=_raw_public(private_key.public_key()),
        secret_key=private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        ),
    )


def x25519_public_key(secret_key: bytes) -> bytes:
    try:
        private_key = x25519.X25519PrivateKey.from_private_bytes(secret_key)
    except (ValueError, TypeError) as e:
        raise InvalidKeyFormat(f"Invalid X25519 private key: {e}") from e
    return _raw_public(private_key.public_key())


def derive_shared_secret(local_private: bytes, remote_public: bytes) -> bytes:
    """X25519 scalar multiplication.

    Raises:
        InvalidKeyFormat: if either key has the wrong length or the remote
            point is of low order (all-zero output).
    """
    if len(local_private) != KEY_SIZE or len(remote_public) != KEY_SIZE:
        raise InvalidKeyFormat(f"X25519 keys must be {KEY_SIZE} bytes")
    try:
        private_key = x25519.X25519PrivateKey.from_private_bytes(local_private)
        public_key = x25519.X25519PublicKey.from_public_bytes(remote_public)
        return private_key.exchange(public_key)
    except (ValueError, TypeError) as e:
        raise InvalidKeyFormat(f"Invalid X25519 key material: {e}") from e


def ecdh_es_sender(recipient_public: bytes) -> SenderAgreement:
    ephemeral = generate_x25519_keypair()
    return SenderAgreement(
        shared_secret=derive_shared_secret(ephemeral.secret_key, recipient_public),
        ephemeral_public_key=ephemeral.public_key,
    )


def ecdh_es_recipient(recipient_secret: bytes, ephemeral_public: bytes) -> bytes:
    return derive_shared_secret(recipient_secret, ephemeral_public)


def ecdh_1pu_sender(recipient_public: bytes, sender_secret: bytes | None) -> SenderAgreement:
    if not sender_secret:
        raise MissingSenderKey("ECDH-1PU requires the sender's static private key")
    ephemeral = generate_x25519_keypair()
    ze = derive_shared_secret(ephemeral.secret_key, recipient_public)
    zs = derive_shared_secret(sender_secret, recipient_public)
    return SenderAgreement(shared_secret=ze + zs, ephemeral_public_key=ephemeral.public_key)


def ecdh_1pu_recipient(
    recipient_secret: bytes,
    ephemeral_public: bytes,
    sender_public: bytes | None,
) -> bytes:
    if not sender_public:
        raise MissingSenderKey("ECDH-1PU requires the sender's static public key")
    ze = derive_shared_secret(recipient_secret, ephemeral_public)
    zs = derive_shared_secret(recipient_secret, sender_public)
    return ze + zs
