"""Create and verify DID-issued JWTs and encrypt JWEs to DID key agreement keys."""

from didjose.core.algorithms import (
    AlgorithmRegistry,
    add_signing_algorithm,
    algorithm_registry,
    new_registry,
)
from didjose.core.errors import ErrorKind, JOSEError
from didjose.core.jwe import (
    JWE,
    DirectDecrypter,
    DirectEncrypter,
    X25519AuthDecrypter,
    X25519AuthEncrypter,
    X25519Decrypter,
    X25519Encrypter,
    create_jwe,
    decrypt_jwe,
    resolve_x25519_encrypters,
)
from didjose.core.jwt import (
    GeneralJWS,
    JWTOptions,
    JWTVerifyOptions,
    create_jws,
    create_jwt,
    create_multisignature_jwt,
    decode_jwt,
    verify_jws,
    verify_jwt,
    verify_multisignature_jwt,
)
from didjose.core.signatures import AbstractSigner, AbstractVerifier, EcdsaSignature
from didjose.core.software import ES256KSigner, ES256Signer, EdDSASigner, SoftwareVerifier

__version__ = "0.1.0"

__all__ = [
    "AlgorithmRegistry",
    "add_signing_algorithm",
    "algorithm_registry",
    "new_registry",
    "ErrorKind",
    "JOSEError",
    "JWE",
    "DirectDecrypter",
    "DirectEncrypter",
    "X25519AuthDecrypter",
    "X25519AuthEncrypter",
    "X25519Decrypter",
    "X25519Encrypter",
    "create_jwe",
    "decrypt_jwe",
    "resolve_x25519_encrypters",
    "GeneralJWS",
    "JWTOptions",
    "JWTVerifyOptions",
    "create_jws",
    "create_jwt",
    "create_multisignature_jwt",
    "decode_jwt",
    "verify_jws",
    "verify_jwt",
    "verify_multisignature_jwt",
    "AbstractSigner",
    "AbstractVerifier",
    "EcdsaSignature",
    "ES256KSigner",
    "ES256Signer",
    "EdDSASigner",
    "SoftwareVerifier",
]
