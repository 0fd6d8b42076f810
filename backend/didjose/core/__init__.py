"""Core JOSE engine."""

from didjose.core.algorithms import AlgorithmRegistry, algorithm_registry
from didjose.core.jwe import create_jwe, decrypt_jwe
from didjose.core.jwt import create_jwt, decode_jwt, verify_jwt
from didjose.core.software import SoftwareVerifier, to_ethereum_address

__all__ = [
    "AlgorithmRegistry",
    "algorithm_registry",
    "create_jwe",
    "decrypt_jwe",
    "create_jwt",
    "decode_jwt",
    "verify_jwt",
    "SoftwareVerifier",
    "to_ethereum_address",
]
