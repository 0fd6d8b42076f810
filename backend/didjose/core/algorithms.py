"""Signing algorithm registry.

Maps a JWS ``alg`` identifier to an adapter that invokes a signer and
normalises its output to the JOSE signature encoding for that family.

Built-in algorithms:
- ES256 (ECDSA P-256)
- ES256K (ECDSA secp256k1)
- ES256K-R (secp256k1 with appended recovery byte, non-standard)
- Ed25519 / EdDSA (same adapter; ``Ed25519`` kept for legacy tokens)
"""

import logging
import threading
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping

from didjose.core.encoding import from_jose, to_jose
from didjose.core.errors import (
    DuplicateAlgorithm,
    InvalidAlgorithmName,
    InvalidImplementation,
    RecoveryParamMissing,
    UnexpectedSignatureShape,
    UnsupportedAlgorithm,
)
from didjose.core.signatures import SignatureKind, invoke_signer

logger = logging.getLogger(__name__)

SignerAlgorithm = Callable[[bytes, Any], Awaitable[str]]


def es256_signer_alg() -> SignerAlgorithm:
    async def sign(payload: bytes, signer: Any) -> str:
        output = await invoke_signer(signer, payload)
        if output.kind == SignatureKind.STRUCTURED:
            return to_jose(output.structured)
        return output.encoded

    return sign


def es256k_signer_alg(recoverable: bool = False) -> SignerAlgorithm:
    async def sign(payload: bytes, signer: Any) -> str:
        output = await invoke_signer(signer, payload)
        if output.kind == SignatureKind.STRUCTURED:
            return to_jose(output.structured, recoverable)
        if recoverable:
            try:
                decoded = from_jose(output.encoded)
            except ValueError as e:
                raise UnexpectedSignatureShape(f"Signer returned a malformed signature: {e}") from e
            if decoded.recovery_param is None:
                raise RecoveryParamMissing(
                    "ES256K-R not supported when signer doesn't provide a recovery param"
                )
        return output.encoded

    return sign


def ed25519_signer_alg() -> SignerAlgorithm:
    async def sign(payload: bytes, signer: Any) -> str:
        output = await invoke_signer(signer, payload)
        if output.kind == SignatureKind.ENCODED:
            return output.encoded
        raise UnexpectedSignatureShape(
            "Expected a signer function that returns a string instead of signature object"
        )

    return sign


def _builtin_algorithms() -> dict[str, SignerAlgorithm]:
    eddsa = ed25519_signer_alg()
    return {
        "ES256": es256_signer_alg(),
        "ES256K": es256k_signer_alg(),
        # Non-standard, retained for backwards compatibility
        "ES256K-R": es256k_signer_alg(True),
        # Incorrect alg name, retained for backwards compatibility
        "Ed25519": eddsa,
        "EdDSA": eddsa,
    }


class AlgorithmRegistry:
    """Append-only table of signing algorithm adapters.

    Reads go against an immutable snapshot; writers serialize on a lock and
    publish a new snapshot, so concurrent duplicate registrations still fail.
    """

    def __init__(self, algorithms: Mapping[str, SignerAlgorithm] | None = None):
        self._lock = threading.Lock()
        self._algorithms: Mapping[str, SignerAlgorithm] = MappingProxyType(
            dict(algorithms if algorithms is not None else _builtin_algorithms())
        )

    def resolve(self, alg: str) -> SignerAlgorithm:
        impl = self._algorithms.get(alg)
        if impl is None:
            raise UnsupportedAlgorithm(f"Unsupported algorithm {alg}", alg=alg)
        return impl

    def register(self, alg: str, impl: SignerAlgorithm) -> None:
        """Add a new signing algorithm.

        Raises:
            InvalidAlgorithmName: if ``alg`` is empty or not a string.
            InvalidImplementation: if ``impl`` is not callable.
            DuplicateAlgorithm: if ``alg`` is already registered.
        """
        if not alg or not isinstance(alg, str):
            raise InvalidAlgorithmName("Invalid algorithm name: must be a non-empty string")
        if not callable(impl):
            raise InvalidImplementation("Invalid implementation: must be a function")

        with self._lock:
            if alg in self._algorithms:
                raise DuplicateAlgorithm(f"Algorithm '{alg}' already exists", alg=alg)
            updated = dict(self._algorithms)
            updated[alg] = impl
            self._algorithms = MappingProxyType(updated)
        logger.debug("Registered signing algorithm %s", alg)

    def algorithms(self) -> list[str]:
        return sorted(self._algorithms)

    def __contains__(self, alg: object) -> bool:
        return alg in self._algorithms


def new_registry() -> AlgorithmRegistry:
    """Fresh registry pre-populated with the built-in algorithms."""
    return AlgorithmRegistry()


def add_signing_algorithm(alg: str, impl: SignerAlgorithm) -> None:
    """Register an algorithm on the process-wide registry."""
    algorithm_registry.register(alg, impl)


# Singleton instance
algorithm_registry = AlgorithmRegistry()
