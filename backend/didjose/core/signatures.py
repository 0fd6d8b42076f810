"""Signer and verifier capability model.

A signer produces either a structured ECDSA signature or an already-encoded
base64url string; the algorithm adapters normalise both through
``SignatureOutput``. A verifier declares which verification-method types it
can use per algorithm and picks the matching candidate.
"""

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from didjose.core.errors import UnexpectedSignatureShape
from didjose.schemas.did import VerificationMethod


@dataclass(frozen=True)
class EcdsaSignature:
    """ECDSA signature components before JOSE encoding."""

    r: bytes
    s: bytes
    recovery_param: int | None = None


class SignatureKind(str, Enum):
    STRUCTURED = "structured"
    ENCODED = "encoded"


@dataclass(frozen=True)
class SignatureOutput:
    """Tagged signer result: exactly one of ``structured`` / ``encoded`` is set."""

    kind: SignatureKind
    structured: EcdsaSignature | None = None
    encoded: str | None = None

    @classmethod
    def from_result(cls, result: Any) -> "SignatureOutput":
        if isinstance(result, cls):
            return result
        if isinstance(result, EcdsaSignature):
            return cls(kind=SignatureKind.STRUCTURED, structured=result)
        if isinstance(result, str):
            return cls(kind=SignatureKind.ENCODED, encoded=result)
        raise UnexpectedSignatureShape(
            f"Signer returned {type(result).__name__}; expected EcdsaSignature or str"
        )


SignerResult = Union[EcdsaSignature, str]


class AbstractSigner(ABC):
    """Produces a raw signature for a signing input.

    Implementations may await network or hardware I/O.
    """

    @abstractmethod
    async def sign(self, data: bytes) -> SignerResult:
        ...


async def invoke_signer(signer: Any, data: bytes) -> SignatureOutput:
    """Call a signer object or function and normalise its result."""
    if hasattr(signer, "sign"):
        result = signer.sign(data)
    elif callable(signer):
        result = signer(data)
    else:
        raise TypeError(f"Not a signer: {type(signer).__name__}")
    if inspect.isawaitable(result):
        result = await result
    return SignatureOutput.from_result(result)


class AbstractVerifier(ABC):
    """Checks a signature against candidate verification methods."""

    @abstractmethod
    def get_supported_verification_methods(self, alg: str) -> set[str]:
        """Verification-method types usable with ``alg``.

        Raises:
            UnsupportedAlgorithm: if ``alg`` is unknown to this verifier.
        """

    @abstractmethod
    async def verify(
        self,
        alg: str,
        signing_input: bytes,
        signature: str,
        candidates: list[VerificationMethod],
    ) -> VerificationMethod:
        """Return the first candidate that validates the signature.

        Raises:
            InvalidSignature: if no candidate validates.
        """
