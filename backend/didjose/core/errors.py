"""Error taxonomy for token and envelope operations.

Every failure raised by the engine is a ``JOSEError`` subclass carrying a
closed ``ErrorKind``. The legacy string code (``invalid_jwt``,
``not_supported``...) is kept in ``code`` and prefixed to ``str(err)`` for
compatibility with tooling that greps logs, but callers should branch on the
exception class or ``kind``.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""

    CONFIGURATION = "configuration_error"
    UNSUPPORTED_ALGORITHM = "unsupported_algorithm"
    MALFORMED_TOKEN = "malformed_token"
    MALFORMED_ENVELOPE = "malformed_envelope"
    INVALID_ISSUER = "invalid_issuer"
    ISSUER_RESOLUTION_FAILED = "issuer_resolution_failed"
    NO_MATCHING_KEY = "no_matching_key"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    NOT_YET_VALID = "not_yet_valid"
    AUDIENCE_MISMATCH = "audience_mismatch"
    AUTHENTICATION_FAILED = "authentication_failed"
    KEY_AGREEMENT_FAILED = "key_agreement_failed"
    KEY_WRAP_FAILED = "key_wrap_failed"
    DECRYPTION_FAILED = "decryption_failed"


class JOSEError(Exception):
    """Base JOSE exception."""

    kind: ErrorKind = ErrorKind.CONFIGURATION
    code: str = "invalid_config"

    def __init__(self, message: str = "", **context: Any):
        self.message = message
        self.context = context
        super().__init__(f"{self.code}: {message}" if message else self.code)


# Configuration


class ConfigurationError(JOSEError):
    """Caller supplied an unusable option or registration."""

    kind = ErrorKind.CONFIGURATION
    code = "invalid_config"


class InvalidAlgorithmName(ConfigurationError):
    """Algorithm name is empty or not a string."""


class InvalidImplementation(ConfigurationError):
    """Algorithm adapter is not callable."""


class DuplicateAlgorithm(ConfigurationError):
    """Algorithm name already registered."""


class MissingAlgorithm(ConfigurationError):
    """Header has no ``alg``."""


class InvalidExpiry(ConfigurationError):
    """``expires_in`` is negative or not a number."""

    code = "invalid_argument"


class MissingSenderKey(ConfigurationError):
    """ECDH-1PU requested without the sender's static key."""


class UnexpectedSignatureShape(ConfigurationError):
    """Signer returned a result the algorithm cannot encode."""


# Algorithms


class UnsupportedAlgorithm(JOSEError):
    """Unknown ``alg`` or ``enc`` identifier."""

    kind = ErrorKind.UNSUPPORTED_ALGORITHM
    code = "not_supported"


class RecoveryParamMissing(UnsupportedAlgorithm):
    """ES256K-R requested but the signature carries no recovery byte."""


# Structure


class MalformedToken(JOSEError):
    """JWT/JWS failed structural parsing."""

    kind = ErrorKind.MALFORMED_TOKEN
    code = "invalid_jwt"


class MalformedEnvelope(JOSEError):
    """JWE failed structural parsing."""

    kind = ErrorKind.MALFORMED_ENVELOPE
    code = "invalid_jwe"


# Issuer / keys / signatures


class InvalidIssuer(JOSEError):
    """``iss`` claim absent or not a DID."""

    kind = ErrorKind.INVALID_ISSUER
    code = "invalid_jwt"


class IssuerResolutionFailed(JOSEError):
    """Resolver failed or returned no document."""

    kind = ErrorKind.ISSUER_RESOLUTION_FAILED
    code = "resolver_error"


class NoMatchingKey(JOSEError):
    """Document has no verification method usable with ``alg``."""

    kind = ErrorKind.NO_MATCHING_KEY
    code = "no_suitable_keys"


class InvalidSignature(JOSEError):
    """No candidate verification method validates the signature."""

    kind = ErrorKind.INVALID_SIGNATURE
    code = "invalid_signature"


# Claim policy


class ClaimValidationError(JOSEError):
    """Claim policy violation after cryptographic success."""

    code = "invalid_jwt"


class Expired(ClaimValidationError):
    kind = ErrorKind.EXPIRED


class NotYetValid(ClaimValidationError):
    kind = ErrorKind.NOT_YET_VALID


class AudienceMismatch(ClaimValidationError):
    kind = ErrorKind.AUDIENCE_MISMATCH
    code = "invalid_audience"


class AuthenticationFailed(ClaimValidationError):
    kind = ErrorKind.AUTHENTICATION_FAILED
    code = "invalid_authenticator"


# Encryption


class KeyAgreementFailed(JOSEError):
    """ECDH could not be computed."""

    kind = ErrorKind.KEY_AGREEMENT_FAILED
    code = "invalid_key"


class InvalidKeyFormat(KeyAgreementFailed):
    """Key bytes are not a valid X25519 scalar or point."""


class KeyWrapFailed(JOSEError):
    """Content encryption key could not be unwrapped."""

    kind = ErrorKind.KEY_WRAP_FAILED
    code = "failure"


class DecryptionFailed(JOSEError):
    """Content authentication tag mismatch."""

    kind = ErrorKind.DECRYPTION_FAILED
    code = "failure"
