"""JWS/JWT engine.

Implements RFC 7515 (JWS) compact and general JSON serializations and
RFC 7519 (JWT) claim handling for DID-identified issuers:

- create_jws / create_jwt: sign with any registered algorithm
- decode_jwt: structural decode without verification
- verify_jws: check a compact JWS against explicit candidate keys
- verify_jwt: resolve the issuer DID, verify, then enforce exp/nbf/aud/auth
- create_multisignature_jwt / verify_multisignature_jwt: one payload,
  independent signatures (general JWS JSON serialization)
"""

import asyncio
import json
import logging
import math
import re
import time
from dataclasses import dataclass, field
from typing import Any

from didjose.config import get_settings
from didjose.core.algorithms import AlgorithmRegistry, algorithm_registry
from didjose.core.encoding import decode_section, encode_section
from didjose.core.errors import (
    AudienceMismatch,
    AuthenticationFailed,
    ConfigurationError,
    Expired,
    InvalidExpiry,
    InvalidIssuer,
    IssuerResolutionFailed,
    JOSEError,
    MalformedToken,
    MissingAlgorithm,
    NoMatchingKey,
    NotYetValid,
)
from didjose.core.signatures import AbstractVerifier
from didjose.core.software import SoftwareVerifier
from didjose.schemas.did import DIDDocument, DIDResolutionResult, VerificationMethod

logger = logging.getLogger(__name__)

DID_PATTERN = re.compile(r"^did:[a-z0-9]+:[A-Za-z0-9._:%-]*[A-Za-z0-9._%-]")


@dataclass
class JWTOptions:
    """Options for create_jwt."""

    issuer: str
    signer: Any
    alg: str | None = None
    expires_in: int | float | None = None
    canonicalize: bool | None = None
    registry: AlgorithmRegistry | None = None


@dataclass
class JWTVerifyPolicies:
    """Switches for the post-signature claim checks."""

    now: int | None = None
    nbf: bool = True
    iat: bool = True
    exp: bool = True
    aud: bool = True


@dataclass
class JWTVerifyOptions:
    """Options for verify_jwt."""

    resolver: Any
    verifier: AbstractVerifier | None = None
    audience: str | None = None
    auth: bool = False
    proof_purpose: str | None = None
    skew_time: int | None = None
    policies: JWTVerifyPolicies = field(default_factory=JWTVerifyPolicies)


@dataclass
class JWTDecoded:
    header: dict[str, Any]
    payload: dict[str, Any]
    signature: str
    data: str


@dataclass
class JWTVerified:
    payload: dict[str, Any]
    issuer: str
    signer: VerificationMethod
    doc: DIDDocument
    jwt: str
    did_resolution_result: DIDResolutionResult


@dataclass
class MultisigSigner:
    """One signer entry for a multisignature token."""

    signer: Any
    alg: str
    kid: str | None = None


@dataclass
class JWSRecipient:
    protected_header: dict[str, Any]
    signature: str
    protected: str = ""

    def __post_init__(self):
        if not self.protected:
            self.protected = encode_section(self.protected_header)


@dataclass
class GeneralJWS:
    """General JWS JSON serialization: one payload, many signatures."""

    payload: str
    signatures: list[JWSRecipient]

    def to_dict(self) -> dict[str, Any]:
        return {
            "payload": self.payload,
            "signatures": [
                {"protected": s.protected, "signature": s.signature} for s in self.signatures
            ],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def to_compact(self, index: int) -> str:
        """Compact serialization of a single signature entry."""
        entry = self.signatures[index]
        return f"{entry.protected}.{self.payload}.{entry.signature}"

    @classmethod
    def parse(cls, data: "str | dict | GeneralJWS") -> "GeneralJWS":
        if isinstance(data, cls):
            return data
        try:
            obj = json.loads(data) if isinstance(data, str) else data
            payload = obj["payload"]
            entries = obj["signatures"]
            if not isinstance(payload, str) or not isinstance(entries, list) or not entries:
                raise ValueError("payload must be a string and signatures a non-empty list")
            signatures = [
                JWSRecipient(
                    protected_header=decode_section(e["protected"]),
                    signature=e["signature"],
                    protected=e["protected"],
                )
                for e in entries
            ]
            decode_section(payload)
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedToken(f"Incorrect format JWS: {e}") from e
        return cls(payload=payload, signatures=signatures)


@dataclass
class SignatureCheck:
    """Outcome of verifying one entry of a multisignature token."""

    index: int
    verified: JWTVerified | None = None
    error: JOSEError | None = None

    @property
    def valid(self) -> bool:
        return self.verified is not None


def _now(policies: JWTVerifyPolicies | None = None) -> int:
    if policies is not None and policies.now is not None:
        return int(policies.now)
    return int(time.time())


# ==================== Creation ====================


async def create_jws(
    payload: str | dict[str, Any],
    signer: Any,
    header: dict[str, Any] | None = None,
    canonicalize: bool | None = None,
    registry: AlgorithmRegistry | None = None,
) -> str:
    """Create a compact JWS.

    Args:
        payload: Claims mapping, or an already base64url-encoded payload
        signer: Signer object or function
        header: Protected header; must carry ``alg``
        canonicalize: Sort JSON keys (defaults to settings)
        registry: Algorithm registry (defaults to the process-wide one)

    Returns:
        ``<header>.<payload>.<signature>``

    Raises:
        MissingAlgorithm: if the header has no ``alg``
        UnsupportedAlgorithm: if ``alg`` is not registered
    """
    header = dict(header or {})
    if not header.get("alg"):
        raise MissingAlgorithm("JWS header requires an 'alg'")
    if canonicalize is None:
        canonicalize = get_settings().canonicalize

    encoded_payload = payload if isinstance(payload, str) else encode_section(payload, canonicalize)
    signing_input = f"{encode_section(header, canonicalize)}.{encoded_payload}"

    jws_signer = (registry or algorithm_registry).resolve(header["alg"])
    signature = await jws_signer(signing_input.encode("ascii"), signer)
    return f"{signing_input}.{signature}"


def _claims(payload: dict[str, Any], issuer: str, expires_in: Any) -> dict[str, Any]:
    timestamps: dict[str, Any] = {"iat": int(time.time())}
    if expires_in is not None:
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
            raise InvalidExpiry("JWT expiresIn is not a number")
        if expires_in < 0 or math.isnan(expires_in) or math.isinf(expires_in):
            raise InvalidExpiry("JWT expiresIn must be a non-negative number")
        base = payload.get("nbf") or payload.get("iat") or timestamps["iat"]
        timestamps["exp"] = int(base + math.floor(expires_in))
    return {**timestamps, **payload, "iss": issuer}


async def create_jwt(
    payload: dict[str, Any],
    options: JWTOptions,
    header: dict[str, Any] | None = None,
) -> str:
    """Create a signed JWT with ``iss`` (and optionally ``exp``) injected."""
    if not options.signer:
        raise ConfigurationError("No Signer functionality has been configured")
    if not options.issuer:
        raise ConfigurationError("No issuing DID has been configured")

    header = {"typ": get_settings().default_typ, **(header or {})}
    if not header.get("alg") and options.alg:
        header["alg"] = options.alg

    full_payload = _claims(payload, options.issuer, options.expires_in)
    return await create_jws(
        full_payload,
        options.signer,
        header,
        canonicalize=options.canonicalize,
        registry=options.registry,
    )


async def create_multisignature_jwt(
    payload: dict[str, Any],
    issuer: str,
    signers: list[MultisigSigner],
    expires_in: int | float | None = None,
    canonicalize: bool | None = None,
    registry: AlgorithmRegistry | None = None,
) -> GeneralJWS:
    """Sign one payload independently with every signer."""
    if not signers:
        raise ConfigurationError("Must provide one or more signers")
    if not issuer:
        raise ConfigurationError("No issuing DID has been configured")
    if canonicalize is None:
        canonicalize = get_settings().canonicalize

    encoded_payload = encode_section(_claims(payload, issuer, expires_in), canonicalize)

    async def sign_one(entry: MultisigSigner) -> JWSRecipient:
        header: dict[str, Any] = {"alg": entry.alg, "typ": get_settings().default_typ}
        if entry.kid:
            header["kid"] = entry.kid
        compact = await create_jws(
            encoded_payload, entry.signer, header, canonicalize=canonicalize, registry=registry
        )
        protected, _, signature = compact.split(".")
        return JWSRecipient(protected_header=header, signature=signature, protected=protected)

    recipients = await asyncio.gather(*(sign_one(entry) for entry in signers))
    return GeneralJWS(payload=encoded_payload, signatures=list(recipients))


# ==================== Decoding ====================


def decode_jwt(jwt: str) -> JWTDecoded:
    """Split and decode a compact JWT without verifying it.

    Raises:
        MalformedToken: unless there are exactly three non-empty segments
            whose header and payload decode to JSON objects
    """
    if not isinstance(jwt, str) or not jwt:
        raise MalformedToken("no JWT passed into decodeJWT")
    parts = jwt.split(".")
    if len(parts) != 3 or not all(parts):
        raise MalformedToken("Incorrect format JWT")
    header_b64, payload_b64, signature = parts
    try:
        header = decode_section(header_b64)
        payload = decode_section(payload_b64)
    except ValueError as e:
        raise MalformedToken(f"Incorrect format JWT: {e}") from e
    return JWTDecoded(
        header=header,
        payload=payload,
        signature=signature,
        data=f"{header_b64}.{payload_b64}",
    )


# ==================== Verification ====================


async def verify_jws(
    jws: str,
    candidates: list[VerificationMethod],
    verifier: AbstractVerifier | None = None,
) -> VerificationMethod:
    """Verify a compact JWS against explicit candidate keys."""
    decoded = decode_jwt(jws)
    verifier = verifier or SoftwareVerifier()
    return await verifier.verify(
        decoded.header.get("alg", ""), decoded.data.encode("ascii"), decoded.signature, candidates
    )


def _bare_did(did_url: str) -> str:
    """Strip path, query and fragment from a DID URL."""
    return re.split(r"[#?/]", did_url, maxsplit=1)[0]


async def resolve_did(resolver: Any, did: str) -> DIDResolutionResult:
    resolve = resolver.resolve if hasattr(resolver, "resolve") else resolver
    try:
        result = await resolve(did)
        resolution = DIDResolutionResult.coerce(result)
    except Exception as e:
        raise IssuerResolutionFailed(f"Unable to resolve DID document for {did}: {e}", did=did) from e

    error = resolution.did_resolution_metadata.get("error")
    if error or resolution.did_document is None:
        message = resolution.did_resolution_metadata.get("message", "")
        raise IssuerResolutionFailed(
            f"Unable to resolve DID document for {did}: {error or 'notFound'}, {message}".rstrip(", "),
            did=did,
        )
    return resolution


def _candidates(
    doc: DIDDocument, types: set[str], proof_purpose: str | None
) -> list[VerificationMethod]:
    methods = doc.all_methods()
    if proof_purpose:
        declared = [m for m in methods if doc.in_relationship(proof_purpose, m)]
        declared_ids = {m.id for m in declared}
        # Methods embedded directly in the relationship come after declared ones
        embedded = [m for m in doc.relationship(proof_purpose) if m.id not in declared_ids]
        methods = declared + embedded
    return [m for m in methods if m.type in types]


def _time_claim(payload: dict[str, Any], name: str) -> int | float | None:
    value = payload.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise MalformedToken(f"JWT {name} must be a NumericDate")
    return value


def _audiences(payload: dict[str, Any]) -> list[str]:
    aud = payload.get("aud")
    if aud is None:
        return []
    if isinstance(aud, str):
        return [aud]
    if isinstance(aud, list) and all(isinstance(a, str) for a in aud):
        return aud
    raise MalformedToken("JWT aud must be a string or a list of strings")


def _check_claims(
    payload: dict[str, Any],
    options: JWTVerifyOptions,
    doc: DIDDocument,
    matched: VerificationMethod,
) -> None:
    policies = options.policies
    now = _now(policies)
    skew = options.skew_time if options.skew_time is not None else get_settings().clock_skew_seconds

    exp = _time_claim(payload, "exp")
    nbf = _time_claim(payload, "nbf")
    iat = _time_claim(payload, "iat")

    if policies.exp and exp is not None and now - skew >= exp:
        raise Expired(f"JWT has expired: exp: {exp} < now: {now}", exp=exp, now=now)

    if nbf is not None:
        if policies.nbf and now + skew < nbf:
            raise NotYetValid(f"JWT not valid before nbf: {nbf}", nbf=nbf, now=now)
    elif policies.iat and iat is not None and now + skew < iat:
        raise NotYetValid(
            f"JWT not valid yet (issued in the future) iat: {iat}",
            iat=iat,
            now=now,
        )

    if policies.aud and options.audience is not None:
        if options.audience not in _audiences(payload):
            raise AudienceMismatch(
                f"JWT audience does not match your DID or callback url: {options.audience}",
                audience=options.audience,
            )

    if options.auth and not doc.in_relationship("authentication", matched):
        raise AuthenticationFailed(
            f"DID document for {doc.id} does not have public keys suitable for authenticating user",
            method=matched.id,
        )


async def verify_jwt(jwt: str, options: JWTVerifyOptions) -> JWTVerified:
    """Verify a JWT issued by a DID.

    Steps: decode, resolve the issuer, filter candidate verification methods
    by what the verifier supports for ``alg``, verify in document order, then
    enforce exp, nbf/iat, aud and authentication.
    """
    if options.resolver is None:
        raise ConfigurationError("No DID resolver has been configured")

    decoded = decode_jwt(jwt)
    issuer = decoded.payload.get("iss")
    if not isinstance(issuer, str) or not DID_PATTERN.match(issuer):
        raise InvalidIssuer("JWT iss is required and must be a DID")

    verifier = options.verifier or SoftwareVerifier()
    alg = decoded.header.get("alg")
    if not isinstance(alg, str) or not alg:
        raise MalformedToken("JWT header has no alg")
    types = verifier.get_supported_verification_methods(alg)

    resolution = await resolve_did(options.resolver, _bare_did(issuer))
    doc = resolution.did_document
    proof_purpose = options.proof_purpose or ("authentication" if options.auth else None)
    candidates = _candidates(doc, types, proof_purpose)
    logger.debug("Verifying %s token from %s against %d candidate(s)", alg, issuer, len(candidates))
    if not candidates:
        raise NoMatchingKey(
            f"DID document for {issuer} does not have public keys for {alg}", did=issuer, alg=alg
        )

    matched = await verifier.verify(
        alg, decoded.data.encode("ascii"), decoded.signature, candidates
    )
    logger.debug("Signature matched verification method %s", matched.id)

    _check_claims(decoded.payload, options, doc, matched)

    return JWTVerified(
        payload=decoded.payload,
        issuer=issuer,
        signer=matched,
        doc=doc,
        jwt=jwt,
        did_resolution_result=resolution,
    )


async def verify_multisignature_jwt(
    jws: "str | dict | GeneralJWS",
    options: JWTVerifyOptions,
) -> list[SignatureCheck]:
    """Verify every signature of a general JWS independently."""
    parsed = GeneralJWS.parse(jws)
    checks = []
    for index in range(len(parsed.signatures)):
        try:
            verified = await verify_jwt(parsed.to_compact(index), options)
            checks.append(SignatureCheck(index=index, verified=verified))
        except JOSEError as e:
            checks.append(SignatureCheck(index=index, error=e))
    return checks
