"""Tests for JWT creation, decoding and verification."""

import time

import pytest

from didjose.core.algorithms import new_registry
from didjose.core.encoding import b64url_decode, b64url_encode, decode_section
from didjose.core.errors import (
    AudienceMismatch,
    ConfigurationError,
    ErrorKind,
    Expired,
    InvalidExpiry,
    InvalidIssuer,
    InvalidSignature,
    IssuerResolutionFailed,
    MalformedToken,
    MissingAlgorithm,
    NoMatchingKey,
    NotYetValid,
    UnsupportedAlgorithm,
)
from didjose.core.jwt import (
    JWTOptions,
    JWTVerifyOptions,
    JWTVerifyPolicies,
    create_jws,
    create_jwt,
    decode_jwt,
    verify_jws,
    verify_jwt,
)
from didjose.schemas.did import VerificationMethod

from conftest import ISSUER, StaticResolver


def _options(signer, alg="ES256K", **kwargs) -> JWTOptions:
    return JWTOptions(issuer=ISSUER, signer=signer, alg=alg, **kwargs)


class TestCreate:
    """Tests for token creation."""

    @pytest.mark.asyncio
    async def test_claims_and_header(self, es256k_signer):
        before = int(time.time())
        jwt = await create_jwt({"sub": "bob"}, _options(es256k_signer))
        decoded = decode_jwt(jwt)

        assert decoded.header == {"typ": "JWT", "alg": "ES256K"}
        assert decoded.payload["iss"] == ISSUER
        assert decoded.payload["sub"] == "bob"
        assert decoded.payload["iat"] >= before
        assert "exp" not in decoded.payload

    @pytest.mark.asyncio
    async def test_issuer_overrides_payload(self, es256k_signer):
        jwt = await create_jwt({"iss": "did:example:mallory"}, _options(es256k_signer))
        assert decode_jwt(jwt).payload["iss"] == ISSUER

    @pytest.mark.asyncio
    async def test_expires_in_from_nbf(self, es256k_signer):
        jwt = await create_jwt(
            {"nbf": 10_000, "iat": 5_000},
            _options(es256k_signer, expires_in=100.9),
        )
        assert decode_jwt(jwt).payload["exp"] == 10_100

    @pytest.mark.asyncio
    async def test_expires_in_from_iat(self, es256k_signer):
        jwt = await create_jwt({"iat": 5_000}, _options(es256k_signer, expires_in=60))
        assert decode_jwt(jwt).payload["exp"] == 5_060

    @pytest.mark.asyncio
    @pytest.mark.parametrize("expires_in", [-1, "soon", float("nan"), True])
    async def test_invalid_expires_in(self, es256k_signer, expires_in):
        with pytest.raises(InvalidExpiry):
            await create_jwt({}, _options(es256k_signer, expires_in=expires_in))

    @pytest.mark.asyncio
    async def test_missing_signer(self):
        with pytest.raises(ConfigurationError):
            await create_jwt({}, JWTOptions(issuer=ISSUER, signer=None, alg="ES256K"))

    @pytest.mark.asyncio
    async def test_missing_alg(self, es256k_signer):
        with pytest.raises(MissingAlgorithm):
            await create_jwt({}, _options(es256k_signer, alg=None))

    @pytest.mark.asyncio
    async def test_unknown_alg(self, es256k_signer):
        with pytest.raises(UnsupportedAlgorithm):
            await create_jwt({}, _options(es256k_signer, alg="PS256"))

    @pytest.mark.asyncio
    async def test_header_alg_wins_over_options(self, eddsa_signer):
        jwt = await create_jwt({}, _options(eddsa_signer, alg="ES256K"), header={"alg": "EdDSA"})
        assert decode_jwt(jwt).header["alg"] == "EdDSA"

    @pytest.mark.asyncio
    async def test_canonicalize_sorts_keys(self, es256k_signer):
        jwt = await create_jwt({"z": 1, "a": 2}, _options(es256k_signer, canonicalize=True))
        header_b64, payload_b64, _ = jwt.split(".")
        assert b64url_decode(header_b64) == b'{"alg":"ES256K","typ":"JWT"}'
        assert list(decode_section(payload_b64)) == sorted(decode_section(payload_b64))

    @pytest.mark.asyncio
    async def test_create_jws_with_encoded_payload(self, eddsa_signer):
        payload = b64url_encode(b'{"hello":"world"}')
        jws = await create_jws(payload, eddsa_signer, {"alg": "EdDSA"})
        assert jws.split(".")[1] == payload

    @pytest.mark.asyncio
    async def test_custom_registry(self):
        async def fixed(payload: bytes, signer) -> str:
            return b64url_encode(b"fixed")

        registry = new_registry()
        registry.register("X-TEST", fixed)
        jws = await create_jws({"a": 1}, lambda data: "unused", {"alg": "X-TEST"}, registry=registry)
        assert jws.endswith("." + b64url_encode(b"fixed"))


class TestDecode:
    """Tests for structural decoding."""

    @pytest.mark.parametrize(
        "token",
        [
            "",
            "a.b",
            "a.b.c.d",
            "..sig",
            "eyJhbGciOiJFUzI1NksifQ.eyJpc3MiOiJkaWQ6ZXhhbXBsZTphbGljZSJ9.",
            "eyJhbGciOiJFUzI1NksifQ.bm90IGpzb24.c2ln",
            "W10.eyJpc3MiOiJkaWQ6ZXhhbXBsZTphbGljZSJ9.c2ln",
        ],
    )
    def test_malformed(self, token):
        with pytest.raises(MalformedToken) as exc:
            decode_jwt(token)
        assert exc.value.kind == ErrorKind.MALFORMED_TOKEN

    def test_decode(self):
        decoded = decode_jwt("eyJhbGciOiJFUzI1NksifQ.eyJpc3MiOiJkaWQ6ZXhhbXBsZTphbGljZSJ9.c2ln")
        assert decoded.header == {"alg": "ES256K"}
        assert decoded.payload == {"iss": "did:example:alice"}
        assert decoded.signature == "c2ln"


class TestVerify:
    """Tests for verify_jwt."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "alg,signer_fixture,method_id",
        [
            ("ES256K", "es256k_signer", f"{ISSUER}#secp256k1"),
            ("ES256K-R", "es256k_signer", f"{ISSUER}#secp256k1"),
            ("ES256", "es256_signer", f"{ISSUER}#p256"),
            ("EdDSA", "eddsa_signer", "#ed25519"),
            ("Ed25519", "eddsa_signer", "#ed25519"),
        ],
    )
    async def test_roundtrip(self, request, resolver, alg, signer_fixture, method_id):
        signer = request.getfixturevalue(signer_fixture)
        jwt = await create_jwt({"hello": "world"}, _options(signer, alg=alg))

        verified = await verify_jwt(jwt, JWTVerifyOptions(resolver=resolver))

        assert verified.payload["hello"] == "world"
        assert verified.issuer == ISSUER
        assert verified.signer.id == method_id
        assert verified.doc.id == ISSUER
        assert verified.jwt == jwt

    @pytest.mark.asyncio
    async def test_tampered_payload(self, resolver, es256k_signer):
        jwt = await create_jwt({"admin": False}, _options(es256k_signer))
        header, _, signature = jwt.split(".")
        forged = b64url_encode(b'{"admin":true,"iss":"did:example:alice"}')
        with pytest.raises(InvalidSignature):
            await verify_jwt(f"{header}.{forged}.{signature}", JWTVerifyOptions(resolver=resolver))

    @pytest.mark.asyncio
    async def test_tampered_signature(self, resolver, es256k_signer):
        jwt = await create_jwt({"a": 1}, _options(es256k_signer))
        header, payload, signature = jwt.split(".")
        raw = bytearray(b64url_decode(signature))
        raw[10] ^= 0x80
        with pytest.raises(InvalidSignature):
            await verify_jwt(
                f"{header}.{payload}.{b64url_encode(bytes(raw))}", JWTVerifyOptions(resolver=resolver)
            )

    @pytest.mark.asyncio
    async def test_malformed_before_resolution(self, resolver):
        with pytest.raises(MalformedToken):
            await verify_jwt("not-a-jwt", JWTVerifyOptions(resolver=resolver))
        assert resolver.calls == []

    @pytest.mark.asyncio
    async def test_missing_resolver(self, es256k_signer):
        jwt = await create_jwt({}, _options(es256k_signer))
        with pytest.raises(ConfigurationError):
            await verify_jwt(jwt, JWTVerifyOptions(resolver=None))

    @pytest.mark.asyncio
    async def test_issuer_must_be_did(self, resolver, es256k_signer):
        jwt = await create_jws({"iss": "https://example.com"}, es256k_signer, {"alg": "ES256K"})
        with pytest.raises(InvalidIssuer):
            await verify_jwt(jwt, JWTVerifyOptions(resolver=resolver))

    @pytest.mark.asyncio
    async def test_resolves_bare_did(self, resolver, es256k_signer):
        jwt = await create_jws(
            {"iss": f"{ISSUER}?versionId=1"}, es256k_signer, {"alg": "ES256K"}
        )
        await verify_jwt(jwt, JWTVerifyOptions(resolver=resolver))
        assert resolver.calls == [ISSUER]

    @pytest.mark.asyncio
    async def test_unresolvable_issuer(self, es256k_signer):
        jwt = await create_jwt({}, _options(es256k_signer))
        with pytest.raises(IssuerResolutionFailed) as exc:
            await verify_jwt(jwt, JWTVerifyOptions(resolver=StaticResolver()))
        assert "notFound" in str(exc.value)

    @pytest.mark.asyncio
    async def test_resolver_exception(self, es256k_signer):
        async def broken(did):
            raise ConnectionError("offline")

        jwt = await create_jwt({}, _options(es256k_signer))
        with pytest.raises(IssuerResolutionFailed):
            await verify_jwt(jwt, JWTVerifyOptions(resolver=broken))

    @pytest.mark.asyncio
    async def test_resolver_returning_bare_document(self, issuer_doc, es256k_signer):
        async def resolve(did):
            return issuer_doc

        jwt = await create_jwt({}, _options(es256k_signer))
        verified = await verify_jwt(jwt, JWTVerifyOptions(resolver=resolve))
        assert verified.signer.id == f"{ISSUER}#secp256k1"

    @pytest.mark.asyncio
    async def test_unsupported_alg_in_header(self, resolver, es256k_signer):
        jwt = await create_jwt({}, _options(es256k_signer))
        _, payload, signature = jwt.split(".")
        header = b64url_encode(b'{"alg":"HS256"}')
        with pytest.raises(UnsupportedAlgorithm):
            await verify_jwt(f"{header}.{payload}.{signature}", JWTVerifyOptions(resolver=resolver))

    @pytest.mark.asyncio
    async def test_no_matching_key_type(self, es256k_signer, ed25519_public):
        doc = {
            "id": ISSUER,
            "verificationMethod": [
                {
                    "id": f"{ISSUER}#ed",
                    "type": "Ed25519VerificationKey2018",
                    "publicKeyHex": ed25519_public.hex(),
                }
            ],
        }
        jwt = await create_jwt({}, _options(es256k_signer))
        with pytest.raises(NoMatchingKey):
            await verify_jwt(jwt, JWTVerifyOptions(resolver=StaticResolver({ISSUER: doc})))

    @pytest.mark.asyncio
    async def test_verify_jws_with_explicit_candidates(self, eddsa_signer, ed25519_public):
        jws = await create_jws({"a": 1}, eddsa_signer, {"alg": "EdDSA"})
        method = VerificationMethod(
            id="#k", type="Ed25519VerificationKey2018", publicKeyHex=ed25519_public.hex()
        )
        assert await verify_jws(jws, [method]) is method


class TestClaims:
    """Tests for time, audience and authentication checks."""

    @pytest.mark.asyncio
    async def test_expiry_against_clock(self, resolver, es256k_signer):
        now = int(time.time())
        expired = await create_jwt({"exp": now - 1}, _options(es256k_signer))
        valid = await create_jwt({"exp": now + 3600}, _options(es256k_signer))
        with pytest.raises(Expired):
            await verify_jwt(expired, JWTVerifyOptions(resolver=resolver))
        await verify_jwt(valid, JWTVerifyOptions(resolver=resolver))

    @pytest.mark.asyncio
    async def test_expired(self, resolver, es256k_signer):
        jwt = await create_jwt({"iat": 900, "exp": 1_000}, _options(es256k_signer))
        with pytest.raises(Expired) as exc:
            await verify_jwt(
                jwt, JWTVerifyOptions(resolver=resolver, policies=JWTVerifyPolicies(now=1_000))
            )
        assert exc.value.kind == ErrorKind.EXPIRED

    @pytest.mark.asyncio
    async def test_not_expired_within_skew(self, resolver, es256k_signer):
        jwt = await create_jwt({"iat": 900, "exp": 1_000}, _options(es256k_signer))
        await verify_jwt(
            jwt,
            JWTVerifyOptions(
                resolver=resolver, skew_time=10, policies=JWTVerifyPolicies(now=1_005)
            ),
        )

    @pytest.mark.asyncio
    async def test_exp_policy_disabled(self, resolver, es256k_signer):
        jwt = await create_jwt({"iat": 900, "exp": 1_000}, _options(es256k_signer))
        await verify_jwt(
            jwt,
            JWTVerifyOptions(resolver=resolver, policies=JWTVerifyPolicies(now=5_000, exp=False)),
        )

    @pytest.mark.asyncio
    async def test_not_yet_valid(self, resolver, es256k_signer):
        jwt = await create_jwt({"iat": 900, "nbf": 2_000}, _options(es256k_signer))
        with pytest.raises(NotYetValid):
            await verify_jwt(
                jwt, JWTVerifyOptions(resolver=resolver, policies=JWTVerifyPolicies(now=1_000))
            )

    @pytest.mark.asyncio
    async def test_nbf_takes_precedence_over_iat(self, resolver, es256k_signer):
        jwt = await create_jwt({"iat": 3_000, "nbf": 900}, _options(es256k_signer))
        await verify_jwt(
            jwt, JWTVerifyOptions(resolver=resolver, policies=JWTVerifyPolicies(now=1_000))
        )

    @pytest.mark.asyncio
    async def test_issued_in_future(self, resolver, es256k_signer):
        jwt = await create_jwt({"iat": 3_000}, _options(es256k_signer))
        with pytest.raises(NotYetValid):
            await verify_jwt(
                jwt, JWTVerifyOptions(resolver=resolver, policies=JWTVerifyPolicies(now=1_000))
            )

    @pytest.mark.asyncio
    async def test_audience_matches(self, resolver, es256k_signer):
        jwt = await create_jwt({"aud": ["did:example:bob", "did:example:carol"]}, _options(es256k_signer))
        verified = await verify_jwt(
            jwt, JWTVerifyOptions(resolver=resolver, audience="did:example:carol")
        )
        assert verified.payload["aud"][1] == "did:example:carol"

    @pytest.mark.asyncio
    async def test_audience_mismatch(self, resolver, es256k_signer):
        jwt = await create_jwt({"aud": "did:example:bob"}, _options(es256k_signer))
        with pytest.raises(AudienceMismatch):
            await verify_jwt(jwt, JWTVerifyOptions(resolver=resolver, audience="did:example:carol"))

    @pytest.mark.asyncio
    async def test_audience_required_when_configured(self, resolver, es256k_signer):
        jwt = await create_jwt({}, _options(es256k_signer))
        with pytest.raises(AudienceMismatch):
            await verify_jwt(jwt, JWTVerifyOptions(resolver=resolver, audience="did:example:carol"))

    @pytest.mark.asyncio
    async def test_audience_ignored_without_configuration(self, resolver, es256k_signer):
        jwt = await create_jwt({"aud": "did:example:bob"}, _options(es256k_signer))
        await verify_jwt(jwt, JWTVerifyOptions(resolver=resolver))

    @pytest.mark.asyncio
    async def test_auth_uses_authentication_keys(self, resolver, es256k_signer):
        jwt = await create_jwt({}, _options(es256k_signer))
        verified = await verify_jwt(jwt, JWTVerifyOptions(resolver=resolver, auth=True))
        assert verified.signer.id == f"{ISSUER}#secp256k1"

    @pytest.mark.asyncio
    async def test_auth_rejects_non_authentication_key(self, resolver, eddsa_signer):
        jwt = await create_jwt({}, _options(eddsa_signer, alg="EdDSA"))
        with pytest.raises(NoMatchingKey):
            await verify_jwt(jwt, JWTVerifyOptions(resolver=resolver, auth=True))

    @pytest.mark.asyncio
    async def test_proof_purpose_assertion_method(self, resolver, eddsa_signer):
        jwt = await create_jwt({}, _options(eddsa_signer, alg="EdDSA"))
        verified = await verify_jwt(
            jwt, JWTVerifyOptions(resolver=resolver, proof_purpose="assertionMethod")
        )
        assert verified.signer.id == "#ed25519"


class TestClaimTypes:
    """Tests for claims whose JSON types are wrong."""

    async def _signed(self, signer, claims):
        return await create_jws({"iss": ISSUER, **claims}, signer, {"alg": "ES256K"})

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "claims",
        [
            {"exp": "tomorrow"},
            {"nbf": "later"},
            {"iat": [1]},
            {"exp": True},
            {"nbf": None, "iat": {"at": 1}},
        ],
    )
    async def test_time_claims_must_be_numeric(self, resolver, es256k_signer, claims):
        jwt = await self._signed(es256k_signer, claims)
        with pytest.raises(MalformedToken):
            await verify_jwt(jwt, JWTVerifyOptions(resolver=resolver))

    @pytest.mark.asyncio
    async def test_time_claims_checked_even_when_policy_disabled(self, resolver, es256k_signer):
        jwt = await self._signed(es256k_signer, {"exp": "tomorrow"})
        with pytest.raises(MalformedToken):
            await verify_jwt(
                jwt, JWTVerifyOptions(resolver=resolver, policies=JWTVerifyPolicies(exp=False))
            )

    @pytest.mark.asyncio
    async def test_float_time_claims(self, resolver, es256k_signer):
        jwt = await self._signed(es256k_signer, {"iat": 900.5, "exp": 1_000.5})
        await verify_jwt(
            jwt, JWTVerifyOptions(resolver=resolver, policies=JWTVerifyPolicies(now=1_000))
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("aud", [5, {"did:example:carol": True}, ["did:example:carol", 7]])
    async def test_audience_must_be_strings(self, resolver, es256k_signer, aud):
        jwt = await self._signed(es256k_signer, {"aud": aud})
        with pytest.raises(MalformedToken):
            await verify_jwt(jwt, JWTVerifyOptions(resolver=resolver, audience="did:example:carol"))
