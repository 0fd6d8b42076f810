"""JWE engine (RFC 7516) for XChaCha20-Poly1305 content encryption.

Two key-management modes are supported:

- direct: a single recipient whose key agreement (or shared secret)
  yields the content encryption key itself. Algorithm parameters live in
  the protected header and the JWE has no ``recipients``.
- key wrap: a random content encryption key is wrapped once per
  recipient, each with its own ephemeral key and header.
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from didjose.core.aead import KEY_SIZE, XC20P, xc20p_decrypt, xc20p_encrypt
from didjose.core.ecdh import (
    SenderAgreement,
    ecdh_1pu_recipient,
    ecdh_1pu_sender,
    ecdh_es_recipient,
    ecdh_es_sender,
)
from didjose.core.encoding import (
    b64url_decode,
    b64url_encode,
    decode_section,
    encode_section,
    extract_public_key_bytes,
    multibase_codec,
)
from didjose.core.errors import (
    ConfigurationError,
    KeyAgreementFailed,
    KeyWrapFailed,
    MalformedEnvelope,
    NoMatchingKey,
    UnsupportedAlgorithm,
)
from didjose.core.jwt import resolve_did
from didjose.core.kdf import WrappedKey, concat_kdf, unwrap_cek, wrap_cek
from didjose.schemas.did import VerificationMethod

logger = logging.getLogger(__name__)

DIRECT_ALGORITHMS = frozenset({"dir", "ECDH-ES", "ECDH-1PU"})
WRAP_ALGORITHMS = frozenset({"ECDH-ES+XC20PKW", "ECDH-1PU+XC20PKW"})
SUPPORTED_ENCRYPTION = frozenset({XC20P})

X25519_KEY_AGREEMENT_TYPES = frozenset({"X25519KeyAgreementKey2019", "X25519KeyAgreementKey2020"})


@dataclass
class Recipient:
    header: dict[str, Any]
    encrypted_key: str

    def to_dict(self) -> dict[str, Any]:
        return {"header": self.header, "encrypted_key": self.encrypted_key}


@dataclass
class JWE:
    """A JWE in general JSON form; fields are base64url strings."""

    protected: str
    iv: str
    ciphertext: str
    tag: str
    recipients: list[Recipient] = field(default_factory=list)
    aad: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "protected": self.protected,
            "iv": self.iv,
            "ciphertext": self.ciphertext,
            "tag": self.tag,
        }
        if self.aad:
            data["aad"] = self.aad
        if self.recipients:
            data["recipients"] = [r.to_dict() for r in self.recipients]
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def to_compact(self) -> str:
        """Compact serialization; only possible without unprotected headers or aad."""
        if self.aad:
            raise ConfigurationError("A JWE with aad has no compact serialization")
        if len(self.recipients) > 1:
            raise ConfigurationError("A JWE with several recipients has no compact serialization")
        encrypted_key = ""
        if self.recipients:
            recipient = self.recipients[0]
            if recipient.header:
                raise ConfigurationError(
                    "A JWE with per-recipient headers has no compact serialization"
                )
            encrypted_key = recipient.encrypted_key
        return ".".join([self.protected, encrypted_key, self.iv, self.ciphertext, self.tag])

    @classmethod
    def parse(cls, data: "str | dict | JWE") -> "JWE":
        """Parse a compact string, a JSON string, or a dict.

        Raises:
            MalformedEnvelope: if the structure is not a JWE.
        """
        if isinstance(data, cls):
            return data
        try:
            if isinstance(data, str) and not data.lstrip().startswith("{"):
                return cls._parse_compact(data)
            obj = json.loads(data) if isinstance(data, str) else data
            if not isinstance(obj, dict):
                raise ValueError("JWE must be a JSON object")
            for name in ("protected", "iv", "ciphertext", "tag"):
                if not isinstance(obj.get(name), str):
                    raise ValueError(f"missing or invalid '{name}'")
            aad = obj.get("aad")
            if aad is not None and not isinstance(aad, str):
                raise ValueError("'aad' must be a string")
            recipients = []
            for entry in obj.get("recipients") or []:
                header = entry.get("header") or {}
                encrypted_key = entry.get("encrypted_key", "")
                if not isinstance(header, dict) or not isinstance(encrypted_key, str):
                    raise ValueError("invalid recipient")
                recipients.append(Recipient(header=header, encrypted_key=encrypted_key))
        except (ValueError, TypeError, AttributeError) as e:
            raise MalformedEnvelope(f"Invalid JWE: {e}") from e
        return cls(
            protected=obj["protected"],
            iv=obj["iv"],
            ciphertext=obj["ciphertext"],
            tag=obj["tag"],
            recipients=recipients,
            aad=aad,
        )

    @classmethod
    def _parse_compact(cls, data: str) -> "JWE":
        parts = data.strip().split(".")
        if len(parts) != 5:
            raise ValueError("compact JWE must have five parts")
        protected, encrypted_key, iv, ciphertext, tag = parts
        recipients = [Recipient(header={}, encrypted_key=encrypted_key)] if encrypted_key else []
        return cls(protected=protected, iv=iv, ciphertext=ciphertext, tag=tag, recipients=recipients)


def _epk(public_key: bytes) -> dict[str, str]:
    return {"kty": "OKP", "crv": "X25519", "x": b64url_encode(public_key)}


def _epk_public_key(header: dict[str, Any]) -> bytes:
    epk = header.get("epk")
    try:
        if epk["kty"] != "OKP" or epk["crv"] != "X25519":
            raise ValueError(f"unsupported epk {epk.get('kty')}/{epk.get('crv')}")
        return b64url_decode(epk["x"])
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedEnvelope(f"Invalid epk: {e}") from e


def _party_info(header: dict[str, Any], name: str) -> bytes:
    value = header.get(name)
    if value is None:
        return b""
    try:
        return b64url_decode(value)
    except ValueError as e:
        raise MalformedEnvelope(f"Invalid {name}: {e}") from e


def _header_bytes(header: dict[str, Any], name: str) -> bytes:
    try:
        return b64url_decode(header[name])
    except (KeyError, ValueError) as e:
        raise MalformedEnvelope(f"Invalid recipient {name}: {e}") from e


def _content_aad(protected: str, aad: str | None) -> bytes:
    return (f"{protected}.{aad}" if aad else protected).encode("ascii")


# Encrypters


class Encrypter(ABC):
    """Key-management step for one recipient.

    Direct encrypters implement ``derive_cek`` and contribute fields to the
    protected header. Key-wrap encrypters implement ``encrypt_cek``.
    """

    alg: str
    enc: str = XC20P

    @property
    def direct(self) -> bool:
        return self.alg in DIRECT_ALGORITHMS

    @abstractmethod
    async def derive_cek(self) -> tuple[bytes, dict[str, Any]]:
        ...

    @abstractmethod
    async def encrypt_cek(self, cek: bytes) -> Recipient:
        ...


class DirectEncrypter(Encrypter):
    """Pre-shared symmetric key (``alg`` = ``dir``)."""

    alg = "dir"

    def __init__(self, secret_key: bytes):
        if len(secret_key) != KEY_SIZE:
            raise ConfigurationError(f"Direct key must be {KEY_SIZE} bytes")
        self._secret_key = secret_key

    async def derive_cek(self) -> tuple[bytes, dict[str, Any]]:
        return self._secret_key, {"alg": self.alg}

    async def encrypt_cek(self, cek: bytes) -> Recipient:
        raise ConfigurationError("dir does not wrap a content encryption key")


class _X25519Sender(Encrypter):
    """Shared ECDH sender flow; subclasses supply the agreement."""

    def __init__(
        self,
        public_key: bytes,
        kid: str | None,
        apu: bytes | None,
        apv: bytes | None,
    ):
        self.public_key = public_key
        self.kid = kid
        self.apu = apu
        self.apv = apv

    @abstractmethod
    def _agree(self) -> SenderAgreement:
        ...

    def _fields(self, agreement: SenderAgreement) -> dict[str, Any]:
        fields: dict[str, Any] = {"alg": self.alg, "epk": _epk(agreement.ephemeral_public_key)}
        if self.apu:
            fields["apu"] = b64url_encode(self.apu)
        if self.apv:
            fields["apv"] = b64url_encode(self.apv)
        return fields

    def _kek(self, agreement: SenderAgreement, algorithm_id: str) -> bytes:
        return concat_kdf(
            agreement.shared_secret,
            KEY_SIZE * 8,
            algorithm_id,
            self.apu or b"",
            self.apv or b"",
        )

    async def derive_cek(self) -> tuple[bytes, dict[str, Any]]:
        agreement = self._agree()
        fields = self._fields(agreement)
        if self.kid:
            fields["kid"] = self.kid
        return self._kek(agreement, self.enc), fields

    async def encrypt_cek(self, cek: bytes) -> Recipient:
        agreement = self._agree()
        wrapped = wrap_cek(self._kek(agreement, self.alg), cek)
        header = self._fields(agreement)
        header["iv"] = b64url_encode(wrapped.iv)
        header["tag"] = b64url_encode(wrapped.tag)
        if self.kid:
            header["kid"] = self.kid
        return Recipient(header=header, encrypted_key=b64url_encode(wrapped.encrypted_key))


class X25519Encrypter(_X25519Sender):
    """Anonymous encryption to an X25519 key (ECDH-ES)."""

    def __init__(
        self,
        public_key: bytes,
        kid: str | None = None,
        apv: bytes | None = None,
        wrap: bool = True,
    ):
        super().__init__(public_key, kid, None, apv)
        self.alg = "ECDH-ES+XC20PKW" if wrap else "ECDH-ES"

    def _agree(self) -> SenderAgreement:
        return ecdh_es_sender(self.public_key)


class X25519AuthEncrypter(_X25519Sender):
    """Authenticated encryption from a sender's static X25519 key (ECDH-1PU)."""

    def __init__(
        self,
        public_key: bytes,
        sender_secret_key: bytes,
        kid: str | None = None,
        skid: str | None = None,
        apu: bytes | None = None,
        apv: bytes | None = None,
        wrap: bool = True,
    ):
        super().__init__(public_key, kid, apu, apv)
        self.sender_secret_key = sender_secret_key
        self.skid = skid
        self.alg = "ECDH-1PU+XC20PKW" if wrap else "ECDH-1PU"

    def _agree(self) -> SenderAgreement:
        return ecdh_1pu_sender(self.public_key, self.sender_secret_key)

    def _fields(self, agreement: SenderAgreement) -> dict[str, Any]:
        fields = super()._fields(agreement)
        if self.skid:
            fields["skid"] = self.skid
        return fields


# Decrypters


class Decrypter(ABC):
    """Recovers the content encryption key for the algorithms it lists.

    ``header`` is the protected header in direct mode, or the protected
    header merged with the recipient header in key-wrap mode.
    """

    algorithms: frozenset[str] = frozenset()
    enc: str = XC20P

    @abstractmethod
    async def derive_cek(self, header: dict[str, Any], encrypted_key: bytes | None) -> bytes:
        ...


class DirectDecrypter(Decrypter):
    algorithms = frozenset({"dir"})

    def __init__(self, secret_key: bytes):
        self._secret_key = secret_key

    async def derive_cek(self, header: dict[str, Any], encrypted_key: bytes | None) -> bytes:
        return self._secret_key


class _X25519Receiver(Decrypter):
    @abstractmethod
    def _shared_secret(self, header: dict[str, Any]) -> bytes:
        ...

    async def derive_cek(self, header: dict[str, Any], encrypted_key: bytes | None) -> bytes:
        alg = header["alg"]
        wrap = alg in WRAP_ALGORITHMS
        kek = concat_kdf(
            self._shared_secret(header),
            KEY_SIZE * 8,
            alg if wrap else header["enc"],
            _party_info(header, "apu"),
            _party_info(header, "apv"),
        )
        if not wrap:
            return kek
        wrapped = WrappedKey(
            encrypted_key=encrypted_key or b"",
            iv=_header_bytes(header, "iv"),
            tag=_header_bytes(header, "tag"),
        )
        return unwrap_cek(kek, wrapped)


class X25519Decrypter(_X25519Receiver):
    algorithms = frozenset({"ECDH-ES", "ECDH-ES+XC20PKW"})

    def __init__(self, secret_key: bytes):
        self._secret_key = secret_key

    def _shared_secret(self, header: dict[str, Any]) -> bytes:
        return ecdh_es_recipient(self._secret_key, _epk_public_key(header))


class X25519AuthDecrypter(_X25519Receiver):
    algorithms = frozenset({"ECDH-1PU", "ECDH-1PU+XC20PKW"})

    def __init__(self, secret_key: bytes, sender_public_key: bytes):
        self._secret_key = secret_key
        self.sender_public_key = sender_public_key

    def _shared_secret(self, header: dict[str, Any]) -> bytes:
        return ecdh_1pu_recipient(
            self._secret_key, _epk_public_key(header), self.sender_public_key
        )


# Pipeline


async def create_jwe(
    cleartext: bytes,
    encrypters: list[Encrypter],
    protected_header: dict[str, Any] | None = None,
    aad: bytes | None = None,
) -> JWE:
    """Encrypt ``cleartext`` for every encrypter.

    Raises:
        ConfigurationError: no encrypters, mixed ``enc`` values, or a direct
            encrypter combined with others.
        UnsupportedAlgorithm: unknown ``enc``.
    """
    if not encrypters:
        raise ConfigurationError("No encrypters supplied")
    enc = encrypters[0].enc
    if any(e.enc != enc for e in encrypters):
        raise ConfigurationError("Incompatible encrypters passed")
    if enc not in SUPPORTED_ENCRYPTION:
        raise UnsupportedAlgorithm(f"Unsupported enc {enc}", enc=enc)

    header = dict(protected_header or {})
    header["enc"] = enc
    recipients: list[Recipient] = []
    if any(e.direct for e in encrypters):
        if len(encrypters) > 1:
            raise ConfigurationError("Direct key agreement allows exactly one encrypter")
        cek, fields = await encrypters[0].derive_cek()
        header.update(fields)
    else:
        cek = os.urandom(KEY_SIZE)
        recipients = list(await asyncio.gather(*(e.encrypt_cek(cek) for e in encrypters)))
    logger.debug("Encrypting JWE for %d recipient(s)", max(len(recipients), 1))

    protected = encode_section(header)
    encoded_aad = b64url_encode(aad) if aad else None
    sealed = xc20p_encrypt(cek, cleartext, _content_aad(protected, encoded_aad))
    return JWE(
        protected=protected,
        iv=b64url_encode(sealed.iv),
        ciphertext=b64url_encode(sealed.ciphertext),
        tag=b64url_encode(sealed.tag),
        recipients=recipients,
        aad=encoded_aad,
    )


async def _unwrap_any(jwe: JWE, header: dict[str, Any], decrypter: Decrypter) -> bytes:
    for index, recipient in enumerate(jwe.recipients):
        merged = {**header, **recipient.header}
        alg = merged.get("alg")
        if alg not in WRAP_ALGORITHMS or alg not in decrypter.algorithms:
            continue
        try:
            encrypted_key = b64url_decode(recipient.encrypted_key)
            return await decrypter.derive_cek(merged, encrypted_key)
        except (ValueError, MalformedEnvelope, KeyAgreementFailed, KeyWrapFailed) as e:
            logger.debug("Recipient %d not decryptable: %s", index, type(e).__name__)
    raise KeyWrapFailed("Failed to decrypt")


async def decrypt_jwe(jwe: "JWE | str | dict", decrypter: Decrypter) -> bytes:
    """Decrypt a JWE; nothing is returned unless the content tag verifies.

    Raises:
        MalformedEnvelope: structural problems.
        UnsupportedAlgorithm: unknown ``enc`` or an unhandled direct ``alg``.
        KeyWrapFailed: no recipient could be unwrapped.
        DecryptionFailed: content authentication failed.
    """
    jwe = JWE.parse(jwe)
    try:
        header = decode_section(jwe.protected)
        iv = b64url_decode(jwe.iv)
        ciphertext = b64url_decode(jwe.ciphertext)
        tag = b64url_decode(jwe.tag)
        if jwe.aad:
            b64url_decode(jwe.aad)
    except ValueError as e:
        raise MalformedEnvelope(f"Invalid JWE: {e}") from e

    enc = header.get("enc")
    if enc not in SUPPORTED_ENCRYPTION or enc != decrypter.enc:
        raise UnsupportedAlgorithm(f"Unsupported enc {enc}", enc=enc)

    if jwe.recipients:
        cek = await _unwrap_any(jwe, header, decrypter)
    else:
        alg = header.get("alg")
        if alg not in DIRECT_ALGORITHMS or alg not in decrypter.algorithms:
            raise UnsupportedAlgorithm(f"Decrypter does not support alg {alg}", alg=alg)
        cek = await decrypter.derive_cek(header, None)

    return xc20p_decrypt(cek, ciphertext, tag, iv, _content_aad(jwe.protected, jwe.aad))


# DID helpers


def is_x25519_method(method: VerificationMethod) -> bool:
    if method.type in X25519_KEY_AGREEMENT_TYPES:
        return True
    if method.public_key_jwk and method.public_key_jwk.get("crv") == "X25519":
        return True
    if method.type == "Multikey" and method.public_key_multibase:
        try:
            return multibase_codec(method.public_key_multibase) == "x25519-pub"
        except ValueError:
            return False
    return False


async def resolve_x25519_encrypters(dids: list[str], resolver: Any) -> list[Encrypter]:
    """Build key-wrap encrypters for every X25519 key agreement key of ``dids``."""

    async def encrypters_for(did: str) -> list[Encrypter]:
        doc = (await resolve_did(resolver, did)).did_document
        if not doc.key_agreement and doc.controller:
            controller = doc.controller if isinstance(doc.controller, str) else doc.controller[0]
            doc = (await resolve_did(resolver, controller)).did_document
        encrypters: list[Encrypter] = []
        for method in doc.relationship("keyAgreement"):
            if not is_x25519_method(method):
                continue
            try:
                public_key = extract_public_key_bytes(method)
            except ValueError:
                logger.debug("Skipping %s: no decodable key material", method.id)
                continue
            encrypters.append(X25519Encrypter(public_key, kid=doc.absolute_id(method.id)))
        if not encrypters:
            raise NoMatchingKey(f"Could not find x25519 key for {did}", did=did)
        return encrypters

    groups = await asyncio.gather(*(encrypters_for(did) for did in dids))
    return [encrypter for group in groups for encrypter in group]
