"""DID document schemas.

Only the parts of a resolved document the engine consumes are modelled
explicitly; everything else is preserved through ``extra="allow"``.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class VerificationMethod(BaseModel):
    """A public key entry from a DID document."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    type: str
    controller: str | None = None
    public_key_base58: str | None = Field(default=None, alias="publicKeyBase58")
    public_key_base64: str | None = Field(default=None, alias="publicKeyBase64")
    public_key_hex: str | None = Field(default=None, alias="publicKeyHex")
    public_key_multibase: str | None = Field(default=None, alias="publicKeyMultibase")
    public_key_jwk: dict[str, Any] | None = Field(default=None, alias="publicKeyJwk")
    blockchain_account_id: str | None = Field(default=None, alias="blockchainAccountId")


class DIDDocument(BaseModel):
    """Resolved DID document."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    context: Any = Field(default=None, alias="@context")
    id: str
    controller: str | list[str] | None = None
    verification_method: list[VerificationMethod] = Field(
        default_factory=list, alias="verificationMethod"
    )
    # Pre-2020 documents list keys under ``publicKey``
    public_key: list[VerificationMethod] = Field(default_factory=list, alias="publicKey")
    authentication: list[str | VerificationMethod] = Field(default_factory=list)
    assertion_method: list[str | VerificationMethod] = Field(
        default_factory=list, alias="assertionMethod"
    )
    key_agreement: list[str | VerificationMethod] = Field(
        default_factory=list, alias="keyAgreement"
    )
    service: list[dict[str, Any]] = Field(default_factory=list)

    def all_methods(self) -> list[VerificationMethod]:
        """Declared verification methods in document order."""
        return [*self.verification_method, *self.public_key]

    def dereference(self, ref: str | VerificationMethod) -> VerificationMethod | None:
        """Resolve a relationship entry to a verification method."""
        if isinstance(ref, VerificationMethod):
            return ref
        target = self.absolute_id(ref)
        for method in self.all_methods():
            if self.absolute_id(method.id) == target:
                return method
        return None

    def relationship(self, name: str) -> list[VerificationMethod]:
        """Methods referenced by a verification relationship, e.g. ``authentication``."""
        entries = {
            "authentication": self.authentication,
            "assertionMethod": self.assertion_method,
            "keyAgreement": self.key_agreement,
        }.get(name)
        if entries is None:
            extra = (self.model_extra or {}).get(name) or []
            entries = [
                VerificationMethod.model_validate(e) if isinstance(e, dict) else e
                for e in extra
            ]
        methods = []
        for entry in entries:
            method = self.dereference(entry)
            if method is not None:
                methods.append(method)
        return methods

    def in_relationship(self, name: str, method: VerificationMethod) -> bool:
        target = self.absolute_id(method.id)
        return any(self.absolute_id(m.id) == target for m in self.relationship(name))

    def absolute_id(self, ref: str) -> str:
        return f"{self.id}{ref}" if ref.startswith("#") else ref


class DIDResolutionResult(BaseModel):
    """Result envelope returned by a DID resolver."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    did_resolution_metadata: dict[str, Any] = Field(
        default_factory=dict, alias="didResolutionMetadata"
    )
    did_document: DIDDocument | None = Field(default=None, alias="didDocument")
    did_document_metadata: dict[str, Any] = Field(
        default_factory=dict, alias="didDocumentMetadata"
    )

    @classmethod
    def coerce(cls, result: Any) -> "DIDResolutionResult":
        """Accept a resolution result, a bare document, or a dict of either."""
        if isinstance(result, cls):
            return result
        if isinstance(result, DIDDocument):
            return cls(did_document=result)
        if isinstance(result, dict):
            if any(k in result for k in ("didDocument", "didResolutionMetadata", "did_document")):
                return cls.model_validate(result)
            return cls(did_document=DIDDocument.model_validate(result))
        raise TypeError(f"Unexpected resolver result: {type(result).__name__}")
