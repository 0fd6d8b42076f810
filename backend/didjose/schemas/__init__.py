"""Pydantic schemas."""

from didjose.schemas.did import DIDDocument, DIDResolutionResult, VerificationMethod

__all__ = ["DIDDocument", "DIDResolutionResult", "VerificationMethod"]
