"""Signature module."""

from .verifier import (
    ISignatureVerifier,
    SignatureVerifier,
    Signer,
    canonical_message,
    result_message,
)

__all__ = [
    "ISignatureVerifier",
    "SignatureVerifier",
    "Signer",
    "canonical_message",
    "result_message",
]
