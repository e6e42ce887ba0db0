"""Attestation pipeline."""

from .pipeline import AttestationPipeline

__all__ = ["AttestationPipeline"]
