"""AI-assisted verification: payment proofs, KYC, task proofs and risk."""

from .client import VerificationClient, Verifier, get_verification_client

__all__ = ["VerificationClient", "Verifier", "get_verification_client"]
