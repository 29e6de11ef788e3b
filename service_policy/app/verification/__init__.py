from .token_verifier import (
    VerificationResult,
    TokenVerifier,
    HttpTokenVerifier,
    MockTokenVerifier,
    build_token_verifier,
)

__all__ = [
    "VerificationResult",
    "TokenVerifier",
    "HttpTokenVerifier",
    "MockTokenVerifier",
    "build_token_verifier",
]
