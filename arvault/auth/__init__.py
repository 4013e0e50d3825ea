from arvault.auth.access import AccessDecision, AccessRequest, AccessResolver, AccessStrategy
from arvault.auth.secrets import candidate_secrets, signing_secret
from arvault.auth.tokens import Principal, TokenVerifier, Verification

__all__ = [
    "AccessDecision",
    "AccessRequest",
    "AccessResolver",
    "AccessStrategy",
    "Principal",
    "TokenVerifier",
    "Verification",
    "candidate_secrets",
    "signing_secret",
]
