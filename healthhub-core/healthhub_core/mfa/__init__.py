"""
Multi-Factor Authentication
===========================
One-time code challenges issued after a correct password.
"""

# Re-export all public APIs
from .models import MFAChallenge
from .hashing import generate_code, hash_code, verify_code_hash, generate_salt
from .proof_token import ChallengeToken
from .store import ChallengeStore, InMemoryChallengeStore, RedisChallengeStore
from .challenge import MFAChallengeManager, CodeSender, log_only_sender

__all__ = [
    # Models
    "MFAChallenge",
    # Hashing
    "generate_code",
    "hash_code",
    "verify_code_hash",
    "generate_salt",
    # Tokens
    "ChallengeToken",
    # Stores
    "ChallengeStore",
    "InMemoryChallengeStore",
    "RedisChallengeStore",
    # Manager
    "MFAChallengeManager",
    "CodeSender",
    "log_only_sender",
]
