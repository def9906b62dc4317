"""
MFA Code Hashing
================
Challenges never store the code itself, only a salted SHA-256 digest.
"""

import hashlib
import hmac
import secrets


def generate_code(length: int = 6) -> str:
    """Random zero-padded numeric code of ``length`` digits."""
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def generate_salt() -> str:
    return secrets.token_hex(16)


def hash_code(code: str, salt: str) -> str:
    return hmac.new(salt.encode(), code.encode(), hashlib.sha256).hexdigest()


def verify_code_hash(code: str, salt: str, stored_hash: str) -> bool:
    # constant time
    return hmac.compare_digest(hash_code(code, salt), stored_hash)
