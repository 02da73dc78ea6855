"""
User utilities -- invite token generation and nickname handling.
"""

import random
import re

# Excludes I, O, i, l, o, 0 and 1
TOKEN_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789!@#$%&*"
TOKEN_LENGTH = 6

GRANTABLE_ROLES = ("tester", "user")

NICKNAME_MAX_LENGTH = 32
_NICKNAME_RE = re.compile(r"^[a-z0-9_.\-àèéìòù]+$")


def generate_invite_token(length: int = TOKEN_LENGTH) -> str:
    """Random invite token like "Hk7#qP". Not cryptographic; tokens are low value and single use."""
    return "".join(random.choice(TOKEN_ALPHABET) for _ in range(length))


def normalize_nickname(nickname: str) -> str:
    return (nickname or "").strip().lower()


def nickname_error(nickname: str):
    """Return why a (normalized) nickname is unusable, or None."""
    if not nickname:
        return "Nickname required"
    if len(nickname) > NICKNAME_MAX_LENGTH:
        return f"Nickname must be at most {NICKNAME_MAX_LENGTH} characters"
    if not _NICKNAME_RE.match(nickname):
        return "Nickname may only contain letters, digits, '.', '_' and '-'"
    return None
