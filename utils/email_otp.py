import hmac
import secrets
from datetime import datetime, timedelta


def generate_email_code(length: int = 6) -> str:
    """Generate a random numeric code for email verification"""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def code_expiry(minutes: int, now: datetime = None) -> datetime:
    """Expiry timestamp (naive UTC) for a code issued at ``now``"""
    now = now or datetime.utcnow()
    return now + timedelta(minutes=minutes)


def is_expired(expires_at: datetime, now: datetime = None) -> bool:
    now = now or datetime.utcnow()
    return expires_at <= now


def codes_match(expected: str, submitted: str) -> bool:
    """Constant-time comparison of two codes"""
    return hmac.compare_digest(expected.encode(), submitted.encode())
