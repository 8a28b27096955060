import hmac
import secrets


def generate_verification_code(length: int = 6) -> str:
    """Generate a fixed-length numeric code with a CSPRNG (leading zeros kept)."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def secrets_match(provided: str | None, expected: str | None) -> bool:
    """Constant-time comparison of a provided secret against the configured one.

    An unset expected secret never matches, so a missing configuration fails
    closed instead of admitting every caller.
    """
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()
