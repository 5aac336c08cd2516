from typing import Any, Dict, Optional

import jwt
from passlib.context import CryptContext

# pbkdf2_sha256 is primary; bcrypt variants are kept so older hashes still verify.
pwd_context = CryptContext(
    schemes=["pbkdf2_sha256", "bcrypt_sha256", "bcrypt"],
    deprecated="auto",
)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: Optional[str], hashed_password: Optional[str]) -> bool:
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # stored value is not a recognised hash
        return False


def decode_access_token(token: str, secret_key: str, algorithm: str) -> Dict[str, Any]:
    return jwt.decode(
        token,
        secret_key,
        algorithms=[algorithm],
        options={"require": ["sub", "exp"]},
    )


def get_subject(token: str, secret_key: str, algorithm: str) -> Optional[str]:
    """Return the caller id carried by a bearer token, or None if it is unusable."""
    try:
        payload = decode_access_token(token, secret_key, algorithm)
    except jwt.PyJWTError:
        return None
    subject = payload.get("sub")
    return str(subject) if subject is not None else None
