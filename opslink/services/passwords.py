import hashlib

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False


def digest_secret(secret: str) -> str:
    """Stable digest for high-entropy one-time secrets stored at rest."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()
