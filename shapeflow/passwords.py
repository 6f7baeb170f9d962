from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

# Argon2id with library defaults. A fresh random salt is generated on every
# call to hash(), so hashing the same password twice gives different strings.
ph = PasswordHasher()

# Verified against when the email is unknown so that path costs the same
# as a wrong password.
_DUMMY_HASH = ph.hash("shapeflow-dummy-password")


def hash_password(password: str) -> str:
    """
    Hash password using Argon2id.

    Returns hash string that includes algorithm parameters and salt.
    Format: $argon2id$v=19$m=65536,t=3,p=4$salt$hash

    Raises ValueError for an empty password.
    """
    if not password:
        raise ValueError("Password must not be empty")
    return ph.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    """
    Verify password against stored hash.

    Uses constant-time comparison internally to prevent timing attacks.
    A wrong password is False, never an exception; ValueError is raised
    only for empty input or a hash that is not an Argon2 hash.
    """
    if not password_hash or not password:
        raise ValueError("Password and hash must not be empty")
    try:
        return ph.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except InvalidHashError as exc:
        raise ValueError("Malformed password hash") from exc
    except VerificationError:
        return False


def needs_rehash(password_hash: str) -> bool:
    """True when the hash was made with older cost parameters."""
    return ph.check_needs_rehash(password_hash)


def burn_verification(password: str) -> None:
    """Spend one verification's worth of time without a real user."""
    try:
        ph.verify(_DUMMY_HASH, password)
    except VerificationError:
        pass
