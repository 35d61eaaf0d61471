from pwdlib import PasswordHash

from armory.errors import ValidationError

MIN_PASSWORD_LENGTH = 8

password_hash = PasswordHash.recommended()


def check_password_policy(raw_password: str | None) -> str:
    if not raw_password or len(raw_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    return raw_password


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Returns whether the password matches and, when the stored hash uses outdated
    parameters, a replacement hash to persist."""
    return password_hash.verify_and_update(raw_password, hashed_password)
