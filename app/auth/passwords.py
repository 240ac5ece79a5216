# app/auth/passwords.py
from passlib.context import CryptContext

# pbkdf2: geen native bcrypt backend nodig
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # onbekend/kapot hash formaat
        return False
