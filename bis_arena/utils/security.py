import os
import base64
import binascii
import hashlib
import secrets

SALT_LEN = 32
SCRYPT_N = 2**14  # CPU/memory cost factor
SCRYPT_R = 8      # block size
SCRYPT_P = 1      # parallelization factor

def hash_password(password: str) -> str:
    if not isinstance(password, str) or not password:
        raise ValueError("Password must be a non empty string")
    salt = os.urandom(SALT_LEN)
    try:
        key = hashlib.scrypt(password.encode(encoding = 'utf-8', errors = 'strict'), salt = salt, n = SCRYPT_N, r = SCRYPT_R, p = SCRYPT_P)
        return base64.b64encode(salt + key).decode(encoding = 'utf-8')
    except ValueError as e:
        raise ValueError(f"Hashing error: {e}") from e

def verify_password(hash: str, non_hash: str) -> bool:
    if not hash or not isinstance(non_hash, str):
        return False
    try:
        data = base64.b64decode(hash.encode(encoding = 'utf-8', errors = 'strict'), validate = True)
    except (binascii.Error, UnicodeEncodeError):
        return False
    salt, stored_key = data[:SALT_LEN], data[SALT_LEN:]
    try:
        encoded = non_hash.encode(encoding = 'utf-8', errors = 'strict')
    except UnicodeEncodeError as e:
        raise ValueError(f"Password is not valid UTF-8: {e}") from e
    new_key = hashlib.scrypt(encoded, salt = salt, n = SCRYPT_N, r = SCRYPT_R, p = SCRYPT_P)
    return secrets.compare_digest(new_key, stored_key)
