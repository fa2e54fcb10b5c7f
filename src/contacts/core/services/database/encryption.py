"""Whole-file encryption for the record store.

Layout of a store file::

    b"CNTX" | format (1 byte) | kdf iterations (4 bytes, big endian) | salt (16 bytes) | Fernet token

The Fernet key is derived from the passphrase with PBKDF2-HMAC-SHA256. The
token wraps the complete serialized SQLite database image.
"""

import base64
import hmac
import os
import secrets
import struct
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from loguru import logger

from src.contacts.core.exceptions import AccessDeniedError

MAGIC = b"CNTX"
FORMAT_VERSION = 1
SALT_SIZE = 16
_HEADER = struct.Struct(f">4sBI{SALT_SIZE}s")


def derive_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
    """Derive a urlsafe-base64 Fernet key from a passphrase."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


class StoreCipher:
    """Encrypts and decrypts store images with a key bound to one salt."""

    def __init__(self, passphrase: str, salt: bytes, iterations: int):
        if len(salt) != SALT_SIZE:
            raise ValueError(f"Salt must be {SALT_SIZE} bytes")
        self.salt = salt
        self.iterations = iterations
        self._key = derive_key(passphrase, salt, iterations)
        self._fernet = Fernet(self._key)

    @classmethod
    def for_new_file(cls, passphrase: str, iterations: int) -> "StoreCipher":
        return cls(passphrase, secrets.token_bytes(SALT_SIZE), iterations)

    def matches(self, passphrase: str) -> bool:
        """Check whether ``passphrase`` derives this cipher's key."""
        return hmac.compare_digest(
            derive_key(passphrase, self.salt, self.iterations), self._key
        )

    def encrypt(self, image: bytes) -> bytes:
        header = _HEADER.pack(MAGIC, FORMAT_VERSION, self.iterations, self.salt)
        return header + self._fernet.encrypt(image)

    def decrypt(self, token: bytes) -> bytes:
        try:
            return self._fernet.decrypt(token)
        except InvalidToken as e:
            raise AccessDeniedError(
                "Unable to decrypt store: wrong passphrase or corrupted file"
            ) from e


def read_store_file(path: Path, passphrase: str) -> tuple[bytes, StoreCipher]:
    """Read and decrypt a store file.

    Args:
        path: Location of the encrypted store file
        passphrase: Secret the file was written with

    Returns:
        Tuple of (decrypted database image, cipher bound to the file's salt)

    Raises:
        AccessDeniedError: If the file is not a store file or cannot be decrypted
    """
    content = path.read_bytes()
    if len(content) < _HEADER.size:
        raise AccessDeniedError(f"Store file {path} is truncated")

    magic, fmt, iterations, salt = _HEADER.unpack_from(content)
    if magic != MAGIC or fmt != FORMAT_VERSION:
        raise AccessDeniedError(f"File {path} is not a contacts store")

    cipher = StoreCipher(passphrase, salt, iterations)
    image = cipher.decrypt(content[_HEADER.size:])
    logger.debug("Decrypted store file {} ({} bytes)", path, len(image))
    return image, cipher


def write_store_file(path: Path, image: bytes, cipher: StoreCipher) -> None:
    """Encrypt ``image`` and atomically replace the store file with it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "wb") as f:
        f.write(cipher.encrypt(image))
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)
    logger.debug("Wrote encrypted store file {} ({} bytes)", path, len(image))
