"""ContentVault — authenticated encryption at rest for flagged content.

Key handling:
  - A random 32-byte master secret and 32-byte salt are generated once per
    project and stored in ``<state>/.encryption-key`` (mode 0600, directory
    0700).
  - The sealing key is derived with PBKDF2-HMAC-SHA256 and held in memory
    only; :meth:`lock` drops it.

Sealed form: ``sandgate:enc:v1:`` followed by base64 JSON of an
:class:`EncryptedPayload`.  The prefix lets callers recognise sealed
content without attempting to decrypt it.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import secrets
import stat
from datetime import datetime, timezone
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import ValidationError

from sandgate.errors import EncryptionFailureError
from sandgate.security.models import EncryptedPayload, VaultStatus

logger = logging.getLogger(__name__)

SEALED_PREFIX = "sandgate:enc:v1:"
ALGORITHM = "AES-256-GCM"
KDF_NAME = "PBKDF2-HMAC-SHA256"
KEY_LENGTH = 32
SALT_LENGTH = 32
NONCE_LENGTH = 12
KEY_FILE_NAME = ".encryption-key"

_AAD = SEALED_PREFIX.encode("ascii")


def is_sealed(data: str) -> bool:
    """Return ``True`` if *data* carries the sealed-content tag."""
    return data.startswith(SEALED_PREFIX)


def derive_key(master_secret: bytes, salt: bytes, iterations: int) -> bytes:
    """Derive the 256-bit sealing key with PBKDF2-HMAC-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(master_secret)


class ContentVault:
    """Seal and unseal text with a project-local key."""

    def __init__(self, state_dir: str | Path, *, iterations: int = 200_000) -> None:
        self._state_dir = Path(state_dir)
        self._key_file = self._state_dir / KEY_FILE_NAME
        self._iterations = iterations
        self._key: bytes | None = None
        self._created_at: datetime | None = None

    @property
    def key_file(self) -> Path:
        return self._key_file

    @property
    def is_initialized(self) -> bool:
        return self._key is not None

    def initialize(self) -> None:
        """Load the key material, generating it on first use.

        Raises:
            EncryptionFailureError: If the key file exists but is unusable.
        """
        if self._key is not None:
            return
        self._ensure_state_dir()
        if self._key_file.exists():
            self._load_key_material()
        else:
            self._generate_key_material()

    def lock(self) -> None:
        """Forget the derived key."""
        self._key = None

    # ------------------------------------------------------------------
    # Sealing
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: str) -> str:
        """Seal *plaintext* and return the tagged, serialised payload."""
        key = self._require_key()
        nonce = os.urandom(NONCE_LENGTH)
        try:
            ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), _AAD)
        except (ValueError, OverflowError) as exc:
            raise EncryptionFailureError(f"Failed to encrypt data: {exc}") from exc

        payload = EncryptedPayload(
            algorithm=ALGORITHM,
            created_at=datetime.now(timezone.utc),
            nonce=base64.b64encode(nonce).decode("ascii"),
            ciphertext=base64.b64encode(ciphertext).decode("ascii"),
        )
        blob = base64.urlsafe_b64encode(payload.model_dump_json().encode("utf-8")).decode("ascii")
        return SEALED_PREFIX + blob

    def decrypt(self, sealed: str) -> str:
        """Open a payload produced by :meth:`encrypt`.

        Raises:
            EncryptionFailureError: On a missing tag, malformed payload,
                wrong key, or tampered ciphertext.
        """
        key = self._require_key()
        payload = self.parse_payload(sealed)
        if payload.algorithm != ALGORITHM:
            raise EncryptionFailureError(f"Unsupported algorithm: {payload.algorithm}")
        try:
            nonce = base64.b64decode(payload.nonce, validate=True)
            ciphertext = base64.b64decode(payload.ciphertext, validate=True)
            plaintext = AESGCM(key).decrypt(nonce, ciphertext, _AAD)
        except (binascii.Error, ValueError) as exc:
            raise EncryptionFailureError(f"Malformed sealed payload: {exc}") from exc
        except InvalidTag as exc:
            raise EncryptionFailureError("Authentication failed: wrong key or tampered data") from exc
        return plaintext.decode("utf-8")

    @staticmethod
    def is_encrypted(data: str) -> bool:
        return is_sealed(data)

    @staticmethod
    def parse_payload(sealed: str) -> EncryptedPayload:
        """Decode the metadata envelope without decrypting."""
        if not is_sealed(sealed):
            raise EncryptionFailureError("Data is not a sealed payload")
        try:
            raw = base64.urlsafe_b64decode(sealed[len(SEALED_PREFIX):].encode("ascii"))
            return EncryptedPayload.model_validate_json(raw)
        except (binascii.Error, ValueError, ValidationError) as exc:
            raise EncryptionFailureError(f"Malformed sealed payload: {exc}") from exc

    def status(self) -> VaultStatus:
        return VaultStatus(
            initialized=self.is_initialized,
            key_file=str(self._key_file),
            algorithm=ALGORITHM,
            kdf=KDF_NAME,
            iterations=self._iterations,
            created_at=self._created_at,
        )

    # ------------------------------------------------------------------
    # Key material
    # ------------------------------------------------------------------

    def _require_key(self) -> bytes:
        if self._key is None:
            raise EncryptionFailureError("Encryption not initialized")
        return self._key

    def _ensure_state_dir(self) -> None:
        self._state_dir.mkdir(parents=True, exist_ok=True)
        if os.name != "nt":
            os.chmod(self._state_dir, 0o700)

    def _generate_key_material(self) -> None:
        master_secret = secrets.token_bytes(KEY_LENGTH)
        salt = secrets.token_bytes(SALT_LENGTH)
        created_at = datetime.now(timezone.utc)
        record = {
            "version": 1,
            "algorithm": ALGORITHM,
            "kdf": KDF_NAME,
            "iterations": self._iterations,
            "salt": base64.b64encode(salt).decode("ascii"),
            "master_secret": base64.b64encode(master_secret).decode("ascii"),
            "created_at": created_at.isoformat(),
        }
        try:
            fd = os.open(self._key_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(record, fh, indent=2)
        except OSError as exc:
            raise EncryptionFailureError(f"Cannot write key file: {exc}") from exc

        self._key = derive_key(master_secret, salt, self._iterations)
        self._created_at = created_at
        logger.info("New encryption key generated at %s", self._key_file)

    def _load_key_material(self) -> None:
        if os.name != "nt":
            mode = stat.S_IMODE(self._key_file.stat().st_mode)
            if mode & 0o077:
                logger.warning("Key file %s had permissive mode %o; restricting to 0600", self._key_file, mode)
                os.chmod(self._key_file, 0o600)
        try:
            record = json.loads(self._key_file.read_text(encoding="utf-8"))
            master_secret = base64.b64decode(record["master_secret"], validate=True)
            salt = base64.b64decode(record["salt"], validate=True)
            iterations = int(record["iterations"])
            created_at = datetime.fromisoformat(record["created_at"])
        except (OSError, ValueError, KeyError, TypeError, binascii.Error) as exc:
            raise EncryptionFailureError(f"Invalid key file {self._key_file}: {exc}") from exc

        if len(master_secret) != KEY_LENGTH or len(salt) != SALT_LENGTH:
            raise EncryptionFailureError(f"Invalid key material in {self._key_file}")

        self._iterations = iterations
        self._key = derive_key(master_secret, salt, iterations)
        self._created_at = created_at
        logger.debug("Encryption key loaded from %s", self._key_file)
