from __future__ import annotations

import secrets
from typing import Callable, Literal

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


KEY_LEN = 32  # AES-256
NONCE_LEN = 12  # 96-bit GCM nonce
TAG_LEN = 16

# Fixed application salt: the file format carries no salt, so the passphrase alone
# must reproduce the key on the next run.
_KDF_SALT = b"action-relay/state/v1"
_KDF_ITERATIONS = 200_000

KeyDerivation = Literal["pbkdf2", "pad"]
RandomSource = Callable[[int], bytes]


class StateDecryptError(ValueError):
    """Sealed payload is truncated or failed authentication."""


def derive_key(passphrase: str, *, method: KeyDerivation = "pbkdf2") -> bytes:
    """Turn the configured passphrase into a 32-byte AES key.

    - `pbkdf2`: PBKDF2-HMAC-SHA256 over the passphrase.
    - `pad`: UTF-8 passphrase right-padded with spaces and truncated to 32 bytes.
      Weak; kept so state files written with that scheme stay readable.
    """
    if method == "pad":
        return (passphrase + " " * KEY_LEN).encode("utf-8")[:KEY_LEN]
    if method == "pbkdf2":
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LEN,
            salt=_KDF_SALT,
            iterations=_KDF_ITERATIONS,
        )
        return kdf.derive(passphrase.encode("utf-8"))
    raise ValueError(f"Unknown key derivation: {method!r}")


class StateCipher:
    """
    AES-256-GCM sealing of the serialized state.

    Sealed layout: `nonce (12 bytes) || ciphertext || tag (16 bytes)`, empty AAD.
    A fresh nonce is drawn from `random` on every `seal()`.
    """

    def __init__(self, key: bytes, *, random: RandomSource = secrets.token_bytes) -> None:
        if len(key) != KEY_LEN:
            raise ValueError(f"key must be {KEY_LEN} bytes")
        self._aead = AESGCM(key)
        self._random = random

    @classmethod
    def from_passphrase(
        cls,
        passphrase: str,
        *,
        method: KeyDerivation = "pbkdf2",
        random: RandomSource = secrets.token_bytes,
    ) -> "StateCipher":
        return cls(derive_key(passphrase, method=method), random=random)

    def seal(self, plaintext: bytes) -> bytes:
        nonce = self._random(NONCE_LEN)
        if len(nonce) != NONCE_LEN:
            raise ValueError(f"random source returned {len(nonce)} bytes, expected {NONCE_LEN}")
        return nonce + self._aead.encrypt(nonce, plaintext, None)

    def open(self, sealed: bytes) -> bytes:
        if len(sealed) < NONCE_LEN:
            raise StateDecryptError("Less than nonce length")
        nonce, body = sealed[:NONCE_LEN], sealed[NONCE_LEN:]
        try:
            return self._aead.decrypt(nonce, body, None)
        except InvalidTag as ex:
            raise StateDecryptError("Failed to authenticate sealed state") from ex


__all__ = [
    "KEY_LEN",
    "NONCE_LEN",
    "TAG_LEN",
    "KeyDerivation",
    "RandomSource",
    "StateCipher",
    "StateDecryptError",
    "derive_key",
]
