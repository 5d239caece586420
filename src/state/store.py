from __future__ import annotations

import logging
import os
import secrets
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from .crypto import KeyDerivation, RandomSource, StateCipher, StateDecryptError
from .models import States, StatesDocument


logger = logging.getLogger(__name__)

S3_SCHEME = "s3://"


class StateStoreError(RuntimeError):
    """Raised when the final state cannot be persisted."""


class Blob(Protocol):
    """Byte container holding the state file."""

    def read(self) -> Optional[bytes]:
        """Return the full contents, or None when nothing has been written yet."""
        ...

    def write(self, data: bytes) -> None:
        """Replace the contents durably before returning."""
        ...


class LocalFileBlob:
    """
    State file on the local filesystem.

    Writes go to a temporary file in the same directory which is flushed,
    fsynced and then renamed over the target, so readers see either the
    previous or the new contents, never a partial write.
    """

    def __init__(self, path: os.PathLike[str] | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> Optional[bytes]:
        try:
            return self._path.read_bytes()
        except FileNotFoundError:
            return None

    def write(self, data: bytes) -> None:
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        _fsync_dir(directory)


def _fsync_dir(directory: Path) -> None:
    # Directory fsync makes the rename durable; not supported everywhere (e.g. Windows).
    try:
        dir_fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@dataclass
class S3ObjectRef:
    bucket: str
    key: str


class S3Blob:
    """State file stored as a single S3 object."""

    def __init__(
        self,
        *,
        bucket: str,
        key: str,
        s3: Optional[object] = None,
        region_name: Optional[str] = None,
    ) -> None:
        if s3 is None:
            import boto3

            s3 = boto3.client("s3", region_name=region_name)
        self._s3 = s3
        self._obj = S3ObjectRef(bucket=bucket, key=key)

    @classmethod
    def from_url(cls, url: str, *, s3: Optional[object] = None) -> "S3Blob":
        rest = url[len(S3_SCHEME):] if url.startswith(S3_SCHEME) else url
        bucket, _, key = rest.partition("/")
        if not bucket or not key:
            raise ValueError(f"Invalid S3 state location: {url!r} (expected s3://bucket/key)")
        return cls(bucket=bucket, key=key, s3=s3)

    def read(self) -> Optional[bytes]:
        try:
            resp = self._s3.get_object(Bucket=self._obj.bucket, Key=self._obj.key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return None
            raise
        return resp["Body"].read()

    def write(self, data: bytes) -> None:
        # PutObject replaces the whole object atomically and returns once it is durable.
        self._s3.put_object(
            Bucket=self._obj.bucket,
            Key=self._obj.key,
            Body=data,
            ContentType="application/octet-stream",
        )


def blob_for(location: str, *, s3: Optional[object] = None) -> Blob:
    """Pick the blob backend for a `state_file` value."""
    if location.startswith(S3_SCHEME):
        return S3Blob.from_url(location, s3=s3)
    return LocalFileBlob(location)


class StateStore:
    """
    Persistence for `States`, sealed with AES-256-GCM when a passphrase is set.

    Usage
    - `load()` returns the stored States. A missing, truncated, tampered or
      undecodable blob yields an empty mapping, logged as a warning.
    - `save(states)` serializes, seals and replaces the blob. Any failure raises
      `StateStoreError`.

    With `passphrase=None` the canonical JSON is stored in clear. This is an
    explicit configuration choice, the file is still durable.

    The nonce source (`random`) is injected so tests can make sealing deterministic.
    """

    def __init__(
        self,
        blob: Blob,
        *,
        passphrase: Optional[str] = None,
        key_derivation: KeyDerivation = "pbkdf2",
        random: RandomSource = secrets.token_bytes,
    ) -> None:
        self._blob = blob
        self._cipher: Optional[StateCipher] = None
        if passphrase is not None:
            self._cipher = StateCipher.from_passphrase(passphrase, method=key_derivation, random=random)

    @classmethod
    def from_location(
        cls,
        location: str,
        *,
        passphrase: Optional[str] = None,
        key_derivation: KeyDerivation = "pbkdf2",
        random: RandomSource = secrets.token_bytes,
        s3: Optional[object] = None,
    ) -> "StateStore":
        return cls(
            blob_for(location, s3=s3),
            passphrase=passphrase,
            key_derivation=key_derivation,
            random=random,
        )

    @property
    def encrypted(self) -> bool:
        return self._cipher is not None

    # -------- Core operations --------
    def load(self) -> States:
        try:
            raw = self._blob.read()
        except (OSError, ClientError, BotoCoreError) as ex:
            logger.warning("Unable to read state (%s); starting from empty state", ex)
            return {}
        if raw is None:
            logger.info("No state found; starting from empty state")
            return {}

        payload = raw
        if self._cipher is not None:
            try:
                payload = self._cipher.open(raw)
            except StateDecryptError as ex:
                logger.warning("Failed to open sealed state (%s); starting from empty state", ex)
                return {}

        try:
            doc = StatesDocument.load_bytes(payload)
        except ValidationError as ex:
            logger.warning(
                "Stored state is not a valid mapping (%d validation error(s)); starting from empty state",
                ex.error_count(),
            )
            return {}
        return {key: dict(state) for key, state in doc.root.items()}

    def save(self, states: States) -> None:
        try:
            payload = StatesDocument(states).dump_bytes()
        except ValidationError as ex:
            raise StateStoreError(f"State is not serializable: {ex}") from ex
        if self._cipher is not None:
            payload = self._cipher.seal(payload)
        try:
            self._blob.write(payload)
        except (OSError, ClientError, BotoCoreError) as ex:
            raise StateStoreError(f"Failed to persist state: {ex}") from ex
        logger.info("Persisted state for %d action(s)%s", len(states), "" if self.encrypted else " (unencrypted)")


__all__ = [
    "Blob",
    "LocalFileBlob",
    "S3Blob",
    "StateStore",
    "StateStoreError",
    "blob_for",
]
