"""
Transport codec for metric frames.

A frame is a JSON-serialised MetricsSnapshot, optionally encrypted with
AES-256-CFB under a pre-shared key. Encrypted frames carry a fresh random
16-byte IV in front of the ciphertext.

The decoder accepts both plaintext and encrypted frames. Plaintext is
tried first, then decrypt-then-parse. Whether plaintext frames should
eventually be rejected is an operator decision (``accept_plaintext``);
both variants stay supported until then.
"""
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from pydantic import ValidationError

from shared.constants import IV_SIZE_BYTES, KEY_SIZE_BYTES
from shared.schemas import MetricsSnapshot

logger = logging.getLogger(__name__)


class DecodeError(Exception):
    """Raised when a frame cannot be turned into a snapshot."""


class FrameMode(str, Enum):
    """Frame variants, in the order the decoder attempts them."""
    PLAINTEXT = "plaintext"
    ENCRYPTED = "encrypted"


DECODE_ORDER: Tuple[FrameMode, ...] = (FrameMode.PLAINTEXT, FrameMode.ENCRYPTED)


@dataclass(frozen=True)
class DecodedFrame:
    """A successfully decoded frame and the variant it arrived as."""
    snapshot: MetricsSnapshot
    mode: FrameMode


def normalize_key(key: Union[str, bytes]) -> bytes:
    """
    Derive the 32-byte cipher key from the shared secret.

    Longer secrets are truncated, shorter ones are zero-padded. Agent and
    collector must both apply this exact rule.
    """
    key_bytes = key.encode("utf-8") if isinstance(key, str) else bytes(key)
    return key_bytes[:KEY_SIZE_BYTES].ljust(KEY_SIZE_BYTES, b"\x00")


def key_hint(key: Union[str, bytes]) -> str:
    """Printable key prefix for logs."""
    text = key.decode("utf-8", "replace") if isinstance(key, bytes) else key
    return f"{text[:6]}..."


def _cipher(key: bytes, iv: bytes) -> Cipher:
    return Cipher(algorithms.AES(normalize_key(key)), modes.CFB(iv))


def encrypt(data: bytes, key: Union[str, bytes]) -> bytes:
    """Encrypt ``data`` and prepend the random IV."""
    iv = os.urandom(IV_SIZE_BYTES)
    encryptor = _cipher(key, iv).encryptor()
    return iv + encryptor.update(data) + encryptor.finalize()


def decrypt(data: bytes, key: Union[str, bytes]) -> bytes:
    """
    Decrypt an IV-prefixed ciphertext.

    Raises:
        DecodeError: if the frame is shorter than the IV
    """
    if len(data) < IV_SIZE_BYTES:
        raise DecodeError(
            f"ciphertext too short: {len(data)} bytes, need at least {IV_SIZE_BYTES}"
        )
    iv, ciphertext = data[:IV_SIZE_BYTES], data[IV_SIZE_BYTES:]
    decryptor = _cipher(key, iv).decryptor()
    return decryptor.update(ciphertext) + decryptor.finalize()


def serialize(snapshot: MetricsSnapshot) -> bytes:
    """Serialise a snapshot to its field-tagged JSON form."""
    return snapshot.model_dump_json().encode("utf-8")


def parse_record(data: bytes) -> Optional[MetricsSnapshot]:
    """Parse a serialised snapshot, or return None if it is not one."""
    try:
        return MetricsSnapshot.model_validate_json(data)
    except (ValidationError, ValueError, UnicodeDecodeError):
        return None


def encode(snapshot: MetricsSnapshot, key: Optional[Union[str, bytes]] = None) -> bytes:
    """
    Encode a snapshot into a frame.

    Args:
        snapshot: Snapshot to send
        key: Shared secret; when None the frame is sent as plaintext
    """
    data = serialize(snapshot)
    if key is None:
        return data
    return encrypt(data, key)


def decode(
    frame: Union[bytes, str],
    key: Union[str, bytes],
    accept_plaintext: bool = True,
) -> DecodedFrame:
    """
    Decode a frame received from an agent.

    Args:
        frame: Raw frame payload (text frames are UTF-8 encoded first)
        key: Shared secret
        accept_plaintext: Whether the plaintext variant is attempted

    Returns:
        DecodedFrame with the snapshot and the variant that matched

    Raises:
        DecodeError: if no variant yields a snapshot
    """
    data = frame.encode("utf-8") if isinstance(frame, str) else bytes(frame)
    if not data:
        raise DecodeError("empty frame")

    for mode in DECODE_ORDER:
        if mode is FrameMode.PLAINTEXT:
            if not accept_plaintext:
                continue
            snapshot = parse_record(data)
        else:
            snapshot = parse_record(decrypt(data, key))

        if snapshot is not None:
            return DecodedFrame(snapshot=snapshot, mode=mode)
        logger.debug(f"Frame of {len(data)} bytes is not a {mode.value} record")

    raise DecodeError(f"garbage payload ({len(data)} bytes) under key {key_hint(key)}")
