"""
OpenPGP key handling.

This module provides:
- KeyMaterial: Handle over one parsed key, public or private
- KeyPair: Armored public/private halves produced by create_key_pair()
- resolve / resolve_all: Parse armored key text into KeyMaterial
- unlock / unlocked: Idempotent passphrase unlock of private keys
- create_key_pair: Ed25519 + Curve25519 identity generation
- remove_armor: Raw base64 body of a key without armor lines

Lock state of a private key:
- locked -> unlock(passphrase) -> unlocked
- unlocked -> unlock(passphrase) -> unlocked (no-op)
- locked -> unlock(wrong passphrase) -> locked (IncorrectPassphraseError)
- locked -> unlock(damaged key) -> locked (MalformedKeyError)
- unlocked -> lock() -> locked
"""

from __future__ import annotations

import base64
import logging
import re
import threading
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Union

from pgpy import PGPKey, PGPUID
from pgpy.constants import (
    CompressionAlgorithm,
    EllipticCurveOID,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)
from pgpy.errors import PGPDecryptionError

from .config import DEFAULT_CONFIG, EnvelopeConfig
from .errors import (
    IncorrectPassphraseError,
    InvalidArgumentError,
    KeyGenerationError,
    KeyParseError,
    MalformedKeyError,
)

logger = logging.getLogger(__name__)

# Loose shape check; the engine does not validate e-mail addresses.
_EMAIL_RE = re.compile(r"[^@\s<>]+@[^@\s<>]+")


# =============================================================================
# Key Handles
# =============================================================================


class KeyKind(Enum):
    """Whether a key handle carries secret material."""

    PUBLIC = "public"
    PRIVATE = "private"

    def __str__(self) -> str:
        return self.value


class KeyMaterial:
    """
    Handle over one parsed OpenPGP key.

    A private key parsed from armored text starts locked. unlock() keeps it
    unlocked until lock() is called or the handle is used as a context
    manager and the ``with`` block ends.

    One handle may be shared between threads. unlocked() blocks hold the
    secret material open; the last block to finish locks the key again
    unless the caller unlocked it with unlock(), and lock() waits for
    running blocks before it takes effect.
    """

    __slots__ = ("_key", "_unlocked", "_guard", "_holds", "_pinned")

    def __init__(self, key: PGPKey) -> None:
        self._key = key
        self._unlocked = ExitStack()
        self._guard = threading.RLock()
        self._holds = 0  # running unlocked() blocks
        self._pinned = False  # unlocked explicitly through unlock()

    @property
    def pgp_key(self) -> PGPKey:
        """The underlying PGPy key."""
        return self._key

    @property
    def public_pgp_key(self) -> PGPKey:
        """The public half of the underlying key."""
        return self._key if self._key.is_public else self._key.pubkey

    @property
    def kind(self) -> KeyKind:
        return KeyKind.PUBLIC if self._key.is_public else KeyKind.PRIVATE

    @property
    def is_locked(self) -> bool:
        """True for a private key whose secret material is not usable yet."""
        return not self._key.is_unlocked

    @property
    def fingerprint(self) -> str:
        return str(self._key.fingerprint).replace(" ", "")

    @property
    def key_id(self) -> str:
        return self._key.fingerprint.keyid

    @property
    def key_ids(self) -> FrozenSet[str]:
        """Key IDs of the primary key and all subkeys."""
        return frozenset([self.key_id, *self._key.subkeys.keys()])

    @property
    def name(self) -> Optional[str]:
        uid = self._primary_uid()
        return uid.name if uid is not None else None

    @property
    def email(self) -> Optional[str]:
        uid = self._primary_uid()
        return uid.email if uid is not None else None

    @property
    def armored(self) -> str:
        return str(self._key)

    def lock(self) -> None:
        """
        Discard unlocked secret material. No-op when already locked.

        While unlocked() blocks are running on this handle, the key is locked
        when the last of them ends.
        """
        with self._guard:
            self._pinned = False
            if self._holds == 0:
                self._unlocked.close()

    def _primary_uid(self) -> Optional[PGPUID]:
        userids = self._key.userids
        return userids[0] if userids else None

    def _unlock(self, passphrase: str) -> None:
        self._unlocked.enter_context(self._key.unlock(passphrase))

    def __enter__(self) -> KeyMaterial:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.lock()

    def __repr__(self) -> str:
        state = ""
        if self.kind is KeyKind.PRIVATE:
            state = ", locked" if self.is_locked else ", unlocked"
        return f"KeyMaterial({self.kind}, {self.fingerprint}{state})"


KeyInput = Union[str, KeyMaterial]


@dataclass(frozen=True)
class KeyPair:
    """Armored halves of one generated identity."""

    public_key: str
    private_key: str  # protected with the passphrase given at generation

    def to_dict(self) -> Dict[str, str]:
        return {"publicKey": self.public_key, "privateKey": self.private_key}


# =============================================================================
# Key Resolver
# =============================================================================


def resolve(armored: KeyInput) -> KeyMaterial:
    """
    Parse armored key text into a KeyMaterial handle.

    When the text holds several keys, the first one is used. A KeyMaterial
    argument is returned as-is.

    Args:
        armored: Armored public or private key

    Returns:
        KeyMaterial for the first key in the text

    Raises:
        KeyParseError: If the text is not a well-formed armored key
    """
    if isinstance(armored, KeyMaterial):
        return armored
    if not isinstance(armored, (str, bytes, bytearray)):
        raise KeyParseError(
            f"Expected armored key text, got {type(armored).__name__}"
        )

    try:
        key, _ = PGPKey.from_blob(armored)
        material = KeyMaterial(key)
        fingerprint = material.fingerprint
    except Exception as e:
        raise KeyParseError(f"Failed to parse armored key: {e}") from e

    logger.debug("Resolved %s key %s", material.kind, fingerprint)
    return material


def resolve_all(armored_texts: Iterable[KeyInput]) -> List[KeyMaterial]:
    """
    Parse several armored keys, preserving order.

    All-or-nothing: the first key that fails to parse aborts the batch.

    Raises:
        KeyParseError: Naming the index of the first unparsable key
    """
    if isinstance(armored_texts, (str, bytes, KeyMaterial)):
        raise InvalidArgumentError("Expected a list of keys, got a single key")

    keys = []
    for index, armored in enumerate(armored_texts):
        try:
            keys.append(resolve(armored))
        except KeyParseError as e:
            raise KeyParseError(f"Key at index {index}: {e}") from e
    return keys


# =============================================================================
# Passphrase Unlock Guard
# =============================================================================


def _secret_packets(key: KeyMaterial) -> list:
    pgp_key = key.pgp_key
    return [pgp_key._key] + [sub._key for sub in pgp_key.subkeys.values()]


def _protection_problem(key: KeyMaterial) -> Optional[str]:
    """Describe why the secret packets cannot be unprotected, or None."""
    for packet in _secret_packets(key):
        if not packet.protected:
            continue
        cipher = packet.keymaterial.s2k.encalg
        try:
            supported = cipher.is_supported
        except NotImplementedError:
            supported = False
        if not supported:
            return f"secret material is protected with unsupported cipher {cipher!r}"
    return None


def _opens(packet, passphrase: str) -> bool:
    # One packet at a time, the same steps PGPKey.unlock() takes for each.
    try:
        packet.unprotect(passphrase)
    except PGPDecryptionError:
        return False
    finally:
        packet.keymaterial.clear()
    return True


def _damaged(key: KeyMaterial, passphrase: str) -> bool:
    """
    True when the passphrase opens some secret packets of the key but not all.

    The engine checks each packet with a SHA-1 over its decrypted material,
    so a damaged packet and a wrong passphrase fail the same way. A single
    packet gives no way to tell them apart.
    """
    opened = [_opens(p, passphrase) for p in _secret_packets(key) if p.protected]
    return any(opened) and not all(opened)


def _unlock_locked(key: KeyMaterial, passphrase: str) -> None:
    # Caller holds key._guard and has checked that the key is locked.
    if not isinstance(passphrase, (str, bytes)):
        raise InvalidArgumentError("Passphrase must be a string")

    problem = _protection_problem(key)
    if problem is not None:
        logger.warning("Malformed key %s: %s", key.fingerprint, problem)
        raise MalformedKeyError(f"Malformed key {key.fingerprint}: {problem}")

    try:
        key._unlock(passphrase)
    except PGPDecryptionError as e:
        failure = e
    except Exception as e:
        logger.warning("Could not unlock key %s: %s", key.fingerprint, e)
        raise MalformedKeyError(
            f"Could not unlock key {key.fingerprint}: {e}"
        ) from e
    else:
        logger.debug("Unlocked key %s", key.fingerprint)
        return

    try:
        damaged = _damaged(key, passphrase)
    except Exception as e:
        raise MalformedKeyError(
            f"Could not unlock key {key.fingerprint}: {e}"
        ) from e

    if damaged:
        logger.warning("Damaged secret material in key %s", key.fingerprint)
        raise MalformedKeyError(
            f"Secret material of key {key.fingerprint} is damaged"
        ) from failure

    logger.warning("Incorrect passphrase for key %s", key.fingerprint)
    raise IncorrectPassphraseError(
        f"Incorrect passphrase for key {key.fingerprint}"
    ) from failure


def unlock(key: KeyMaterial, passphrase: str) -> KeyMaterial:
    """
    Unlock a private key with its passphrase.

    Unlocking a key that is already unlocked succeeds without touching it,
    so one resolved key can be reused across operations. Nothing is retried.
    The key stays unlocked until lock() is called.

    Args:
        key: Private key handle
        passphrase: Passphrase protecting the key

    Returns:
        The same handle, now unlocked

    Raises:
        InvalidArgumentError: If the key is public or the passphrase is not text
        IncorrectPassphraseError: If the passphrase is wrong (key stays locked)
        MalformedKeyError: If the secret material is damaged or uses an
            unsupported protection cipher
    """
    if key.kind is KeyKind.PUBLIC:
        raise InvalidArgumentError(
            f"Key {key.fingerprint} is a public key and cannot be unlocked"
        )

    with key._guard:
        if key.is_locked:
            _unlock_locked(key, passphrase)
        else:
            logger.debug("Key %s already unlocked", key.fingerprint)
        key._pinned = True
    return key


@contextmanager
def unlocked(key: KeyMaterial, passphrase: str) -> Iterator[KeyMaterial]:
    """
    Keep a private key unlocked for the duration of a ``with`` block.

    Blocks on one handle may overlap, in one thread or several. The key is
    locked again when the last block ends, unless the caller had unlocked it
    with unlock(); such a key stays unlocked.
    """
    if key.kind is KeyKind.PUBLIC:
        raise InvalidArgumentError(
            f"Key {key.fingerprint} is a public key and cannot be unlocked"
        )

    with key._guard:
        if key.is_locked:
            _unlock_locked(key, passphrase)
        key._holds += 1
    try:
        yield key
    finally:
        with key._guard:
            key._holds -= 1
            if key._holds == 0 and not key._pinned:
                key._unlocked.close()


# =============================================================================
# Keypair Generation
# =============================================================================


def create_key_pair(
    name: str,
    email: str,
    passphrase: str,
    config: Optional[EnvelopeConfig] = None,
) -> KeyPair:
    """
    Generate a new passphrase-protected identity.

    The primary key is Ed25519 (certify + sign) carrying the user ID
    ``name <email>``; a Curve25519 subkey handles encryption.

    Args:
        name: Name of the key owner
        email: E-mail address of the key owner
        passphrase: Passphrase protecting the private key
        config: Protection cipher/hash settings (defaults to DEFAULT_CONFIG)

    Returns:
        KeyPair with armored public key and armored, protected private key

    Raises:
        KeyGenerationError: If an identity field is invalid or the engine fails
    """
    config = config or DEFAULT_CONFIG

    if not isinstance(name, str) or not name.strip():
        raise KeyGenerationError("Key owner name must not be empty")
    if not isinstance(email, str) or not _EMAIL_RE.fullmatch(email):
        raise KeyGenerationError(f"Invalid e-mail address: {email!r}")
    if not isinstance(passphrase, str) or not passphrase:
        raise KeyGenerationError("A passphrase is required to protect the private key")

    try:
        primary = PGPKey.new(PubKeyAlgorithm.EdDSA, EllipticCurveOID.Ed25519)
        primary.add_uid(
            PGPUID.new(name.strip(), email=email),
            usage={KeyFlags.Certify, KeyFlags.Sign},
            primary=True,
            hashes=[
                HashAlgorithm.SHA512,
                HashAlgorithm.SHA384,
                HashAlgorithm.SHA256,
            ],
            ciphers=[
                SymmetricKeyAlgorithm.AES256,
                SymmetricKeyAlgorithm.AES192,
                SymmetricKeyAlgorithm.AES128,
            ],
            compression=[CompressionAlgorithm.Uncompressed],
        )

        subkey = PGPKey.new(PubKeyAlgorithm.ECDH, EllipticCurveOID.Curve25519)
        primary.add_subkey(
            subkey,
            usage={KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage},
        )

        primary.protect(
            passphrase,
            config.key_protection_cipher,
            config.key_protection_hash,
        )
        key_pair = KeyPair(public_key=str(primary.pubkey), private_key=str(primary))
    except Exception as e:
        raise KeyGenerationError(f"Could not create keypair: {e}") from e

    logger.debug("Generated key %s", str(primary.fingerprint).replace(" ", ""))
    return key_pair


# =============================================================================
# Armor Removal
# =============================================================================


def remove_armor(key: KeyInput, passphrase: Optional[str] = None) -> str:
    """
    Return the raw key body as one base64 line.

    Header, armor headers, blank lines, checksum and footer are dropped.

    For a private key the passphrase only gates the call: the key must unlock
    with it, but the returned body is still the passphrase-protected secret
    key packet, never unprotected secret material. Decoding the body and
    re-armoring it gives back a key that needs the same passphrase.

    Raises:
        KeyParseError: If ``key`` is not a well-formed armored key
        UnlockError: If a private key cannot be unlocked with ``passphrase``
        InvalidArgumentError: If a private key is given without a passphrase
    """
    material = resolve(key)

    if material.kind is KeyKind.PRIVATE:
        with unlocked(material, passphrase):
            body = bytes(material.pgp_key)
    else:
        body = bytes(material.pgp_key)

    return base64.b64encode(body).decode("ascii")
