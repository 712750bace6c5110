"""
Multi-recipient envelopes with detached signatures.

This module provides:
- Envelope: Armored ciphertext paired with an armored detached signature
- SignatureCheck / VerificationResult: Per-key signature outcomes
- VerifiedEnvelope: Decrypted plaintext with its signature outcomes
- encrypt / encrypt_and_sign: Envelope builder
- decrypt / decrypt_and_verify: Envelope opener
- verify: Signature check against plaintext the caller already holds

Signatures are made over the plaintext, not the ciphertext. An envelope's
signature therefore stays valid when its data is decrypted and re-encrypted
for other recipients:

    verified = decrypt_and_verify(env, signers, my_key, my_passphrase)
    forwarded = env.with_data(encrypt(verified.data, [their_key]))
"""

from __future__ import annotations

import json
import logging
import re
from contextlib import ExitStack
from dataclasses import dataclass, replace
from typing import (
    Any,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from pgpy import PGPMessage, PGPSignature
from pgpy.constants import CompressionAlgorithm

from .config import DEFAULT_CONFIG, EnvelopeConfig
from .errors import (
    DecryptionError,
    EncryptionError,
    InvalidArgumentError,
    SerializationError,
    VerificationError,
)
from .keys import KeyInput, KeyKind, KeyMaterial, resolve, resolve_all, unlocked

logger = logging.getLogger(__name__)

Plaintext = Union[str, bytes]

_SIGNATURE_BLOCK_RE = re.compile(
    r"-----BEGIN PGP SIGNATURE-----.*?-----END PGP SIGNATURE-----",
    re.DOTALL,
)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class Envelope:
    """
    Encrypted data with a detached signature.

    ``signature`` holds one armored signature block per signer, in signer
    order.
    """

    data: str
    signature: str

    def with_data(self, data: str) -> Envelope:
        """Return a copy carrying the same signature over new ciphertext."""
        return replace(self, data=data)

    def to_dict(self) -> Dict[str, str]:
        return {"data": self.data, "signature": self.signature}

    @classmethod
    def from_dict(cls, value: Mapping[str, Any]) -> Envelope:
        """
        Build an envelope from a ``{"data": ..., "signature": ...}`` mapping.

        Raises:
            SerializationError: If a field is missing or not a string
        """
        try:
            data = value["data"]
            signature = value["signature"]
        except (KeyError, TypeError) as e:
            raise SerializationError(f"Invalid envelope: missing field {e}") from e
        if not isinstance(data, str) or not isinstance(signature, str):
            raise SerializationError("Invalid envelope: fields must be strings")
        return cls(data=data, signature=signature)

    def to_json(self) -> str:
        """Serialize envelope to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> Envelope:
        """Deserialize envelope from JSON string."""
        try:
            value = json.loads(json_str)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Failed to deserialize envelope: {e}") from e
        return cls.from_dict(value)


@dataclass(frozen=True)
class SignatureCheck:
    """Outcome of checking a signature against one public key."""

    valid: bool
    fingerprint: str
    key_id: str


@dataclass(frozen=True)
class VerificationResult:
    """
    Signature outcomes, one per public key, in the order the keys were given.
    """

    checks: Tuple[SignatureCheck, ...]

    def __len__(self) -> int:
        return len(self.checks)

    def __iter__(self) -> Iterator[SignatureCheck]:
        return iter(self.checks)

    def __getitem__(self, index: int) -> SignatureCheck:
        return self.checks[index]

    @property
    def all_valid(self) -> bool:
        """True when every supplied key produced a valid signature."""
        return bool(self.checks) and all(check.valid for check in self.checks)

    @property
    def valid_fingerprints(self) -> List[str]:
        return [check.fingerprint for check in self.checks if check.valid]


@dataclass(frozen=True)
class VerifiedEnvelope:
    """Decrypted envelope contents."""

    data: Plaintext
    signatures: VerificationResult


EnvelopeInput = Union[Envelope, Mapping[str, Any]]


# =============================================================================
# Internal Helpers
# =============================================================================


def _as_envelope(envelope: EnvelopeInput) -> Envelope:
    if isinstance(envelope, Envelope):
        return envelope
    if isinstance(envelope, Mapping):
        return Envelope.from_dict(envelope)
    raise InvalidArgumentError(
        f"Expected an Envelope, got {type(envelope).__name__}"
    )


def _new_message(plaintext: Plaintext) -> PGPMessage:
    """Wrap plaintext in an uncompressed literal message.

    Text is stored as UTF-8 ('u') and comes back as str after decryption;
    bytes are stored as binary ('b') and come back as bytes.
    """
    if isinstance(plaintext, str):
        fmt = "u"
    elif isinstance(plaintext, (bytes, bytearray)):
        fmt = "b"
        plaintext = bytes(plaintext)
    else:
        raise EncryptionError(
            f"Plaintext must be str or bytes, got {type(plaintext).__name__}"
        )
    return PGPMessage.new(
        plaintext,
        format=fmt,
        compression=CompressionAlgorithm.Uncompressed,
    )


def _recipients(public_keys: Sequence[KeyInput]) -> List[KeyMaterial]:
    keys = resolve_all(public_keys)
    if not keys:
        raise EncryptionError("At least one recipient public key is required")
    for key in keys:
        if key.kind is not KeyKind.PUBLIC:
            raise EncryptionError(
                f"Recipient key {key.fingerprint} is not a public key"
            )
    return keys


def _encrypt_for(
    message: PGPMessage,
    recipients: Sequence[KeyMaterial],
    config: EnvelopeConfig,
) -> str:
    # one session key shared by every recipient
    cipher = config.message_cipher
    sessionkey = cipher.gen_key()
    try:
        for key in recipients:
            message = key.pgp_key.encrypt(
                message, cipher=cipher, sessionkey=sessionkey
            )
    except Exception as e:
        raise EncryptionError(f"Could not encrypt message: {e}") from e
    finally:
        del sessionkey
    return str(message)


def _decrypt_with(key: KeyMaterial, ciphertext: str) -> Plaintext:
    try:
        message = PGPMessage.from_blob(ciphertext)
    except Exception as e:
        raise DecryptionError(f"Malformed encrypted message: {e}") from e
    if not message.is_encrypted:
        raise DecryptionError("Message is not encrypted")

    try:
        decrypted = key.pgp_key.decrypt(message)
    except Exception as e:
        raise DecryptionError(
            f"Could not decrypt message with key {key.fingerprint}: {e}"
        ) from e

    data = decrypted.message
    if isinstance(data, bytearray):
        data = bytes(data)
    if not isinstance(data, (str, bytes)):
        raise DecryptionError("Decrypted message does not hold literal data")
    return data


def _parse_signatures(signature: str) -> List[PGPSignature]:
    if not isinstance(signature, str):
        raise VerificationError("Signature must be armored text")

    blocks = _SIGNATURE_BLOCK_RE.findall(signature)
    if not blocks:
        raise VerificationError("No armored signature block found")

    signatures = []
    for block in blocks:
        try:
            signatures.append(PGPSignature.from_blob(block))
        except Exception as e:
            raise VerificationError(f"Malformed signature block: {e}") from e
    return signatures


def _check_signatures(
    plaintext: Plaintext,
    signatures: Sequence[PGPSignature],
    public_keys: Sequence[KeyMaterial],
) -> VerificationResult:
    """Check every public key, in order, against the signatures it issued."""
    if isinstance(plaintext, bytearray):
        plaintext = bytes(plaintext)
    if not isinstance(plaintext, (str, bytes)):
        raise VerificationError(
            f"Plaintext must be str or bytes, got {type(plaintext).__name__}"
        )

    checks = []
    for key in public_keys:
        valid = False
        for sig in signatures:
            if sig.signer not in key.key_ids:
                continue
            try:
                valid = bool(key.public_pgp_key.verify(plaintext, sig))
            except Exception as e:
                raise VerificationError(
                    f"Could not verify signature by {sig.signer}: {e}"
                ) from e
            if valid:
                break
        checks.append(
            SignatureCheck(valid=valid, fingerprint=key.fingerprint, key_id=key.key_id)
        )

    logger.debug(
        "Checked %d signature(s) against %d key(s): %s",
        len(signatures),
        len(checks),
        [check.valid for check in checks],
    )
    return VerificationResult(checks=tuple(checks))


# =============================================================================
# Envelope Builder
# =============================================================================


def encrypt(
    plaintext: Plaintext,
    public_keys: Sequence[KeyInput],
    config: Optional[EnvelopeConfig] = None,
) -> str:
    """
    Encrypt plaintext for several recipients.

    Any one recipient's private key can decrypt the result.

    Args:
        plaintext: Text or bytes to encrypt
        public_keys: Recipient public keys (armored or resolved)
        config: Message cipher settings (defaults to DEFAULT_CONFIG)

    Returns:
        Armored encrypted message

    Raises:
        KeyParseError: If a recipient key cannot be parsed
        EncryptionError: If no recipient is given, a key is not public, or
            encryption fails
    """
    config = config or DEFAULT_CONFIG
    recipients = _recipients(public_keys)
    message = _new_message(plaintext)

    ciphertext = _encrypt_for(message, recipients, config)
    logger.debug("Encrypted message for %d recipient(s)", len(recipients))
    return ciphertext


def encrypt_and_sign(
    plaintext: Plaintext,
    public_keys: Sequence[KeyInput],
    private_keys: Sequence[KeyInput],
    passphrases: Sequence[str],
    config: Optional[EnvelopeConfig] = None,
) -> Envelope:
    """
    Encrypt plaintext for several recipients and sign it with several keys.

    ``private_keys[i]`` is unlocked with ``passphrases[i]``. Each signer
    contributes one detached signature over the plaintext; the signatures
    are returned separately from the ciphertext.

    Args:
        plaintext: Text or bytes to encrypt
        public_keys: Recipient public keys
        private_keys: Signer private keys
        passphrases: Passphrases, parallel to ``private_keys``
        config: Message cipher settings (defaults to DEFAULT_CONFIG)

    Returns:
        Envelope with armored ciphertext and armored detached signatures

    Raises:
        InvalidArgumentError: If there is no signer or the lengths differ
        KeyParseError: If a key cannot be parsed
        UnlockError: If a signer key cannot be unlocked
        EncryptionError: If signing or encryption fails
    """
    config = config or DEFAULT_CONFIG
    private_keys = list(private_keys)
    passphrases = list(passphrases)

    if not private_keys:
        raise InvalidArgumentError("At least one signing private key is required")
    if len(private_keys) != len(passphrases):
        raise InvalidArgumentError(
            f"Got {len(private_keys)} private key(s) but "
            f"{len(passphrases)} passphrase(s)"
        )

    recipients = _recipients(public_keys)
    signers = resolve_all(private_keys)
    message = _new_message(plaintext)
    if isinstance(plaintext, bytearray):
        plaintext = bytes(plaintext)

    with ExitStack() as stack:
        for key, passphrase in zip(signers, passphrases):
            stack.enter_context(unlocked(key, passphrase))

        signatures = []
        for key in signers:
            try:
                signatures.append(key.pgp_key.sign(plaintext))
            except Exception as e:
                raise EncryptionError(
                    f"Could not sign message with key {key.fingerprint}: {e}"
                ) from e

    ciphertext = _encrypt_for(message, recipients, config)
    logger.debug(
        "Encrypted message for %d recipient(s) with %d detached signature(s)",
        len(recipients),
        len(signatures),
    )
    return Envelope(
        data=ciphertext,
        signature="\n".join(str(sig).strip() for sig in signatures) + "\n",
    )


# =============================================================================
# Envelope Opener
# =============================================================================


def decrypt(ciphertext: str, private_key: KeyInput, passphrase: str) -> Plaintext:
    """
    Decrypt a message with one private key.

    Args:
        ciphertext: Armored encrypted message
        private_key: Recipient private key (armored or resolved)
        passphrase: Passphrase protecting the private key

    Returns:
        Plaintext, as str for text messages and bytes for binary ones

    Raises:
        KeyParseError: If the key cannot be parsed
        UnlockError: If the key cannot be unlocked
        DecryptionError: If the message is malformed or not for this key
    """
    key = resolve(private_key)
    with unlocked(key, passphrase):
        plaintext = _decrypt_with(key, ciphertext)

    logger.debug("Decrypted message with key %s", key.fingerprint)
    return plaintext


def decrypt_and_verify(
    envelope: EnvelopeInput,
    public_keys: Sequence[KeyInput],
    private_key: KeyInput,
    passphrase: str,
) -> VerifiedEnvelope:
    """
    Decrypt an envelope and check its detached signature.

    Verification only runs after decryption succeeds, and only against
    ``public_keys``; the decrypting key's own public half is not added.

    Args:
        envelope: Envelope (or ``{"data", "signature"}`` mapping)
        public_keys: Candidate signer public keys
        private_key: Recipient private key
        passphrase: Passphrase protecting the private key

    Returns:
        VerifiedEnvelope with plaintext and one SignatureCheck per public key

    Raises:
        KeyParseError: If a key cannot be parsed
        UnlockError: If the private key cannot be unlocked
        DecryptionError: If the data cannot be decrypted
        VerificationError: If the signature block is malformed
    """
    envelope = _as_envelope(envelope)
    verifiers = resolve_all(public_keys)

    plaintext = decrypt(envelope.data, private_key, passphrase)
    signatures = _parse_signatures(envelope.signature)

    return VerifiedEnvelope(
        data=plaintext,
        signatures=_check_signatures(plaintext, signatures, verifiers),
    )


# =============================================================================
# Standalone Verifier
# =============================================================================


def verify(
    plaintext: Plaintext,
    envelope: Union[EnvelopeInput, str],
    public_keys: Sequence[KeyInput],
) -> VerificationResult:
    """
    Check an envelope's detached signature against known plaintext.

    The envelope's data is ignored, so this also works after the data has
    been discarded or re-encrypted. A bare armored signature string is
    accepted in place of an envelope.

    Returns:
        One SignatureCheck per public key, in order. A key that did not sign
        is reported with ``valid=False``.

    Raises:
        KeyParseError: If a key cannot be parsed
        VerificationError: If the signature or plaintext is malformed
    """
    if isinstance(envelope, str):
        signature = envelope
    else:
        signature = _as_envelope(envelope).signature

    verifiers = resolve_all(public_keys)
    return _check_signatures(plaintext, _parse_signatures(signature), verifiers)
