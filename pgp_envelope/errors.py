"""
Exception classes for PGP envelope operations.

Every failure of the underlying OpenPGP engine is re-raised as one of these
types with the original exception chained as ``__cause__``.
"""

from __future__ import annotations


class EnvelopeError(Exception):
    """Base exception for all envelope operations."""

    pass


class KeyParseError(EnvelopeError):
    """Armored text is not a well-formed OpenPGP key."""

    pass


class KeyGenerationError(EnvelopeError):
    """The engine rejected the identity or could not produce a key."""

    pass


class UnlockError(EnvelopeError):
    """A private key could not be unlocked."""

    pass


class IncorrectPassphraseError(UnlockError):
    """The passphrase does not unlock the key. The key stays locked."""

    pass


class MalformedKeyError(UnlockError):
    """The secret key material is damaged or uses an unsupported protection."""

    pass


class EncryptionError(EnvelopeError):
    """Encryption or signing failed."""

    pass


class DecryptionError(EnvelopeError):
    """Ciphertext could not be decrypted (wrong key, corrupt message)."""

    pass


class VerificationError(EnvelopeError):
    """Signature or message is structurally malformed.

    A well-formed signature made by a different key is not an error; it is
    reported as ``valid=False``.
    """

    pass


class InvalidArgumentError(EnvelopeError, ValueError):
    """Arguments are inconsistent (e.g. keys and passphrases differ in length)."""

    pass


class SerializationError(EnvelopeError):
    """Serialization or deserialization error."""

    pass


class ConfigError(EnvelopeError):
    """Configuration error."""

    pass
