"""
PGP Envelope Library

Multi-recipient OpenPGP encryption with detached signatures that survive
re-encryption.

Quick Start
-----------
```python
import asyncio
from pgp_envelope import PgpEnvelopeService

async def main():
    service = await PgpEnvelopeService.new()

    # Generate identities
    alice = await service.create_key_pair("Alice", "alice@example.com", "alice-pw")
    bob = await service.create_key_pair("Bob", "bob@example.com", "bob-pw")
    carol = await service.create_key_pair("Carol", "carol@example.com", "carol-pw")

    # Encrypt for Bob, signed by Alice
    envelope = await service.encrypt_and_sign(
        "Sensitive data", [bob.public_key], [alice.private_key], ["alice-pw"]
    )

    # Bob decrypts and checks Alice's signature
    opened = await service.decrypt_and_verify(
        envelope, [alice.public_key], bob.private_key, "bob-pw"
    )
    assert opened.signatures[0].valid

    # Forward to Carol: new ciphertext, same signature
    forwarded = envelope.with_data(
        await service.encrypt(opened.data, [carol.public_key])
    )

asyncio.run(main())
```

Key Features
------------
- **OpenPGP**: Ed25519 signing keys, Curve25519 encryption subkeys (PGPy)
- **Multi-Recipient**: One ciphertext, decryptable by any listed recipient
- **Detached Signatures**: Signatures over plaintext, valid after re-encryption
- **Idempotent Unlock**: Re-unlocking an unlocked key is a no-op
- **Typed Errors**: Every failure surfaces as an EnvelopeError subclass
"""

__version__ = "0.1.0"

# =============================================================================
# Config Exports
# =============================================================================

from .config import DEFAULT_CONFIG, EnvelopeConfig

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    ConfigError,
    DecryptionError,
    EncryptionError,
    EnvelopeError,
    IncorrectPassphraseError,
    InvalidArgumentError,
    KeyGenerationError,
    KeyParseError,
    MalformedKeyError,
    SerializationError,
    UnlockError,
    VerificationError,
)

# =============================================================================
# Key Exports
# =============================================================================

from .keys import (
    KeyKind,
    KeyMaterial,
    KeyPair,
    create_key_pair,
    remove_armor,
    resolve,
    resolve_all,
    unlock,
    unlocked,
)

# =============================================================================
# Envelope Exports
# =============================================================================

from .envelope import (
    Envelope,
    SignatureCheck,
    VerificationResult,
    VerifiedEnvelope,
    decrypt,
    decrypt_and_verify,
    encrypt,
    encrypt_and_sign,
    verify,
)

# =============================================================================
# Service Exports (Primary API)
# =============================================================================

from .service import PgpEnvelopeService

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Config
    "DEFAULT_CONFIG",
    "EnvelopeConfig",
    # Errors
    "EnvelopeError",
    "KeyParseError",
    "KeyGenerationError",
    "UnlockError",
    "IncorrectPassphraseError",
    "MalformedKeyError",
    "EncryptionError",
    "DecryptionError",
    "VerificationError",
    "InvalidArgumentError",
    "SerializationError",
    "ConfigError",
    # Keys
    "KeyKind",
    "KeyMaterial",
    "KeyPair",
    "create_key_pair",
    "remove_armor",
    "resolve",
    "resolve_all",
    "unlock",
    "unlocked",
    # Envelopes
    "Envelope",
    "SignatureCheck",
    "VerificationResult",
    "VerifiedEnvelope",
    "decrypt",
    "decrypt_and_verify",
    "encrypt",
    "encrypt_and_sign",
    "verify",
    # Service (Primary API)
    "PgpEnvelopeService",
]
