"""
Async facade over the envelope operations.

PgpEnvelopeService is the public API for applications: every key and
message crosses the boundary as armored text, and every engine-bound call
runs in a worker thread so the event loop is never blocked by key
generation or public-key math.

The service holds no state besides its immutable EnvelopeConfig. Keys given
as armored text are resolved inside the call and locked again before it
returns. A KeyMaterial handle may be passed to several concurrent calls: the
handle serializes unlocking and locks the key once the last call using it
finishes, unless the caller unlocked it beforehand.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence, Union

from . import envelope as _envelope
from . import keys as _keys
from .config import EnvelopeConfig
from .envelope import (
    Envelope,
    EnvelopeInput,
    Plaintext,
    VerificationResult,
    VerifiedEnvelope,
)
from .keys import KeyInput, KeyPair


class PgpEnvelopeService:
    """
    Multi-recipient encrypted envelopes with detached signatures.

    Example:
        service = await PgpEnvelopeService.new()
        alice = await service.create_key_pair("Alice", "alice@example.com", "pw1")
        bob = await service.create_key_pair("Bob", "bob@example.com", "pw2")

        env = await service.encrypt_and_sign(
            "hello", [bob.public_key], [alice.private_key], ["pw1"]
        )
        opened = await service.decrypt_and_verify(
            env, [alice.public_key], bob.private_key, "pw2"
        )
        assert opened.signatures.all_valid
    """

    __slots__ = ("_config",)

    def __init__(self, config: Optional[EnvelopeConfig] = None) -> None:
        """
        Initialize service.

        Args:
            config: Algorithm settings (defaults to EnvelopeConfig())
        """
        self._config = config or EnvelopeConfig()

    @classmethod
    async def new(cls, config: Optional[EnvelopeConfig] = None) -> PgpEnvelopeService:
        """
        Initialize service (async factory method).

        Args:
            config: Algorithm settings; read from the environment when omitted

        Returns:
            PgpEnvelopeService instance
        """
        if config is None:
            config = await asyncio.to_thread(EnvelopeConfig.from_env)
        return cls(config)

    @property
    def config(self) -> EnvelopeConfig:
        return self._config

    async def create_key_pair(self, name: str, email: str, passphrase: str) -> KeyPair:
        """
        Generate a passphrase-protected keypair for ``name <email>``.

        Raises:
            KeyGenerationError: If an identity field is invalid or generation fails
        """
        return await asyncio.to_thread(
            _keys.create_key_pair, name, email, passphrase, self._config
        )

    async def encrypt(self, plaintext: Plaintext, public_keys: Sequence[KeyInput]) -> str:
        """
        Encrypt plaintext so that any of ``public_keys`` can decrypt it.

        Raises:
            KeyParseError: If a key cannot be parsed
            EncryptionError: If encryption fails
        """
        return await asyncio.to_thread(
            _envelope.encrypt, plaintext, public_keys, self._config
        )

    async def decrypt(self, ciphertext: str, private_key: KeyInput, passphrase: str) -> Plaintext:
        """
        Decrypt ciphertext with a passphrase-protected private key.

        Raises:
            UnlockError: If the private key cannot be unlocked
            DecryptionError: If the message cannot be decrypted with this key
        """
        return await asyncio.to_thread(
            _envelope.decrypt, ciphertext, private_key, passphrase
        )

    async def encrypt_and_sign(
        self,
        plaintext: Plaintext,
        public_keys: Sequence[KeyInput],
        private_keys: Sequence[KeyInput],
        passphrases: Sequence[str],
    ) -> Envelope:
        """
        Encrypt for ``public_keys`` and attach detached signatures by ``private_keys``.

        Raises:
            InvalidArgumentError: If private keys and passphrases differ in length
            UnlockError: If a signer key cannot be unlocked
            EncryptionError: If signing or encryption fails
        """
        return await asyncio.to_thread(
            _envelope.encrypt_and_sign,
            plaintext,
            public_keys,
            private_keys,
            passphrases,
            self._config,
        )

    async def decrypt_and_verify(
        self,
        envelope: EnvelopeInput,
        public_keys: Sequence[KeyInput],
        private_key: KeyInput,
        passphrase: str,
    ) -> VerifiedEnvelope:
        """
        Decrypt an envelope and check its signature against ``public_keys``.

        Raises:
            UnlockError: If the private key cannot be unlocked
            DecryptionError: If the data cannot be decrypted
            VerificationError: If the signature block is malformed
        """
        return await asyncio.to_thread(
            _envelope.decrypt_and_verify,
            envelope,
            public_keys,
            private_key,
            passphrase,
        )

    async def verify(
        self,
        plaintext: Plaintext,
        envelope: Union[EnvelopeInput, str],
        public_keys: Sequence[KeyInput],
    ) -> VerificationResult:
        """
        Check an envelope's signature against plaintext, without decrypting.

        Raises:
            VerificationError: If the signature or plaintext is malformed
        """
        return await asyncio.to_thread(
            _envelope.verify, plaintext, envelope, public_keys
        )

    async def remove_armor(self, key: KeyInput, passphrase: Optional[str] = None) -> str:
        """
        Return a key's base64 body without armor lines.

        Raises:
            UnlockError: If a private key cannot be unlocked with ``passphrase``
        """
        return await asyncio.to_thread(_keys.remove_armor, key, passphrase)

    def __repr__(self) -> str:
        return f"PgpEnvelopeService({self._config!r})"
