"""
Pytest configuration and fixtures for PGP envelope tests.
"""

from __future__ import annotations

from typing import NamedTuple

import pytest

from pgp_envelope import (
    Envelope,
    EnvelopeConfig,
    PgpEnvelopeService,
    create_key_pair,
    encrypt_and_sign,
)
from pgp_envelope.config import ENV_PREFIX

SIGNED_TEXT = "Encrypted message"


class Identity(NamedTuple):
    """Generated keypair together with the passphrase protecting it."""

    public_key: str
    private_key: str
    passphrase: str


def _identity(name: str, email: str, passphrase: str) -> Identity:
    key_pair = create_key_pair(name, email, passphrase)
    return Identity(key_pair.public_key, key_pair.private_key, passphrase)


@pytest.fixture(scope="session")
def kp1() -> Identity:
    return _identity("blabla", "blabla@blabla.bla", "super long and hard to guess secret")


@pytest.fixture(scope="session")
def kp2() -> Identity:
    return _identity("bla2", "bla2@bla.bla", "super long and hard to guess secret2")


@pytest.fixture(scope="session")
def kp3() -> Identity:
    return _identity("bla3", "bla3@bla.bla", "super long and hard to guess secret3")


@pytest.fixture(scope="session")
def signed_envelope(kp1: Identity, kp2: Identity) -> Envelope:
    """SIGNED_TEXT encrypted for kp1 + kp2 and signed by both."""
    return encrypt_and_sign(
        SIGNED_TEXT,
        [kp1.public_key, kp2.public_key],
        [kp1.private_key, kp2.private_key],
        [kp1.passphrase, kp2.passphrase],
    )


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove PGP_ENVELOPE_* variables; anything a test sets is undone afterwards."""
    for suffix in ("KEY_CIPHER", "KEY_HASH", "MESSAGE_CIPHER", "LOG_LEVEL"):
        # setenv first so the variable is restored to its original state on undo
        monkeypatch.setenv(f"{ENV_PREFIX}{suffix}", "placeholder")
        monkeypatch.delenv(f"{ENV_PREFIX}{suffix}")
    return monkeypatch


@pytest.fixture
async def service() -> PgpEnvelopeService:
    """Create a service with default settings."""
    return await PgpEnvelopeService.new(EnvelopeConfig())
