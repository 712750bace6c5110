"""
Runtime configuration for PGP envelope operations.

Settings come from environment variables, optionally loaded from a ``.env``
file:

- ``PGP_ENVELOPE_KEY_CIPHER``: cipher protecting generated private keys (default ``AES256``)
- ``PGP_ENVELOPE_KEY_HASH``: S2K hash protecting generated private keys (default ``SHA256``)
- ``PGP_ENVELOPE_MESSAGE_CIPHER``: session cipher for encrypted messages (default ``AES256``)
- ``PGP_ENVELOPE_LOG_LEVEL``: log level used by the demo CLI (default ``WARNING``)

Algorithm names are PGPy enum member names, matched case-insensitively.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Type, TypeVar, Union

from dotenv import load_dotenv
from pgpy.constants import HashAlgorithm, SymmetricKeyAlgorithm

from .errors import ConfigError

ENV_PREFIX: str = "PGP_ENVELOPE_"

_E = TypeVar("_E", HashAlgorithm, SymmetricKeyAlgorithm)


def _parse_algorithm(enum_cls: Type[_E], value: str, variable: str) -> _E:
    """Look up a PGPy algorithm enum member by name, ignoring case."""
    members = {member.name.upper(): member for member in enum_cls}
    try:
        return members[value.strip().upper()]
    except KeyError:
        raise ConfigError(
            f"{variable}: unknown {enum_cls.__name__} {value!r} "
            f"(expected one of {', '.join(m.name for m in enum_cls)})"
        ) from None


def _parse_log_level(value: str, variable: str) -> int:
    level = logging.getLevelName(value.strip().upper())
    if not isinstance(level, int):
        raise ConfigError(f"{variable}: unknown log level {value!r}")
    return level


@dataclass(frozen=True)
class EnvelopeConfig:
    """
    Immutable settings shared by key generation and encryption.

    The key curve is not configurable: generated keys always use an Ed25519
    signing primary key and a Curve25519 encryption subkey.
    """

    key_protection_cipher: SymmetricKeyAlgorithm = SymmetricKeyAlgorithm.AES256
    key_protection_hash: HashAlgorithm = HashAlgorithm.SHA256
    message_cipher: SymmetricKeyAlgorithm = SymmetricKeyAlgorithm.AES256
    log_level: int = logging.WARNING

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> EnvelopeConfig:
        """
        Build a config from environment variables.

        Args:
            env_file: Optional ``.env`` file to load first. Existing
                environment variables take precedence over the file.
            environ: Mapping to read instead of ``os.environ`` (no ``.env``
                loading happens when given)

        Returns:
            EnvelopeConfig instance

        Raises:
            ConfigError: If a variable names an unknown algorithm or level
        """
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        defaults = cls()
        kwargs = {}

        value = environ.get(f"{ENV_PREFIX}KEY_CIPHER")
        if value:
            kwargs["key_protection_cipher"] = _parse_algorithm(
                SymmetricKeyAlgorithm, value, f"{ENV_PREFIX}KEY_CIPHER"
            )

        value = environ.get(f"{ENV_PREFIX}KEY_HASH")
        if value:
            kwargs["key_protection_hash"] = _parse_algorithm(
                HashAlgorithm, value, f"{ENV_PREFIX}KEY_HASH"
            )

        value = environ.get(f"{ENV_PREFIX}MESSAGE_CIPHER")
        if value:
            kwargs["message_cipher"] = _parse_algorithm(
                SymmetricKeyAlgorithm, value, f"{ENV_PREFIX}MESSAGE_CIPHER"
            )

        value = environ.get(f"{ENV_PREFIX}LOG_LEVEL")
        if value:
            kwargs["log_level"] = _parse_log_level(value, f"{ENV_PREFIX}LOG_LEVEL")

        if not kwargs:
            return defaults
        return cls(**kwargs)


DEFAULT_CONFIG = EnvelopeConfig()
