"""
PGP Envelope demonstration CLI.

Usage:
    pgp-envelope-demo

Or run directly:
    python -m pgp_envelope.demo

Walks through the full envelope workflow with three generated identities:
multi-recipient encryption, encrypt-and-sign, decrypt-and-verify, and
forwarding a signed message to a new recipient by re-encrypting the
plaintext while carrying the original signature along.

Settings are read from PGP_ENVELOPE_* environment variables or a .env file.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time

from pgp_envelope.config import EnvelopeConfig
from pgp_envelope.errors import EnvelopeError
from pgp_envelope.service import PgpEnvelopeService

PASSPHRASE_1 = "super long and hard to guess secret"
PASSPHRASE_2 = "super long and hard to guess secret2"
PASSPHRASE_3 = "super long and hard to guess secret3"


def _banner(title: str) -> None:
    print("+" + "-" * 68 + "+")
    print(f"|  {title}" + " " * (66 - len(title)) + "|")
    print("+" + "-" * 68 + "+")


async def run_demo(config: EnvelopeConfig) -> None:
    """Run the envelope demonstration."""
    print("=== PGP Envelope Demo ===\n")

    service = await PgpEnvelopeService.new(config)

    # ========================================================================
    # Step 1: Generate identities
    # ========================================================================
    _banner("Step 1: Generate 3 Keypairs")

    keygen_start = time.perf_counter()
    kp1, kp2, kp3 = await asyncio.gather(
        service.create_key_pair("blabla", "blabla@blabla.bla", PASSPHRASE_1),
        service.create_key_pair("bla2", "bla2@bla.bla", PASSPHRASE_2),
        service.create_key_pair("bla3", "bla3@bla.bla", PASSPHRASE_3),
    )
    keygen_duration = time.perf_counter() - keygen_start

    print("[OK] Generated Ed25519/Curve25519 keypairs")
    print(f"[PERF] Time: {keygen_duration * 1000:.3f}ms\n")

    # ========================================================================
    # Step 2: Multi-recipient encryption
    # ========================================================================
    _banner("Step 2: Encrypt for kp1 + kp2, Decrypt with Each")

    msg = await service.encrypt("Hello world", [kp1.public_key, kp2.public_key])
    decrypted1 = await service.decrypt(msg, kp1.private_key, PASSPHRASE_1)
    decrypted2 = await service.decrypt(msg, kp2.private_key, PASSPHRASE_2)

    print(f"  Using kp1: {decrypted1}")
    print(f"  Using kp2: {decrypted2}\n")

    # ========================================================================
    # Step 3: Encrypt and sign, decrypt and verify
    # ========================================================================
    _banner("Step 3: Encrypt-and-Sign, Decrypt-and-Verify with kp2")

    data = "Encrypted message"
    signers = [kp1.public_key, kp2.public_key]
    signed = await service.encrypt_and_sign(
        data,
        signers,
        [kp1.private_key, kp2.private_key],
        [PASSPHRASE_1, PASSPHRASE_2],
    )
    verified = await service.decrypt_and_verify(
        signed, signers, kp2.private_key, PASSPHRASE_2
    )

    print(f"  Plaintext: {verified.data}")
    print(f"  Validity signature kp1: {verified.signatures[0].valid}")
    print(f"  Validity signature kp2: {verified.signatures[1].valid}\n")

    # ========================================================================
    # Step 4: Forward to kp3 with the original signatures
    # ========================================================================
    _banner("Step 4: Re-encrypt for kp3, Keep Signatures")

    forwarded = signed.with_data(await service.encrypt(verified.data, [kp3.public_key]))
    verified2 = await service.decrypt_and_verify(
        forwarded, signers, kp3.private_key, PASSPHRASE_3
    )

    print(f"  Validity signature kp1: {verified2.signatures[0].valid}")
    print(f"  Validity signature kp2: {verified2.signatures[1].valid}\n")

    # ========================================================================
    # Step 5: Verify against plaintext only
    # ========================================================================
    _banner("Step 5: Verify Plaintext with kp1, kp2, kp3 Public Keys")

    candidates = [kp1.public_key, kp2.public_key, kp3.public_key]
    valid = await service.verify(data, signed, candidates)
    valid2 = await service.verify(data, forwarded, candidates)

    for label, result in (("original", valid), ("forwarded", valid2)):
        flags = ", ".join(
            f"kp{idx + 1}={check.valid}" for idx, check in enumerate(result)
        )
        print(f"  {label}: {flags}")

    print("\n" + "=" * 70)
    print("                    DEMO COMPLETE")
    print("=" * 70 + "\n")


def main() -> None:
    """CLI entry point for pgp-envelope-demo command."""
    try:
        config = EnvelopeConfig.from_env()
    except EnvelopeError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(run_demo(config))
    except EnvelopeError as e:
        print(f"[ERROR] {type(e).__name__}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
