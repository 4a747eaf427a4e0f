"""
Credential files: near-cli style JSON key files, one per account.

    {"account_id": "anchor.testnet",
     "public_key": "ed25519:...",
     "private_key": "ed25519:..."}

``secret_key`` is accepted as an alias of ``private_key``. Files are
looked up in a directory (``~/.near-credentials/<network>/`` by default);
only ``*.json`` files are read.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path

from oct_cli.near.keys import InMemorySigner, PublicKey, Signer

logger = logging.getLogger(__name__)


class CredentialsError(ValueError):
    """A credential file is missing, unreadable or inconsistent."""


def load_signer(path: Path) -> InMemorySigner:
    """Build a signer from one credential file.

    Raises:
        CredentialsError: Missing fields, bad key text, or a ``public_key``
            that does not belong to the private key.
        OSError: The file cannot be read.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CredentialsError(f"{path}: not valid JSON ({exc.msg})") from exc
    if not isinstance(data, dict):
        raise CredentialsError(f"{path}: expected a JSON object")

    account_id = data.get("account_id")
    secret = data.get("private_key") or data.get("secret_key")
    if not isinstance(account_id, str) or not isinstance(secret, str):
        raise CredentialsError(f"{path}: needs account_id and private_key")
    try:
        signer = InMemorySigner(account_id, secret)
        declared = data.get("public_key")
        if declared is not None and PublicKey.from_str(declared) != signer.public_key:
            raise CredentialsError(f"{path}: public_key does not match private_key")
    except CredentialsError:
        raise
    except ValueError as exc:
        raise CredentialsError(f"{path}: {exc}") from exc
    return signer


def load_signers(directory: Path) -> dict[str, InMemorySigner]:
    """Load every ``*.json`` credential file in ``directory``, keyed by account id.

    Raises:
        CredentialsError: A file is invalid, or two files claim the same account.
        OSError: The directory cannot be read.
    """
    signers: dict[str, InMemorySigner] = {}
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix != ".json":
            continue
        signer = load_signer(path)
        if signer.account_id in signers:
            raise CredentialsError(f"{path}: duplicate credentials for {signer.account_id}")
        signers[signer.account_id] = signer
    logger.debug("loaded %d signer(s) from %s", len(signers), directory)
    return signers


def signer_for(signers: Mapping[str, Signer], account_id: str) -> Signer:
    """Pick the signer of ``account_id``.

    Raises:
        CredentialsError: No key for the account.
    """
    signer = signers.get(account_id)
    if signer is None:
        raise CredentialsError(f"Missing key for account '{account_id}'. Processing stopped.")
    return signer
