"""
Encrypted keyfile directory, compatible with geth's keystore layout.

Each account is stored as a Web3 Secret Storage JSON file named
``UTC--<timestamp>--<address>`` inside ``<datadir>/keys``.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from .errors import ConfigurationError

logger = structlog.get_logger()

# scrypt N parameters used by geth
STANDARD_SCRYPT_N = 262144
LIGHT_SCRYPT_N = 4096


def read_secret_file(path: Optional[Path], what: str) -> str:
    """Read a password or private key file, trimming surrounding whitespace."""
    if path is None:
        raise ConfigurationError(f"Path to {what} file required")
    try:
        return Path(path).read_text().strip()
    except OSError as e:
        raise ConfigurationError(f"Failed to read {what} file {path}: {e}") from e


def keyfile_name(address: str, now: Optional[datetime] = None) -> str:
    """geth-style keyfile name, e.g. UTC--2019-05-01T10-00-00.000000000Z--abcd..."""
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S.%f") + "000Z"
    return f"UTC--{stamp}--{address.lower().removeprefix('0x')}"


class KeyStore:
    """Directory of encrypted keyfiles."""

    def __init__(self, keydir: Path, scrypt_n: int = STANDARD_SCRYPT_N):
        self.keydir = Path(keydir)
        self.scrypt_n = scrypt_n

    def _entries(self) -> list[tuple[str, Path]]:
        if not self.keydir.is_dir():
            return []

        entries = []
        for path in sorted(self.keydir.iterdir()):
            if not path.is_file() or path.name.startswith("."):
                continue
            try:
                data = json.loads(path.read_text())
                address = Web3.to_checksum_address("0x" + data["address"].removeprefix("0x"))
            except (OSError, ValueError, KeyError, TypeError):
                logger.debug("keyfile_skipped", path=str(path))
                continue
            entries.append((address, path))
        return entries

    def find(self, address: str) -> Optional[Path]:
        """Keyfile path for address, or None."""
        try:
            wanted = Web3.to_checksum_address(address)
        except ValueError as e:
            raise ConfigurationError(f"Invalid account address {address!r}") from e

        for entry_address, path in self._entries():
            if entry_address == wanted:
                return path
        return None

    def has_address(self, address: str) -> bool:
        return self.find(address) is not None

    def accounts(self) -> list[str]:
        return [address for address, _ in self._entries()]

    def import_key(self, private_key: str, password: str) -> tuple[str, bool]:
        """
        Encrypt and store a private key.

        Returns:
            (address, created). created is False when the account was
            already present, in which case nothing is written.
        """
        try:
            account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Failed to convert private key: {e}") from e

        if self.has_address(account.address):
            logger.info("key_exists", address=account.address)
            return account.address, False

        keyfile = Account.encrypt(
            account.key, password, kdf="scrypt", iterations=self.scrypt_n
        )

        self.keydir.mkdir(parents=True, exist_ok=True, mode=0o700)
        path = self.keydir / keyfile_name(account.address)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w") as f:
            json.dump(keyfile, f)

        logger.info("key_imported", address=account.address, path=str(path))
        return account.address, True

    def unlock(self, address: str, password: str) -> LocalAccount:
        """Decrypt the keyfile for address and return a signing account."""
        path = self.find(address)
        if path is None:
            raise ConfigurationError(
                f"Account {address} not found in keystore {self.keydir}. "
                "Run init first"
            )

        try:
            key = Account.decrypt(json.loads(path.read_text()), password)
        except ValueError as e:
            raise ConfigurationError(f"Failed to unlock account {address}: {e}") from e

        account = Account.from_key(key)
        logger.info("account_unlocked", address=account.address)
        return account
