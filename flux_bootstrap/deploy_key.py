"""Provisioning the SSH deploy key the source controller uses to read the repository.

The key pair and the Git host's public key are stored together in a single
Secret named after the namespace, which the GitRepository references.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
from pathlib import Path
import tempfile
from urllib.parse import urlparse

import aiofiles

from .command import Command, run
from .exceptions import InputException, SshException
from .kubectl import ClusterClient
from .manifest import ObjectMeta, Secret

__all__ = [
    "KeyPair",
    "KeyProvider",
    "OpenSSHKeyProvider",
    "generate_deploy_key",
]

_LOGGER = logging.getLogger(__name__)

SSH_KEYGEN_BIN = "ssh-keygen"
SSH_KEYSCAN_BIN = "ssh-keyscan"
DEFAULT_SSH_PORT = 22
KEY_TYPE = "rsa"
KEY_BITS = 2048
SCAN_TIMEOUT = 30

IDENTITY_KEY = "identity"
IDENTITY_PUB_KEY = "identity.pub"
KNOWN_HOSTS_KEY = "known_hosts"


@dataclass(frozen=True)
class KeyPair:
    """An SSH key pair in OpenSSH format."""

    private_key: str
    public_key: str

    def __repr__(self) -> str:
        return f"KeyPair(public_key={self.public_key!r})"


@dataclass(frozen=True)
class HostAddress:
    """The SSH endpoint of a Git host."""

    host: str
    port: int = DEFAULT_SSH_PORT

    @classmethod
    def from_url(cls, url: str) -> "HostAddress":
        """Parse the host and port from a repository URL."""
        parsed = urlparse(url)
        if not parsed.hostname:
            raise InputException(f"Repository URL '{url}' has no host")
        return cls(host=parsed.hostname, port=parsed.port or DEFAULT_SSH_PORT)


class KeyProvider(ABC):
    """Generates SSH keys and looks up host keys."""

    @abstractmethod
    async def generate_key_pair(self) -> KeyPair:
        """Return a new key pair."""

    @abstractmethod
    async def scan_host_key(self, url: str) -> str:
        """Return the known_hosts entries for the host of the URL."""


class OpenSSHKeyProvider(KeyProvider):
    """A `KeyProvider` that runs the OpenSSH command line tools."""

    async def generate_key_pair(self) -> KeyPair:
        """Generate an unencrypted key pair with ssh-keygen."""
        with tempfile.TemporaryDirectory() as key_dir:
            key_path = Path(key_dir) / IDENTITY_KEY
            args = [
                SSH_KEYGEN_BIN,
                "-q",
                "-t",
                KEY_TYPE,
                "-b",
                str(KEY_BITS),
                "-N",
                "",
                "-C",
                "",
                "-f",
                str(key_path),
            ]
            await run(Command(args, exc=SshException))
            async with aiofiles.open(key_path) as private_file:
                private_key = await private_file.read()
            async with aiofiles.open(f"{key_path}.pub") as public_file:
                public_key = await public_file.read()
        return KeyPair(private_key=private_key, public_key=public_key.strip())

    async def scan_host_key(self, url: str) -> str:
        """Scan the host keys with ssh-keyscan."""
        address = HostAddress.from_url(url)
        args = [
            SSH_KEYSCAN_BIN,
            "-T",
            str(SCAN_TIMEOUT),
            "-p",
            str(address.port),
            address.host,
        ]
        out = await run(
            Command(args, exc=SshException, timeout=SCAN_TIMEOUT + 5.0)
        )
        lines = [
            line
            for line in out.splitlines()
            if line.strip() and not line.startswith("#")
        ]
        if not lines:
            raise SshException(f"No host keys found for {address.host}:{address.port}")
        return "\n".join(lines) + "\n"


async def generate_deploy_key(
    client: ClusterClient, key_provider: KeyProvider, url: str, namespace: str
) -> str:
    """Create or replace the deploy key Secret and return the public key."""
    address = HostAddress.from_url(url)
    _LOGGER.debug("Generating deploy key for %s:%d", address.host, address.port)
    pair = await key_provider.generate_key_pair()
    host_key = await key_provider.scan_host_key(url)

    secret = Secret(
        metadata=ObjectMeta(name=namespace, namespace=namespace),
        string_data={
            IDENTITY_KEY: pair.private_key,
            IDENTITY_PUB_KEY: pair.public_key,
            KNOWN_HOSTS_KEY: host_key,
        },
    )
    await client.upsert(secret.to_dict())
    _LOGGER.debug("Stored deploy key in Secret %s/%s", namespace, namespace)
    return pair.public_key
