# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Management of the JWT secret shared by the execution and consensus clients.
"""
import binascii
import os
import secrets
from dataclasses import dataclass

from ..errors import SecretError
from ..UTILS.fs import atomic_write
from ..UTILS.logger import get_logger, register_secret

SECRET_BYTES = 32

logger = get_logger(__name__)


@dataclass
class SharedSecret:
    """A secret file on disk and whether this run created it."""

    path: str
    created: bool


class SecretManager:
    """
    Creates the shared secret once and keeps it across provisioning runs.

    Regenerating the secret on every run would invalidate the authenticated
    channel of clients that are already running, so an existing valid secret
    is reused unless rotation is requested explicitly.
    """

    def __init__(self, path: str):
        """
        Args:
            path: Where the hex-encoded secret is stored.
        """
        self.path = os.path.abspath(path)

    def ensure(self, rotate: bool = False) -> SharedSecret:
        """
        Makes sure the secret file exists and holds a valid secret.

        Args:
            rotate: Replace an existing secret with a fresh one.

        Returns:
            The secret file and whether it was written during this call.

        Raises:
            SecretError: If an existing file is malformed or cannot be written.
        """
        if os.path.isdir(self.path):
            raise SecretError(f"{self.path} is a directory, expected a secret file")

        if os.path.exists(self.path) and not rotate:
            register_secret(self._read_hex())
            self.read()
            logger.info("Reusing shared secret at %s", self.path)
            return SharedSecret(path=self.path, created=False)

        value = secrets.token_bytes(SECRET_BYTES).hex()
        register_secret(value)
        try:
            atomic_write(self.path, value + "\n", mode=0o600)
        except OSError as e:
            raise SecretError(f"cannot write {self.path}: {e}") from e
        logger.info("%s shared secret at %s", "Rotated" if rotate else "Generated", self.path)
        return SharedSecret(path=self.path, created=True)

    def read(self) -> bytes:
        """
        Returns the raw secret bytes.

        Raises:
            SecretError: If the file is not 32 hex-encoded bytes.
        """
        try:
            raw = binascii.unhexlify(self._read_hex())
        except (binascii.Error, ValueError) as e:
            raise SecretError(f"{self.path} does not contain a hex-encoded secret") from e
        if len(raw) != SECRET_BYTES:
            raise SecretError(
                f"{self.path} holds {len(raw)} bytes, expected {SECRET_BYTES}; "
                "use --rotate-secret to replace it"
            )
        return raw

    def _read_hex(self) -> str:
        try:
            with open(self.path, 'r') as f:
                content = f.read().strip()
        except OSError as e:
            raise SecretError(f"cannot read {self.path}: {e}") from e
        if content.startswith("0x"):
            content = content[2:]
        return content
