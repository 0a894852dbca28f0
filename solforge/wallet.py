"""
Agent wallet provider.

The agent wallet is the server-custodied keypair that pays for and signs
every transaction the executor submits. Its secret arrives as a JSON array
of 64 numbers (32-byte seed followed by the 32-byte public key) through a
``SecretSource``.

Security notes:
- The source is queried on every call, so configuration changes are
  observed without a restart and no keypair outlives the request using it.
- The secret is never logged, returned or placed in exception context;
  diagnostics name only what was wrong with its shape.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from solders.keypair import Keypair

from .config import AGENT_WALLET_ENV_VAR, SecretSource, SettingsSecretSource
from .exceptions import AgentWalletNotConfiguredError, InvalidPrivateKeyError
from .validators import validate_secret_key_array

logger = logging.getLogger(__name__)

INVALID_FORMAT_MESSAGE = (
    f"Invalid {AGENT_WALLET_ENV_VAR} format - must be array of 64 numbers"
)


@dataclass(frozen=True)
class WalletStatus:
    """Read-only view of the agent wallet."""
    enabled: bool
    public_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"enabled": self.enabled}
        if self.public_key is not None:
            data["publicKey"] = self.public_key
        return data


class AgentWallet:
    """
    Loads the agent keypair from a secret source on demand.

    Args:
        source: Where the secret is read from. Defaults to the settings-backed
            source that re-reads the environment and ``.env`` per call.
        env_var: Name of the secret value.
    """

    def __init__(
        self,
        source: Optional[SecretSource] = None,
        env_var: str = AGENT_WALLET_ENV_VAR,
    ):
        self._source = source or SettingsSecretSource()
        self._env_var = env_var

    def load_wallet(self) -> Optional[Keypair]:
        """
        Build the keypair from the current secret value.

        Returns:
            Keypair, or None when the secret is absent, empty or malformed.
        """
        raw = self._source.get(self._env_var)
        if raw is None or not raw.strip():
            return None

        try:
            values = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Failed to parse %s: %s", self._env_var, e.msg)
            return None

        try:
            buffer = validate_secret_key_array(values)
        except InvalidPrivateKeyError:
            logger.error(INVALID_FORMAT_MESSAGE)
            return None

        try:
            return Keypair.from_bytes(bytes(buffer))
        except (ValueError, TypeError) as e:
            logger.error(
                "Failed to construct agent wallet keypair from %s: %s",
                self._env_var, type(e).__name__,
            )
            return None
        finally:
            for i in range(len(buffer)):
                buffer[i] = 0

    def public_key(self) -> Optional[str]:
        keypair = self.load_wallet()
        return str(keypair.pubkey()) if keypair is not None else None

    def is_enabled(self) -> bool:
        return self.load_wallet() is not None

    def status(self) -> WalletStatus:
        keypair = self.load_wallet()
        if keypair is None:
            return WalletStatus(enabled=False)
        return WalletStatus(enabled=True, public_key=str(keypair.pubkey()))

    def require_keypair(self) -> Keypair:
        """
        Return the keypair or raise ``AgentWalletNotConfiguredError``.

        Callers should load once per request and reuse the result.
        """
        keypair = self.load_wallet()
        if keypair is None:
            raise AgentWalletNotConfiguredError()
        return keypair

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(source={type(self._source).__name__})"


__all__ = [
    "WalletStatus",
    "AgentWallet",
    "INVALID_FORMAT_MESSAGE",
]
