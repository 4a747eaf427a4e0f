from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TypeVar

E = TypeVar("E", bound=StrEnum)


class Network(StrEnum):
    TESTNET = "testnet"
    MAINNET = "mainnet"


class RpcProvider(StrEnum):
    NEAR_OFFICIAL = "near-official"
    BLOCKPI = "blockpi"


RPC_ENDPOINTS: dict[tuple[RpcProvider, Network], str] = {
    (RpcProvider.NEAR_OFFICIAL, Network.MAINNET): "https://rpc.mainnet.near.org",
    (RpcProvider.NEAR_OFFICIAL, Network.TESTNET): "https://rpc.testnet.near.org",
    (RpcProvider.BLOCKPI, Network.MAINNET): "https://public-rpc.blockpi.io/http/near",
    (RpcProvider.BLOCKPI, Network.TESTNET): "https://public-rpc.blockpi.io/http/near-testnet",
}

OCT_TOKEN_ACCOUNTS: dict[Network, str] = {
    Network.MAINNET: "f5cfbc74057c610c8ef151a439252680ac68c6dc.factory.bridge.near",
    Network.TESTNET: "oct.beta_oct_relay.testnet",
}


@dataclass(frozen=True)
class Settings:
    """Runtime settings loaded from environment with fail-fast validation.

    The CLI builds one of these, applies its flags on top, and hands the
    resolved values (endpoint URL, timeouts, attempt bound) to the core.
    """

    network: Network = Network.TESTNET
    rpc_provider: RpcProvider = RpcProvider.NEAR_OFFICIAL
    rpc_url: str = ""
    readiness_timeout_secs: float = 10.0
    http_timeout_secs: float = 30.0
    max_attempts: int = 4
    credentials_dir: str = ""

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            network=_get_env_choice(env, "OCT_NETWORK", Network, Network.TESTNET),
            rpc_provider=_get_env_choice(
                env, "OCT_RPC_PROVIDER", RpcProvider, RpcProvider.NEAR_OFFICIAL
            ),
            rpc_url=env.get("OCT_RPC_URL", "").strip(),
            readiness_timeout_secs=_get_env_float(
                env, "OCT_RPC_TIMEOUT_SECS", default=10.0, minimum=0.5
            ),
            http_timeout_secs=_get_env_float(env, "OCT_HTTP_TIMEOUT_SECS", default=30.0, minimum=1.0),
            max_attempts=_get_env_int(env, "OCT_MAX_ATTEMPTS", default=4, minimum=1, maximum=20),
            credentials_dir=env.get("OCT_CREDENTIALS_DIR", "").strip(),
        ).normalized()

    def normalized(self) -> Settings:
        """Validate all fields. Raises ValueError on invalid configuration."""
        network = Network(self.network)
        rpc_provider = RpcProvider(self.rpc_provider)
        rpc_url = self.rpc_url.strip()
        if rpc_url and not rpc_url.startswith(("http://", "https://")):
            raise ValueError(f"OCT_RPC_URL must be an http(s) URL, got: {rpc_url!r}")
        if self.readiness_timeout_secs <= 0:
            raise ValueError(
                f"OCT_RPC_TIMEOUT_SECS must be > 0, got: {self.readiness_timeout_secs}"
            )
        if self.http_timeout_secs <= 0:
            raise ValueError(f"OCT_HTTP_TIMEOUT_SECS must be > 0, got: {self.http_timeout_secs}")
        if self.max_attempts < 1:
            raise ValueError(f"OCT_MAX_ATTEMPTS must be >= 1, got: {self.max_attempts}")
        return Settings(
            network=network,
            rpc_provider=rpc_provider,
            rpc_url=rpc_url,
            readiness_timeout_secs=self.readiness_timeout_secs,
            http_timeout_secs=self.http_timeout_secs,
            max_attempts=self.max_attempts,
            credentials_dir=self.credentials_dir,
        )

    @property
    def endpoint_url(self) -> str:
        """Explicit ``rpc_url`` if set, else the provider's endpoint for the network."""
        return self.rpc_url or RPC_ENDPOINTS[(self.rpc_provider, self.network)]

    @property
    def credentials_path(self) -> Path:
        if self.credentials_dir:
            return Path(self.credentials_dir).expanduser()
        return Path.home() / ".near-credentials" / str(self.network)

    @property
    def oct_token_account(self) -> str:
        return OCT_TOKEN_ACCOUNTS[self.network]

    def explorer_tx_url(self, tx_hash: str) -> str:
        return f"https://explorer.{self.network}.near.org/transactions/{tx_hash}"


def _get_env_choice(env: Mapping[str, str], name: str, enum: type[E], default: E) -> E:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return enum(raw.strip().lower())
    except ValueError:
        choices = ", ".join(member.value for member in enum)
        raise ValueError(f"{name} must be one of: {choices}, got: {raw!r}") from None


def _get_env_int(
    env: Mapping[str, str], name: str, default: int, minimum: int, maximum: int
) -> int:
    """Parse an integer from an environment variable with bounds checking.

    Raises:
        ValueError: If the value is not an integer or is outside bounds.
    """
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from None
    if not minimum <= value <= maximum:
        raise ValueError(f"{name} must be between {minimum} and {maximum}, got: {value}")
    return value


def _get_env_float(env: Mapping[str, str], name: str, default: float, minimum: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {value}")
    return value
