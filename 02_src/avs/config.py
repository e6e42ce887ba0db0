"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "avs_pipeline.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass
class Settings:
    """Runtime settings, normally read from the environment."""

    database_url: str | None = None
    rpc_url: str | None = None
    contract_address: str | None = None
    validator_private_key: str | None = None
    ipfs_host: str | None = None
    ipfs_api_host: str = "https://api.pinata.cloud/pinning/pinJSONToIPFS"
    ipfs_api_key: str | None = None
    ipfs_api_secret: str | None = None
    oracle_url: str = "https://api.binance.com/api/v3/ticker/price"
    ledger_timeout: float = 120.0
    ledger_poll_interval: float = 5.0
    http_timeout: float = 10.0
    api_host: str = "localhost"
    api_port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            rpc_url=os.getenv("RPC_URL"),
            contract_address=os.getenv("WWAN_ADDRESS"),
            validator_private_key=(
                os.getenv("VALIDATOR_PRIVATE_KEY")
                or os.getenv("PRIVATE_KEY_PERFORMER")
            ),
            ipfs_host=os.getenv("IPFS_HOST"),
            ipfs_api_host=os.getenv("IPFS_API_HOST", cls.ipfs_api_host),
            ipfs_api_key=os.getenv("IPFS_API_KEY"),
            ipfs_api_secret=os.getenv("IPFS_API_SECRET"),
            oracle_url=os.getenv("ORACLE_URL", cls.oracle_url),
            ledger_timeout=_env_float("LEDGER_TIMEOUT", cls.ledger_timeout),
            ledger_poll_interval=_env_float(
                "LEDGER_POLL_INTERVAL", cls.ledger_poll_interval
            ),
            http_timeout=_env_float("HTTP_TIMEOUT", cls.http_timeout),
            api_host=os.getenv("API_HOST", cls.api_host),
            api_port=int(os.getenv("API_PORT", str(cls.api_port))),
        )

    @property
    def ledger_configured(self) -> bool:
        return bool(self.rpc_url and self.contract_address)
