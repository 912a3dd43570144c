"""
Flight Oracles Configuration Module

Central configuration management with environment variable support.

The deterministic status override is not an environment variable: it is
read from the local secret parameters file (dotenv format) so that it
travels with the mnemonic and other development-only settings.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

from dotenv import dotenv_values

from .models import CONSENSUS_THRESHOLD, ORACLE_POOL_SIZE, RESERVED_ACCOUNTS_COUNT


DEFAULT_SECRETS_FILE = "secret-parameters.env"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def load_secret_parameters(path: Optional[str] = None) -> Dict[str, Optional[str]]:
    """
    Read the secret parameters file.

    Args:
        path: File to read (defaults to $ORACLE_SECRETS_FILE, then
            secret-parameters.env in the working directory)

    Returns:
        Mapping of parameter names to values; empty if the file is missing
    """
    path = path or os.getenv("ORACLE_SECRETS_FILE", DEFAULT_SECRETS_FILE)
    if not os.path.exists(path):
        return {}
    return dict(dotenv_values(path))


@dataclass
class LedgerConfig:
    """Ethereum node and FlightSurety contract configuration."""
    url: str = "http://127.0.0.1:8545"
    app_address: str = ""
    data_address: str = ""

    # Truffle build directory holding FlightSuretyApp.json / FlightSuretyData.json
    artifacts_dir: Optional[str] = None

    # Transaction settings
    gas: int = 4712388
    gas_price: int = 100000000000

    # Authorize the app contract on the data contract at startup
    authorize_caller: bool = True

    # Seconds between event filter polls
    poll_interval: float = 1.0

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Load configuration from environment variables."""
        return cls(
            url=os.getenv("LEDGER_URL", "http://127.0.0.1:8545"),
            app_address=os.getenv("LEDGER_APP_ADDRESS", ""),
            data_address=os.getenv("LEDGER_DATA_ADDRESS", ""),
            artifacts_dir=os.getenv("LEDGER_ARTIFACTS_DIR"),
            gas=int(os.getenv("LEDGER_GAS", "4712388")),
            gas_price=int(os.getenv("LEDGER_GAS_PRICE", "100000000000")),
            authorize_caller=_env_bool("LEDGER_AUTHORIZE_CALLER", "true"),
            poll_interval=float(os.getenv("LEDGER_POLL_INTERVAL", "1.0")),
        )


@dataclass
class OracleConfig:
    """Oracle pool and consensus configuration."""
    pool_size: int = ORACLE_POOL_SIZE
    reserved_accounts: int = RESERVED_ACCOUNTS_COUNT
    threshold: int = CONSENSUS_THRESHOLD

    # Upper bound on how long a round stays OPEN (None = unbounded)
    round_timeout_seconds: Optional[float] = 30.0

    # Always answer LATE_AIRLINE so consensus outcomes are reproducible
    force_late_airline: bool = False

    @classmethod
    def from_env(cls, secrets: Optional[Dict[str, Optional[str]]] = None) -> "OracleConfig":
        """Load configuration from environment variables and the secrets file."""
        secrets = load_secret_parameters() if secrets is None else secrets
        force = (secrets.get("FORCE_LATE_AIRLINE") or "false").lower() in ("1", "true", "yes")
        timeout = os.getenv("ORACLE_ROUND_TIMEOUT_SECONDS", "30")
        return cls(
            pool_size=int(os.getenv("ORACLE_POOL_SIZE", str(ORACLE_POOL_SIZE))),
            reserved_accounts=int(os.getenv("ORACLE_RESERVED_ACCOUNTS", str(RESERVED_ACCOUNTS_COUNT))),
            threshold=int(os.getenv("ORACLE_THRESHOLD", str(CONSENSUS_THRESHOLD))),
            round_timeout_seconds=float(timeout) if timeout else None,
            force_late_airline=force,
        )


@dataclass
class ListenerConfig:
    """Resubscription backoff for the OracleRequest listener."""
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 30.0
    backoff_multiplier: float = 2.0

    @classmethod
    def from_env(cls) -> "ListenerConfig":
        """Load configuration from environment variables."""
        return cls(
            backoff_base_seconds=float(os.getenv("LISTENER_BACKOFF_BASE_SECONDS", "0.5")),
            backoff_max_seconds=float(os.getenv("LISTENER_BACKOFF_MAX_SECONDS", "30")),
            backoff_multiplier=float(os.getenv("LISTENER_BACKOFF_MULTIPLIER", "2")),
        )


@dataclass
class RedisConfig:
    """Redis connection configuration for the result store."""
    enabled: bool = False
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    ssl: bool = False

    key_prefix: str = "flight_oracles"
    history_length: int = 500

    @property
    def url(self) -> str:
        """Build Redis URL."""
        protocol = "rediss" if self.ssl else "redis"
        auth = f":{self.password}@" if self.password else ""
        return f"{protocol}://{auth}{self.host}:{self.port}/{self.db}"

    @classmethod
    def from_env(cls) -> "RedisConfig":
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("REDIS_ENABLED"),
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", "6379")),
            db=int(os.getenv("REDIS_DB", "0")),
            password=os.getenv("REDIS_PASSWORD"),
            ssl=_env_bool("REDIS_SSL"),
            key_prefix=os.getenv("REDIS_KEY_PREFIX", "flight_oracles"),
            history_length=int(os.getenv("REDIS_HISTORY_LENGTH", "500")),
        )


@dataclass
class ReportingConfig:
    """Where consensus outcomes are published."""
    # In-memory history served by the status API
    history_length: int = 200

    # Optional HTTP endpoint receiving each result as JSON
    webhook_url: Optional[str] = None
    webhook_timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "ReportingConfig":
        """Load configuration from environment variables."""
        return cls(
            history_length=int(os.getenv("REPORTING_HISTORY_LENGTH", "200")),
            webhook_url=os.getenv("REPORTING_WEBHOOK_URL"),
            webhook_timeout_seconds=float(os.getenv("REPORTING_WEBHOOK_TIMEOUT_SECONDS", "5")),
        )


@dataclass
class ApiConfig:
    """Status API server configuration."""
    host: str = "127.0.0.1"
    port: int = 3000

    @classmethod
    def from_env(cls) -> "ApiConfig":
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("API_HOST", "127.0.0.1"),
            port=int(os.getenv("API_PORT", "3000")),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Load configuration from environment variables."""
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO"),
            file_path=os.getenv("LOG_FILE_PATH"),
        )


def configure_logging(config: LoggingConfig) -> None:
    """Apply a LoggingConfig to the root logger."""
    handlers = [logging.StreamHandler()]
    if config.file_path:
        handlers.append(logging.FileHandler(config.file_path))
    logging.basicConfig(
        level=getattr(logging, config.level.upper(), logging.INFO),
        format=config.format,
        handlers=handlers,
        force=True,
    )


@dataclass
class OracleServerConfig:
    """Master configuration for the oracle server."""
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    oracles: OracleConfig = field(default_factory=OracleConfig)
    listener: ListenerConfig = field(default_factory=ListenerConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "OracleServerConfig":
        """Load all configuration from environment variables."""
        return cls(
            ledger=LedgerConfig.from_env(),
            oracles=OracleConfig.from_env(),
            listener=ListenerConfig.from_env(),
            redis=RedisConfig.from_env(),
            reporting=ReportingConfig.from_env(),
            api=ApiConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    def validate(self) -> Dict[str, Any]:
        """
        Validate configuration and return any warnings/errors.

        Returns:
            Dictionary with 'valid' boolean and 'messages' list
        """
        messages = []
        valid = True

        if self.oracles.threshold < 1:
            messages.append("ERROR: Consensus threshold must be at least 1")
            valid = False

        if self.oracles.pool_size < self.oracles.threshold:
            messages.append(
                "WARNING: Oracle pool is smaller than the consensus threshold; "
                "no round can ever be decided"
            )

        if self.oracles.reserved_accounts < 1:
            messages.append("ERROR: At least one reserved account (the owner) is required")
            valid = False

        if not self.ledger.app_address:
            messages.append("WARNING: App contract address not configured (web3 ledger unavailable)")

        if self.oracles.force_late_airline:
            messages.append("WARNING: FORCE_LATE_AIRLINE is enabled; oracle answers are not random")

        return {"valid": valid, "messages": messages}


# Global configuration instance
_config: Optional[OracleServerConfig] = None


def get_config() -> OracleServerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = OracleServerConfig.from_env()
    return _config


def set_config(config: OracleServerConfig) -> None:
    """Set the global configuration instance (for testing)."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
