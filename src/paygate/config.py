"""Application configuration via environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    allowed_ips: list[str] = []
    secret_key: str = "change-me"
    server_name: str = "LND-RPC-Server"
    server_version: str = "2.0.0"

    # Logging
    log_level: str = "info"
    json_logs: bool = True
    log_file: Path | None = None

    # File-based queue
    data_dir: Path = Path("data")

    # LND REST (on-chain + Lightning)
    lnd_rest_url: str = "https://localhost:8080"
    lnd_tls_cert_path: str = "~/.lnd/tls.cert"
    lnd_macaroon_path: str = "~/.lnd/data/chain/bitcoin/mainnet/admin.macaroon"
    lnd_timeout: float = 60.0

    # Elements / Liquid JSON-RPC
    liquid_rpc_host: str = "localhost"
    liquid_rpc_port: int = 7041
    liquid_rpc_user: str = "liquid"
    liquid_rpc_password: str = ""
    liquid_timeout: float = 30.0

    # Sidechain address shapes, overriding the built-in table when set
    liquid_address_patterns: list[str] | None = None

    # Webhooks
    webhook_enabled: bool = True
    webhook_timeout: float = 10.0
    webhook_retry_attempts: int = 3
    webhook_retry_delay: float = 5.0
    webhook_log_failures: bool = True
    webhook_save_failures: bool = True
    webhook_default_headers: dict[str, str] = {"User-Agent": "LND-RPC-Server-Webhook/2.0"}
    # Seconds between automatic reprocessing runs; 0 disables the background task
    webhook_reprocess_interval: float = 0.0

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "PAYGATE_",
    }

    @property
    def pending_dir(self) -> Path:
        return self.data_dir / "payment_req"

    @property
    def sent_dir(self) -> Path:
        return self.data_dir / "payment_sent"

    @property
    def webhook_failures_dir(self) -> Path:
        return self.data_dir / "webhook_failures"

    @property
    def liquid_rpc_url(self) -> str:
        """RPC endpoint without credentials; auth is sent separately."""
        return f"http://{self.liquid_rpc_host}:{self.liquid_rpc_port}"
