from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_name: str = "contribledger"
    redis_url: str = "redis://localhost:6379/0"
    cron_secret: str = ""
    coingecko_api_key: str = ""
    coingecko_api_base: str = "https://api.coingecko.com"

    # Provider endpoints: chain slug -> comma-separated URLs, tried in order
    chain_endpoints: dict[str, str] = {}
    provider_api_key: str = ""
    # Default AuthStrategy ("none", "bearer", "header:<name>", "query:<param>") and per-chain overrides
    provider_auth: str = "none"
    chain_auth: dict[str, str] = {}
    chain_api_keys: dict[str, str] = {}
    min_confirmations: dict[str, int] = {}

    rpc_timeout: float = 15.0
    rpc_retries: int = 2
    rpc_backoff: float = 0.3
    rpc_rate_per_second: float = 10.0
    probe_endpoints_on_startup: bool = False

    scan_max_blocks: int = 200
    scan_checkpoint_every: int = 5
    scan_budget_seconds: float = 50.0
    scan_lease_ttl: int = 120
    scan_default_lookback: int | None = None  # None = per-chain default

    pricing_timeout: float = 10.0
    debug: bool = False
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    class Config:
        env_file = ".env"


settings = Settings()
