"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# This class uses pydantic-settings to read configuration from TWO
# sources (in priority order):
#
#   1. **Environment variables** -- e.g., DFS_PROXY_URL=https://proxy.example
#      (highest priority -- always wins)
#   2. **.env file** -- key=value lines in the project root .env file
#      (lower priority -- used for local development)
#
# Field name `dfs_proxy_url` maps to env var `DFS_PROXY_URL`.
#
# SECURITY: The .env file is in .gitignore -- never committed to the repo.
# Provider credentials (DFS_LOGIN / DFS_PASSWORD / DFS_PROXY_API_KEY) live
# only there or in the deployment environment.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.resilience import TaskOptions


class Settings(BaseSettings):
    """demandCorpus application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Keyword Volume API (DataForSEO via forwarding proxy) ===
    # Empty string = "not configured" → the provider reports itself
    # unavailable and every call fails terminally as OFFLINE.
    dfs_proxy_url: str = ""
    dfs_proxy_api_key: str = ""
    dfs_login: str = ""
    dfs_password: str = ""
    dfs_location_code: int = 2356  # India
    dfs_language_code: str = "en"
    default_country: str = "IN"

    # === Global Rate Gate (shared by every category) ===
    rate_gate_max_concurrent: int = 2
    rate_gate_requests_per_minute: int = 10

    # === Resilient Call Layer ===
    resilience_timeout_seconds: float = 120.0
    resilience_max_retries: int = 2
    resilience_base_delay_seconds: float = 1.0
    resilience_max_jitter_seconds: float = 0.5

    # === Growth Engine ===
    growth_target_valid: int = 2500
    growth_target_valid_lite: int = 600
    growth_target_per_anchor: int = 40
    growth_max_attempts: int = 12
    growth_batch_size: int = 500
    growth_max_candidates_per_pass: int = 5000
    growth_discovery_min_candidates: int = 200
    growth_discovery_max_pass: int = 2
    growth_discovery_seeds_per_pass: int = 20
    growth_max_absent_rounds: int = 3
    growth_use_secondary_signal: bool = True
    hydrate_per_anchor_limit: int = 60
    expansion_min_anchors: int = 6
    consolidation_min_valid_per_anchor: int = 2

    # === Job Control ===
    job_heartbeat_interval_seconds: float = 3.0
    job_stale_after_seconds: float = 60.0
    job_reap_after_seconds: float = 180.0

    # === Bounded Task Pool ===
    pool_concurrency: int = 3

    # === Volume Cache ===
    volume_cache_ttl_seconds: int = 6 * 3600
    volume_cache_max_size: int = 50_000

    # === Persistence ===
    corpus_db_path: str = "data/corpus.db"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def task_options(self) -> TaskOptions:
        """Resilient runner options built from the ``resilience_*`` fields."""
        return TaskOptions(
            timeout_seconds=self.resilience_timeout_seconds,
            max_retries=self.resilience_max_retries,
            base_delay_seconds=self.resilience_base_delay_seconds,
            max_jitter_seconds=self.resilience_max_jitter_seconds,
        )

    def has_provider_credentials(self) -> bool:
        """True when proxy URL and DataForSEO login/password are all set."""
        return bool(self.dfs_proxy_url and self.dfs_login and self.dfs_password)
