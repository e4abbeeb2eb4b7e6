"""Configuration for Vault Guardian."""

from decimal import Decimal
from typing import List, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Vault Guardian configuration."""

    # Trigger bounds (percentage points of collateralization ratio)
    min_col_ratio_trigger_offset: Decimal = Field(
        default=Decimal("5"), gt=0, alias="MIN_COL_RATIO_TRIGGER_OFFSET"
    )
    next_coll_ratio_offset: Decimal = Field(default=Decimal("3"), ge=0, alias="NEXT_COLL_RATIO_OFFSET")
    default_threshold_from_lowest_sl: Decimal = Field(
        default=Decimal("45"), ge=0, alias="DEFAULT_THRESHOLD_FROM_LOWEST_SL"
    )
    slider_step: int = Field(default=1, alias="SLIDER_STEP")

    # Validation limits
    max_debt_for_stop_loss: Decimal = Field(default=Decimal("20000000"), alias="MAX_DEBT_FOR_STOP_LOSS")

    # Pipeline
    proxy_wait_to_continue: bool = Field(default=True, alias="PROXY_WAIT_TO_CONTINUE")

    # Redis - chain indexer output
    redis_host: str = Field(default="redis", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_db: int = Field(default=0, alias="REDIS_DB")
    redis_key_prefix: str = Field(default="vaults", alias="REDIS_KEY_PREFIX")

    # Monitoring
    check_interval_seconds: int = Field(default=60, alias="CHECK_INTERVAL_SECONDS")
    watched_vaults: str = Field(default="", alias="WATCHED_VAULTS")  # protocol:owner:market,...

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def watched_vault_list(self) -> List[Tuple[str, str, str]]:
        """Parse WATCHED_VAULTS into (protocol, owner, market) tuples."""
        vaults = []
        for entry in self.watched_vaults.split(","):
            parts = [p.strip() for p in entry.split(":")]
            if len(parts) == 3 and all(parts):
                vaults.append((parts[0], parts[1], parts[2]))
        return vaults

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }


settings = Settings()
