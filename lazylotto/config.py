import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field

MIRROR_NODES = {
    "mainnet": "https://mainnet-public.mirrornode.hedera.com",
    "testnet": "https://testnet.mirrornode.hedera.com",
    "previewnet": "https://previewnet.mirrornode.hedera.com",
    "local": "http://localhost:5551",
}


class Settings(BaseModel):
    environment: str = Field("testnet", description="mainnet | testnet | previewnet | local")
    mirror_node_url: Optional[str] = Field(None, description="Overrides the per-environment mirror node")
    mirror_lag_seconds: int = Field(5, ge=0, description="Age an event needs before mirror reads see it")
    mirror_timeout: int = Field(10, gt=0, description="HTTP timeout for mirror node requests")
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    log_level: str = "INFO"
    port: int = 8000
    lazy_decimals: int = Field(1, ge=0)
    default_burn_percentage: int = Field(0, ge=0, le=10_000)
    initial_hbar: int = Field(1_000, ge=0, description="HBAR credited to accounts opened through the API")

    @property
    def mirror_url(self) -> str:
        if self.mirror_node_url:
            return self.mirror_node_url.rstrip("/")
        return MIRROR_NODES.get(self.environment, MIRROR_NODES["testnet"])

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv("ENVIRONMENT", "testnet").lower(),
            mirror_node_url=os.getenv("MIRROR_NODE_URL") or None,
            mirror_lag_seconds=int(os.getenv("MIRROR_LAG_SECONDS", 5)),
            mirror_timeout=int(os.getenv("MIRROR_TIMEOUT", 10)),
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=int(os.getenv("PORT", 8000)),
            lazy_decimals=int(os.getenv("LAZY_DECIMALS", 1)),
            default_burn_percentage=int(os.getenv("DEFAULT_BURN_PERCENTAGE", 0)),
            initial_hbar=int(os.getenv("INITIAL_HBAR", 1_000)),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
