from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Esplora-compatible explorers; "mp" and "bs" in commitments and proofs
    MEMPOOL_API_BASE: str = "https://mempool.space/api"
    BTC_API_BASE: str = "https://blockstream.info/api"
    BTC_PROVIDER: str = "mp"
    HTTP_TIMEOUT: float = 20.0

    # waiting for committed blocks
    POLL_INTERVAL_S: float = 10.0
    CANCEL_CHECK_S: float = 0.25
    # "since last block" telemetry
    TIP_REFRESH_S: float = 60.0
    BLOCK_INTERVAL_S: int = 600

    MAX_ITERATIONS: int = 1000
    COMMIT_TAG: str = "BBRNG-commit"

    LOG_LEVEL: str = "INFO"


settings = Settings()
