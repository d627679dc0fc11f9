from pydantic import BaseModel
from typing import Optional
import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_seed() -> Optional[int]:
    raw = os.getenv("GSRF_RNG_SEED", "").strip()
    return int(raw) if raw else None


class Settings(BaseModel):
    APP_NAME: str = "Ground Station RF v1.0"

    # Tick cadence
    UPDATE_HZ: float = float(os.getenv("GSRF_UPDATE_HZ", "10.0"))
    SYNC_INTERVAL_S: float = float(os.getenv("GSRF_SYNC_INTERVAL_S", "5.0"))

    # GPSDO oven warmup. Fast mode is for bench demos and tests.
    FAST_WARMUP: bool = _env_bool("GSRF_FAST_WARMUP", "false")
    GPSDO_WARMUP_S: float = 600.0
    GPSDO_FAST_WARMUP_S: float = 20.0
    GNSS_ACQUIRE_DELAY_S: float = float(os.getenv("GSRF_GNSS_ACQUIRE_DELAY_S", "5.0"))

    # None = fresh entropy every run
    RNG_SEED: Optional[int] = _env_seed()

    # Constellation render step used when the caller does not pass dt
    IQ_FRAME_DT_S: float = 0.033

    LOG_LEVEL: str = os.getenv("GSRF_LOG_LEVEL", "INFO").upper()

    @property
    def gpsdo_warmup_s(self) -> float:
        return self.GPSDO_FAST_WARMUP_S if self.FAST_WARMUP else self.GPSDO_WARMUP_S


settings = Settings()
