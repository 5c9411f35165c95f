from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./holyloy.db"
    log_level: str = "INFO"

    # Internal API security
    rewards_api_key: str = ""

    # StepUp table: multipliers paired positionally with reward points.
    # Environment values are comma lists (STEP_UP_MULTIPLIERS=5,25,125).
    step_up_multipliers: Annotated[list[int], NoDecode] = Field(default_factory=lambda: [5, 25, 125, 500, 2500])
    step_up_reward_points: Annotated[list[int], NoDecode] = Field(default_factory=lambda: [500, 1500, 3000, 30000, 160000])

    @field_validator("step_up_multipliers", "step_up_reward_points", mode="before")
    @classmethod
    def _parse_int_list(cls, value: object) -> list[int]:
        if value is None:
            return []
        if isinstance(value, str):
            items = value.strip().strip("[]").split(",")
            return [int(item.strip()) for item in items if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [int(item) for item in value]
        return []

    @model_validator(mode="after")
    def _check_step_up_table(self) -> "Settings":
        if len(self.step_up_multipliers) != len(self.step_up_reward_points):
            raise ValueError("step_up_multipliers and step_up_reward_points must have the same length")
        if any(multiplier < 2 for multiplier in self.step_up_multipliers):
            raise ValueError("step_up_multipliers must all be greater than 1")
        if any(points <= 0 for points in self.step_up_reward_points):
            raise ValueError("step_up_reward_points must all be positive")
        return self

    # Cascade retries
    reward_cascade_max_attempts: int = 5
    reward_cascade_retry_backoff_seconds: float = 0.05

    # Wallet transfers
    income_to_commerce_fee_rate: float = 0.125

    # Threshold bonus hooks
    reward_bonus_hooks_enabled: bool = True
    shopping_voucher_points: int = 6000
    shopping_voucher_validity_days: int = 365
    infinity_reward_points_per_number: int = 195000
    infinity_reward_initial_numbers: int = 4


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
