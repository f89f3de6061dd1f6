import math
from typing import Any

from decouple import config
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from speedrelay.exceptions import InvalidCommand

# Server configuration provided by the environment
SPEEDRELAY_HOST: str = config("SPEEDRELAY_HOST", default="localhost")
SPEEDRELAY_PORT: int = config("SPEEDRELAY_PORT", default=8765, cast=int)
DELIVERY_TIMEOUT: float = config("SPEEDRELAY_DELIVERY_TIMEOUT", default=1.0, cast=float)

# Optional NATS fan-out for broadcast events
NATS_BROKER = config("NATS_BROKER", default=None)
NATS_SUBJECT_TEMPLATE: str = config(
    "SPEEDRELAY_NATS_SUBJECT", default="speedrelay.sessions.{session_id}.state"
)

# Log configuration
LOG_LEVEL: str = config("LOG_LEVEL", default="INFO").upper()
LOG_FORMAT: str = config("LOG_FORMAT", default="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
LOG_DATETIME_FORMAT: str = config("LOG_DATETIME_FORMAT", default="%Y-%m-%d %H:%M:%S")
LOGGER_NAME: str = config("LOGGER_NAME", default="speedrelay")


class SpeedSettings(BaseModel):
    """
    User settings consumed read-only by the coordinator and the contexts.

    Args:
        default_speed (float): Speed applied on load and by the reset shortcut.
        speed_step (float): Increment used by the relative shortcuts.
        min_speed (float): Lower clamping bound.
        max_speed (float): Upper clamping bound, must be greater than min_speed.
        apply_on_load (bool): Whether contexts enforce the speed on newly playing media.
        remember_last_speed (bool): Whether the coordinator remembers a speed per session.
        language (str): UI language of the status surfaces.
        decrease_key (str): Shortcut that decreases the speed.
        reset_key (str): Shortcut that restores the default speed.
        increase_key (str): Shortcut that increases the speed.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, allow_inf_nan=False
    )

    default_speed: float = 1.0
    speed_step: float = Field(default=0.25, gt=0)
    min_speed: float = Field(default=0.1, gt=0)
    max_speed: float = 4.0
    apply_on_load: bool = True
    remember_last_speed: bool = True
    language: str = "en"
    decrease_key: str = "a"
    reset_key: str = "s"
    increase_key: str = "d"

    @field_validator("decrease_key", "reset_key", "increase_key")
    @classmethod
    def _normalize_key(cls, value: str) -> str:
        value = value.strip().lower()
        if len(value) != 1 or not value.isalnum():
            raise ValueError(f"Shortcut must be a single alphanumeric character, got {value!r}")
        return value

    @model_validator(mode="after")
    def _check_ranges(self) -> "SpeedSettings":
        if self.min_speed >= self.max_speed:
            raise ValueError(
                f"min_speed ({self.min_speed}) must be less than max_speed ({self.max_speed})"
            )
        keys = {self.decrease_key, self.reset_key, self.increase_key}
        if len(keys) != 3:
            raise ValueError("Shortcut keys must be distinct")
        return self

    def clamp(self, value: float) -> float:
        """Clamp a speed into [min_speed, max_speed].

        Raises:
            InvalidCommand: if the value is not a finite number.
        """
        try:
            numeric = float(value)
        except (TypeError, ValueError) as e:
            raise InvalidCommand(f"Speed must be a number, got {value!r}") from e
        if not math.isfinite(numeric):
            raise InvalidCommand(f"Speed must be finite, got {value!r}")
        return min(max(numeric, self.min_speed), self.max_speed)

    def merged(self, changes: dict[str, Any]) -> "SpeedSettings":
        """Return a new validated settings object with partial changes applied.

        Keys may use either the wire (camelCase) or the attribute names.
        """
        data = self.model_dump()
        for key, value in changes.items():
            field_name = _FIELD_BY_ALIAS.get(key, key)
            if field_name not in data:
                raise ValueError(f"Unknown setting: {key}")
            data[field_name] = value
        return SpeedSettings.model_validate(data)


_FIELD_BY_ALIAS = {to_camel(name): name for name in SpeedSettings.model_fields}

# default settings used when the external store has not provided any
default_settings = SpeedSettings()
