"""
Execution settings for one run of the interpreter.

Hosts may pass their own settings (snake_case or camelCase keys); use
`ExecutionConfig.capped` for anything that comes from an untrusted client
so the resource limits never exceed the server defaults.
"""
from typing import Any, Callable, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_MAX_STEPS = 100_000
DEFAULT_TIMEOUT_MS = 5_000
DEFAULT_MAX_CALL_DEPTH = 64
DEFAULT_MAX_OUTPUT_EVENTS = 1_000
DEFAULT_MAX_ARRAY_ELEMENTS = 100_000
DEFAULT_MAX_STRING_LENGTH = 100_000

# Numeric limits clamped by `capped`
_LIMIT_FIELDS = (
    'max_steps', 'timeout_ms', 'max_call_depth', 'max_output_events',
    'max_array_elements', 'max_string_length',
)


class ExecutionConfig(BaseModel):
    """Resource limits, pre-supplied INPUT values and output formatting for a run."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
    )

    max_steps: int = Field(DEFAULT_MAX_STEPS, ge=1)
    timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, ge=1)
    max_call_depth: int = Field(DEFAULT_MAX_CALL_DEPTH, ge=1)
    max_output_events: int = Field(DEFAULT_MAX_OUTPUT_EVENTS, ge=1)
    # Memory bounds: elements per array, characters per string value
    max_array_elements: int = Field(DEFAULT_MAX_ARRAY_ELEMENTS, ge=1)
    max_string_length: int = Field(DEFAULT_MAX_STRING_LENGTH, ge=1)
    inputs: Tuple[str, ...] = ()
    output_separator: str = " "
    random_seed: Optional[int] = None
    # Polled once per step; returning True stops the run with "Execution cancelled"
    cancel_check: Optional[Callable[[], bool]] = Field(default=None, exclude=True)

    @field_validator('inputs', mode='before')
    @classmethod
    def _inputs_as_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        if isinstance(value, (list, tuple)):
            return tuple(str(v) for v in value)
        return value

    @classmethod
    def capped(cls, settings: Optional[Mapping[str, Any]] = None) -> 'ExecutionConfig':
        """
        Build a config from client settings, clamped to the server defaults.

        Missing keys take the defaults; limits above the defaults are reduced
        to them. Invalid values raise pydantic.ValidationError.
        """
        defaults = cls()
        if not settings:
            return defaults
        requested = cls.model_validate(dict(settings))
        clamped = {
            name: min(getattr(requested, name), getattr(defaults, name))
            for name in _LIMIT_FIELDS
        }
        return requested.model_copy(update=clamped)
