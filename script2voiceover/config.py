"""Runtime settings, read from the environment."""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional

from script2voiceover.errors import ConfigurationError
from script2voiceover.text.normalizer import MAX_TEXT_LENGTH

DEFAULT_ENDPOINT_ID = "eitsgz3gndkh3s"
RUNPOD_API_BASE = "https://api.runpod.ai/v2"


def _env_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _env_hosts(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(h.strip().lower() for h in value.split(",") if h.strip())


def check_chunk_length(max_chunk_length: int) -> int:
    """Chunks longer than ``MAX_TEXT_LENGTH`` would be rejected at validation and lost."""
    if not 1 <= max_chunk_length <= MAX_TEXT_LENGTH:
        raise ConfigurationError(
            f"Max chunk length must be between 1 and {MAX_TEXT_LENGTH}, got {max_chunk_length}"
        )
    return max_chunk_length


@dataclass(frozen=True)
class Settings:
    """Configuration shared by the CLI, the web app and the pipeline."""
    api_key: str = ""
    endpoint_id: str = DEFAULT_ENDPOINT_ID
    api_url: str = ""
    data_dir: Path = Path("./data")
    public_url: str = ""
    allowed_reference_hosts: tuple[str, ...] = field(default_factory=tuple)
    max_chunk_length: int = 180
    poll_interval: float = 2.0
    max_polls: int = 120
    debug: bool = False

    def __post_init__(self):
        check_chunk_length(self.max_chunk_length)

    @property
    def inference_url(self) -> str:
        """Base URL of the serverless endpoint (``/run`` and ``/status`` live under it)."""
        if self.api_url:
            return self.api_url.rstrip("/")
        return f"{RUNPOD_API_BASE}/{self.endpoint_id}"

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("RUNPOD_API_KEY not configured")
        return self.api_key

    def with_overrides(self, **changes) -> "Settings":
        """Return a copy with the non-None values in ``changes`` applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            api_key=env.get("RUNPOD_API_KEY", "").strip(),
            endpoint_id=env.get("RUNPOD_ENDPOINT_ID") or defaults.endpoint_id,
            api_url=env.get("RUNPOD_API_URL", ""),
            data_dir=Path(env.get("VOICEOVER_DATA_DIR") or defaults.data_dir),
            public_url=env.get("VOICEOVER_PUBLIC_URL", ""),
            allowed_reference_hosts=_env_hosts(env.get("VOICEOVER_ALLOWED_REFERENCE_HOSTS")),
            max_chunk_length=int(env.get("VOICEOVER_MAX_CHUNK_LENGTH") or defaults.max_chunk_length),
            poll_interval=float(env.get("VOICEOVER_POLL_INTERVAL") or defaults.poll_interval),
            max_polls=int(env.get("VOICEOVER_MAX_POLLS") or defaults.max_polls),
            debug=_env_bool(env.get("DEBUG")),
        )
