"""Configuration for chatwire.

Config discovery (first match wins):
  1. explicit path passed to ``load_config``
  2. ``./chatwire.yaml``
  3. ``~/.config/chatwire/config.yaml``
  4. Built-in defaults

Example::

    profile: openrouter
    stream: true
    profiles:
      openrouter:
        url: https://openrouter.ai/api/v1
        api_key: sk-or-...
        model: openai/gpt-4o-mini
        sampling:
          temperature: 0.2
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

_logger = logging.getLogger(__name__)

DEFAULT_URL = "https://openrouter.ai/api/v1"


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class SamplingSpec:
    """Sampling knobs.  ``None`` means "leave it to the provider"."""

    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    repetition_penalty: float | None = None
    seed: int | None = None
    stop: str | list[str] | None = None

    def as_kwargs(self) -> dict[str, Any]:
        """Only the knobs that were set, keyed like ``ChatRequest`` fields."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass
class ProfileSpec:
    """A named provider profile."""

    provider: str = "openrouter"
    url: str = DEFAULT_URL
    api_key: str = ""
    model: str = ""
    timeout: float = 120
    object_response: bool = False  # json_object instead of json_schema
    require_parameters: bool | None = None
    transforms: list[str] = field(default_factory=list)
    models: list[str] = field(default_factory=list)
    route: str | None = None
    sampling: SamplingSpec = field(default_factory=SamplingSpec)
    extra_params: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatConfig:
    """Top-level config."""

    profile: str = "default"
    profiles: dict[str, ProfileSpec] = field(
        default_factory=lambda: {"default": ProfileSpec()}
    )
    stream: bool = True
    log_payloads: bool = False

    @property
    def active_profile(self) -> ProfileSpec:
        return self.profiles.get(self.profile, ProfileSpec())


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./chatwire.yaml"),
    Path.home() / ".config" / "chatwire" / "config.yaml",
]


def _parse_sampling(raw: dict[str, Any] | None) -> SamplingSpec:
    if not raw:
        return SamplingSpec()
    known = {f.name for f in fields(SamplingSpec)}
    unknown = set(raw) - known
    if unknown:
        _logger.warning("Ignoring unknown sampling keys: %s", ", ".join(sorted(unknown)))
    return SamplingSpec(**{k: v for k, v in raw.items() if k in known})


def _parse_profile(raw: dict[str, Any]) -> ProfileSpec:
    return ProfileSpec(
        provider=raw.get("provider", "openrouter"),
        url=raw.get("url", DEFAULT_URL),
        api_key=raw.get("api_key", ""),
        model=raw.get("model", ""),
        timeout=raw.get("timeout", 120),
        object_response=raw.get("object_response", False),
        require_parameters=raw.get("require_parameters"),
        transforms=list(raw.get("transforms") or []),
        models=list(raw.get("models") or []),
        route=raw.get("route"),
        sampling=_parse_sampling(raw.get("sampling")),
        extra_params=dict(raw.get("extra_params") or {}),
    )


def load_config(path: str | Path | None = None) -> ChatConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    ChatConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return ChatConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return ChatConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    profiles: dict[str, ProfileSpec] = {}
    for name, praw in (raw.get("profiles") or {}).items():
        profiles[name] = _parse_profile(praw or {})

    if not profiles:
        profiles["default"] = ProfileSpec()

    return ChatConfig(
        profile=raw.get("profile", next(iter(profiles))),
        profiles=profiles,
        stream=raw.get("stream", True),
        log_payloads=raw.get("log_payloads", False),
    )
