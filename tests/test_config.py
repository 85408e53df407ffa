"""Tests for YAML config loading."""

from __future__ import annotations

import logging
import textwrap

from chatwire.config import (
    DEFAULT_URL,
    ChatConfig,
    ProfileSpec,
    SamplingSpec,
    load_config,
)


def _write(tmp_path, text: str):
    path = tmp_path / "chatwire.yaml"
    path.write_text(textwrap.dedent(text))
    return path


class TestDefaults:
    def test_default_config(self):
        config = ChatConfig()
        assert config.stream is True
        assert config.log_payloads is False
        assert config.active_profile.url == DEFAULT_URL
        assert config.active_profile.model == ""

    def test_unknown_active_profile_falls_back(self):
        assert ChatConfig(profile="nope").active_profile == ProfileSpec()

    def test_missing_path_returns_defaults(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING, logger="chatwire.config"):
            config = load_config(tmp_path / "missing.yaml")
        assert config == ChatConfig()
        assert "not found" in caplog.text

    def test_empty_file(self, tmp_path):
        config = load_config(_write(tmp_path, ""))
        assert "default" in config.profiles


class TestLoad:
    def test_full_profile(self, tmp_path):
        path = _write(tmp_path, """
            profile: router
            stream: false
            log_payloads: true
            profiles:
              router:
                url: https://example.test/v1
                api_key: sk-test
                model: openai/gpt-4o-mini
                timeout: 30
                object_response: true
                require_parameters: true
                transforms: [middle-out]
                models: [a, b]
                route: fallback
                sampling:
                  temperature: 0.2
                  max_tokens: 256
                extra_params:
                  reasoning:
                    effort: low
        """)
        config = load_config(path)
        assert config.profile == "router"
        assert config.stream is False
        assert config.log_payloads is True

        p = config.active_profile
        assert p.url == "https://example.test/v1"
        assert p.api_key == "sk-test"
        assert p.model == "openai/gpt-4o-mini"
        assert p.timeout == 30
        assert p.object_response is True
        assert p.require_parameters is True
        assert p.transforms == ["middle-out"]
        assert p.models == ["a", "b"]
        assert p.route == "fallback"
        assert p.sampling == SamplingSpec(temperature=0.2, max_tokens=256)
        assert p.extra_params == {"reasoning": {"effort": "low"}}

    def test_first_profile_is_default_active(self, tmp_path):
        path = _write(tmp_path, """
            profiles:
              first:
                model: m1
              second:
                model: m2
        """)
        assert load_config(path).active_profile.model == "m1"

    def test_unknown_sampling_keys_ignored(self, tmp_path, caplog):
        path = _write(tmp_path, """
            profiles:
              p:
                sampling:
                  temperature: 0.1
                  warp_factor: 9
        """)
        with caplog.at_level(logging.WARNING, logger="chatwire.config"):
            config = load_config(path)
        assert config.active_profile.sampling == SamplingSpec(temperature=0.1)
        assert "warp_factor" in caplog.text

    def test_profile_defaults(self, tmp_path):
        path = _write(tmp_path, """
            profiles:
              bare: {}
        """)
        p = load_config(path).active_profile
        assert p.url == DEFAULT_URL
        assert p.sampling == SamplingSpec()
        assert p.require_parameters is None


class TestSamplingSpec:
    def test_as_kwargs_skips_unset(self):
        assert SamplingSpec(temperature=0.0, seed=7).as_kwargs() == {
            "temperature": 0.0,
            "seed": 7,
        }

    def test_empty(self):
        assert SamplingSpec().as_kwargs() == {}
