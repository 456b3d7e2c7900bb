"""Tests for Settings: defaults, YAML loading, validation."""

from pathlib import Path
from textwrap import dedent

import pytest
from pydantic import ValidationError

from jobscout.core.config import Settings, UpstreamConfig


class TestDefaults:
    def test_defaults_without_yaml(self) -> None:
        settings = Settings()
        assert settings.budget.monthly_limit == 200
        assert settings.cache.ttl_hours == 24.0
        assert settings.cache.max_entries == 50
        assert settings.search.max_pages == 5
        assert settings.search.supersede_previous is True
        assert settings.recent.max_searches == 10

    def test_upstream_timing_defaults(self) -> None:
        upstream = UpstreamConfig()
        assert upstream.first_page_timeout_s == 10.0
        assert upstream.background_timeout_s == 8.0
        assert upstream.page_delay_s == 0.3
        assert upstream.timeout_retry_delay_s == 1.0
        assert upstream.results_per_page == 10

    def test_base_url_trailing_slash_stripped(self) -> None:
        upstream = UpstreamConfig(base_url="https://example.test/")
        assert upstream.base_url == "https://example.test"


class TestValidation:
    def test_max_pages_above_ten_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings.model_validate({"search": {"max_pages": 11}})

    def test_zero_monthly_limit_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings.model_validate({"budget": {"monthly_limit": 0}})

    def test_retry_delay_shorter_than_page_delay_rejected(self) -> None:
        with pytest.raises(ValidationError, match="timeout_retry_delay_s"):
            Settings.model_validate(
                {"upstream": {"page_delay_s": 2.0, "timeout_retry_delay_s": 1.0}},
            )


class TestFromYaml:
    def test_partial_yaml_keeps_other_defaults(self, tmp_path: Path) -> None:
        yaml_content = dedent("""\
            budget:
              monthly_limit: 50
            cache:
              max_entries: 5
        """)
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml_content)

        settings = Settings.from_yaml(config_file)
        assert settings.budget.monthly_limit == 50
        assert settings.cache.max_entries == 5
        assert settings.cache.ttl_hours == 24.0
        assert settings.upstream.api_key_env == "RAPIDAPI_KEY"

    def test_empty_yaml_gives_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("")
        assert Settings.from_yaml(config_file) == Settings()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            Settings.from_yaml(tmp_path / "nope.yaml")

    def test_load_shipped_settings(self) -> None:
        """The shipped config/settings.yaml must be valid."""
        settings = Settings.from_yaml("config/settings.yaml")
        assert settings.search.default_query == "Software Engineer"
        assert settings.upstream.host == "jsearch.p.rapidapi.com"
