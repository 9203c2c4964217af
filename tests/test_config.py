"""Tests for process settings and the project configuration file."""

from pathlib import Path

import pytest

from ruletrace.config import (
    DEFAULT_CONFIG_PATH,
    ProjectConfig,
    Settings,
    load_project_config,
    parse_project_config,
)
from ruletrace.engine.core.languages import get_profile
from ruletrace.exceptions import ConfigError

from tests.conftest import CONFIG_TOML


class TestParseProjectConfig:
    """TOML parsing and schema validation."""

    def test_valid(self):
        config = parse_project_config(CONFIG_TOML)
        (spec,) = config.specs
        assert spec.name == "app"
        assert spec.source == "docs/**/*.md"
        (impl,) = spec.impls
        assert (impl.name, impl.lang) == ("rust", "rust")
        assert impl.include == ["src/**/*.rs"]
        assert impl.exclude == []
        assert config.get_spec("app") is spec
        assert config.get_spec("other") is None

    def test_language_alias_and_default_include(self):
        config = parse_project_config(
            '[[specs]]\nname = "s"\nrules_file = "SPEC.md"\n\n[[specs.impls]]\nlang = "RS"\nname = "core"\n'
        )
        impl = config.specs[0].impls[0]
        assert impl.lang == "rust"
        assert impl.name == "core"
        assert impl.include == list(get_profile("rust").default_include)

    def test_naming_section(self):
        config = parse_project_config(
            '[[specs]]\nname = "s"\nrules_glob = "*.md"\n\n[specs.naming]\nprefixes = ["auth"]\n'
        )
        assert config.specs[0].naming.prefixes == ["auth"]
        assert config.specs[0].naming.pattern is None

    def test_unknown_impl_keys_are_ignored(self):
        config = parse_project_config(CONFIG_TOML + 'test_include = ["tests/**/*.rs"]\n')
        impl = config.specs[0].impls[0]
        assert impl.include == ["src/**/*.rs"]
        assert "test_include" not in impl.model_dump()

    def test_empty_file(self):
        assert parse_project_config("").specs == []

    @pytest.mark.parametrize(
        ("text", "fragment"),
        [
            ("[[specs]\nname = ", "has errors"),
            ('[[specs]]\nname = "s"\n', "exactly one of"),
            ('[[specs]]\nname = "s"\nrules_glob = "a"\nrules_url = "https://x"\n', "exactly one of"),
            (
                '[[specs]]\nname = "s"\nrules_glob = "a"\n\n[[specs.impls]]\nlang = "cobol"\n',
                "Unknown language 'cobol'",
            ),
            (
                '[[specs]]\nname = "s"\nrules_glob = "a"\n\n[[specs]]\nname = "s"\nrules_glob = "b"\n',
                "spec names must be unique",
            ),
            (
                '[[specs]]\nname = "s"\nrules_glob = "a"\n\n[[specs.impls]]\nlang = "rust"\n\n'
                '[[specs.impls]]\nlang = "rs"\n',
                "same impl name twice",
            ),
            (
                '[[specs]]\nname = "s"\nrules_glob = "a"\n\n[specs.naming]\npattern = "("\n',
                "invalid naming pattern",
            ),
        ],
    )
    def test_invalid(self, text, fragment):
        with pytest.raises(ConfigError, match=fragment):
            parse_project_config(text, source="config.toml")


class TestLoadProjectConfig:
    """Reading the config from disk."""

    def test_missing_file_is_empty_config(self, tmp_path):
        assert load_project_config(tmp_path / "missing.toml") == ProjectConfig()

    def test_error_names_the_file(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("not toml = = =", encoding="utf-8")
        with pytest.raises(ConfigError, match="config.toml"):
            load_project_config(path)


class TestSettings:
    """Environment-driven process settings."""

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("RULETRACE_DEBOUNCE_MS", "5")
        monkeypatch.setenv("RULETRACE_MAX_SESSIONS", "10")
        monkeypatch.setenv("RULETRACE_CORS_ALLOWED_ORIGINS", "http://a, http://b,")
        settings = Settings()
        assert settings.debounce_ms == 5
        assert settings.max_sessions == 10
        assert settings.cors_origins_list == ["http://a", "http://b"]

    def test_config_path_resolution(self, tmp_path):
        assert Settings(project_root=tmp_path).resolved_config_path() == tmp_path / DEFAULT_CONFIG_PATH
        absolute = tmp_path / "elsewhere.toml"
        assert Settings(project_root=tmp_path, config_path=absolute).resolved_config_path() == absolute
        relative = Settings(project_root=tmp_path, config_path=Path("rt.toml"))
        assert relative.resolved_config_path() == tmp_path / "rt.toml"
