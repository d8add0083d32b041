"""Tests for zesbe.config: TOML loading, merging, CLI integration, API keys."""

import argparse

import pytest

from zesbe.agent import build_parser
from zesbe.config import (
    _ARGPARSE_DEFAULTS,
    _UNSET,
    ConfigError,
    apply_config_to_args,
    generate_config,
    global_config_dir,
    load_config,
    require_api_key,
    resolve_api_key,
)
from zesbe.providers import get_provider


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_toml(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def config_home(tmp_path, monkeypatch):
    home = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home))
    return home / "zesbe"


@pytest.fixture
def project_dir(tmp_path):
    d = tmp_path / "project"
    d.mkdir()
    return d


def _parse(*argv):
    return build_parser().parse_args(list(argv))


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_no_files(self, config_home, project_dir):
        assert load_config(project_dir) == {}

    def test_global_dir_respects_xdg(self, config_home):
        assert global_config_dir() == config_home

    def test_global_only(self, config_home, project_dir):
        _write_toml(config_home / "config.toml", 'provider = "groq"\nmax_retries = 5\n')
        assert load_config(project_dir) == {"provider": "groq", "max_retries": 5}

    def test_project_overrides_global(self, config_home, project_dir):
        _write_toml(config_home / "config.toml", 'provider = "groq"\ntemperature = 0.1\n')
        _write_toml(project_dir / "zesbe.toml", 'provider = "ollama"\n')
        assert load_config(project_dir) == {"provider": "ollama", "temperature": 0.1}

    def test_invalid_toml(self, config_home, project_dir):
        _write_toml(project_dir / "zesbe.toml", "provider = \n")
        with pytest.raises(ConfigError, match="invalid TOML"):
            load_config(project_dir)

    def test_wrong_type(self, config_home, project_dir):
        _write_toml(project_dir / "zesbe.toml", 'max_iterations = "ten"\n')
        with pytest.raises(ConfigError, match="'max_iterations' expected int, got str"):
            load_config(project_dir)

    def test_bool_rejected_for_numbers(self, config_home, project_dir):
        _write_toml(project_dir / "zesbe.toml", "max_retries = true\n")
        with pytest.raises(ConfigError, match="got bool"):
            load_config(project_dir)

    def test_int_accepted_for_float(self, config_home, project_dir):
        _write_toml(project_dir / "zesbe.toml", "initial_wait = 2\n")
        assert load_config(project_dir) == {"initial_wait": 2}

    def test_non_positive_rejected(self, config_home, project_dir):
        _write_toml(project_dir / "zesbe.toml", "max_iterations = 0\n")
        with pytest.raises(ConfigError, match="must be positive"):
            load_config(project_dir)

    def test_negative_retries_rejected(self, config_home, project_dir):
        _write_toml(project_dir / "zesbe.toml", "max_retries = -1\n")
        with pytest.raises(ConfigError, match="must not be negative"):
            load_config(project_dir)

    def test_unknown_provider(self, config_home, project_dir):
        _write_toml(project_dir / "zesbe.toml", 'provider = "acme"\n')
        with pytest.raises(ConfigError, match="unknown provider 'acme'"):
            load_config(project_dir)

    def test_unknown_key_warns(self, config_home, project_dir, capsys):
        _write_toml(project_dir / "zesbe.toml", "colour = true\n")
        assert load_config(project_dir) == {}
        assert "unknown config key 'colour'" in capsys.readouterr().err

    def test_relative_paths_resolved_against_file(self, config_home, project_dir):
        _write_toml(project_dir / "zesbe.toml", 'log_file = "logs/z.log"\ndata_dir = "state"\n')
        config = load_config(project_dir)
        assert config["log_file"] == str(project_dir.resolve() / "logs" / "z.log")
        assert config["data_dir"] == str(project_dir.resolve() / "state")

    def test_api_key_in_git_project_warns(self, config_home, project_dir, capsys):
        (project_dir / ".git").mkdir()
        _write_toml(project_dir / "zesbe.toml", 'api_key = "sk-secret"\n')
        load_config(project_dir)
        assert "git-tracked" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# CLI integration
# ---------------------------------------------------------------------------


class TestApplyConfig:
    def test_parser_leaves_sentinels(self):
        args = _parse()
        assert args.provider is _UNSET
        assert args.max_iterations is _UNSET
        assert args.quiet is _UNSET

    def test_defaults_fill_unset(self):
        args = _parse()
        apply_config_to_args(args, {})
        for dest, default in _ARGPARSE_DEFAULTS.items():
            assert getattr(args, dest) == default, dest

    def test_config_fills_unset(self):
        args = _parse()
        apply_config_to_args(args, {"provider": "deepseek", "max_retries": 7})
        assert args.provider == "deepseek"
        assert args.max_retries == 7

    def test_cli_wins(self):
        args = _parse("--provider", "openai", "--max-iterations", "4")
        apply_config_to_args(args, {"provider": "deepseek", "max_iterations": 20})
        assert args.provider == "openai"
        assert args.max_iterations == 4

    def test_color_from_config(self):
        args = _parse()
        apply_config_to_args(args, {"color": False})
        assert args.color is False
        assert args.no_color is True

    def test_cli_color_flag_beats_config(self):
        args = _parse("--color")
        apply_config_to_args(args, {"color": False})
        assert args.color is True
        assert args.no_color is False

    def test_plain_namespace(self):
        args = argparse.Namespace(provider=_UNSET)
        apply_config_to_args(args, {"quiet": True})
        assert args.quiet is True
        assert args.provider == "minimax"


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------


class TestApiKey:
    def test_explicit_first(self, tmp_path):
        provider = get_provider("openai")
        key = resolve_api_key(provider, "sk-cli", environ={"OPENAI_API_KEY": "sk-env"}, home=tmp_path)
        assert key == "sk-cli"

    def test_environment(self, tmp_path):
        provider = get_provider("openai")
        key = resolve_api_key(provider, environ={"OPENAI_API_KEY": " sk-env \n"}, home=tmp_path)
        assert key == "sk-env"

    def test_key_file(self, tmp_path):
        (tmp_path / ".deepseek_api_key").write_text("sk-file\n")
        key = resolve_api_key(get_provider("deepseek"), environ={}, home=tmp_path)
        assert key == "sk-file"

    def test_empty_key_file(self, tmp_path):
        (tmp_path / ".groq_api_key").write_text("  \n")
        assert resolve_api_key(get_provider("groq"), environ={}, home=tmp_path) is None

    def test_missing_key_raises(self, tmp_path):
        with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
            require_api_key(get_provider("openai"), environ={}, home=tmp_path)

    def test_keyless_provider(self, tmp_path):
        assert require_api_key(get_provider("ollama"), environ={}, home=tmp_path) is None


class TestGenerateConfig:
    def test_global_template(self):
        out = generate_config()
        assert "Global config" in out
        assert "# max_retries = 3" in out
        assert "openrouter" in out

    def test_project_template(self):
        assert "<project>/zesbe.toml" in generate_config(project=True)

    def test_every_line_commented(self):
        for line in generate_config().splitlines():
            assert not line or line.startswith("#")
