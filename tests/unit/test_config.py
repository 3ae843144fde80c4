"""Tests for BuildConfig loading and resolution."""

import json
from pathlib import Path

import pytest

from railbuild.config import (
    DEFAULT_COPY_RULES,
    DEFAULT_LUAC_COMMAND,
    DEFAULT_PAYLOADS,
    DEFAULT_TSTL_COMMAND,
    BuildConfig,
)
from railbuild.errors import BuildConfigError


@pytest.fixture(autouse=True)
def clear_tool_env(monkeypatch):
    """Keep the developer's environment from leaking into config tests."""
    monkeypatch.delenv("RAILBUILD_TSTL", raising=False)
    monkeypatch.delenv("RAILBUILD_LUAC", raising=False)


def _write_config(project: Path, data: object) -> None:
    (project / "railbuild.json").write_text(json.dumps(data), encoding="utf-8")


class TestDefaults:
    def test_standard_layout(self, tmp_path: Path):
        config = BuildConfig.load(tmp_path)
        assert config.project_dir == tmp_path.resolve()
        assert config.source_root == tmp_path.resolve() / "src"
        assert config.output_root == tmp_path.resolve() / "dist"
        assert config.tsconfig_path == tmp_path.resolve() / "src" / "tsconfig.json"

    def test_tool_commands(self, tmp_path: Path):
        config = BuildConfig.load(tmp_path)
        assert config.tstl_command == DEFAULT_TSTL_COMMAND
        assert config.luac_command == DEFAULT_LUAC_COMMAND

    def test_static_tables(self, tmp_path: Path):
        config = BuildConfig.load(tmp_path)
        assert dict(config.payloads) == dict(DEFAULT_PAYLOADS)
        assert config.copy_rules == DEFAULT_COPY_RULES
        assert config.debounce_seconds == 2.0
        assert config.jobs >= 1
        assert config.lua_only is False

    def test_default_copy_rules_are_unique(self):
        sources = [source.casefold() for source, _ in DEFAULT_COPY_RULES]
        assert len(sources) == len(set(sources))

    def test_payload_paths_resolve_against_project(self, tmp_path: Path):
        config = BuildConfig.load(tmp_path)
        paths = config.payload_paths()
        assert set(paths) == {"REPPO_AEM7_ENGINESCRIPT", "REPPO_E60_ENGINESCRIPT"}
        assert all(p.is_relative_to(tmp_path.resolve() / "payware") for p in paths.values())


class TestConfigFile:
    def test_overrides_from_file(self, tmp_path: Path):
        _write_config(
            tmp_path,
            {
                "source_dir": "ts",
                "output_dir": "out",
                "luac": "luac5.0 -o - -",
                "tstl": ["npx", "tstl"],
                "types": ["lua-types/5.1"],
                "payloads": {"TOKEN": "assets/token.out"},
                "copy_rules": {"A/x.out": ["B/x.out", "C/x.out"]},
                "debounce_seconds": 0.5,
            },
        )
        config = BuildConfig.load(tmp_path)
        assert config.source_dir == "ts"
        assert config.output_dir == "out"
        assert config.luac_command == ("luac5.0", "-o", "-", "-")
        assert config.tstl_command == ("npx", "tstl")
        assert config.compiler_types == ("lua-types/5.1",)
        assert dict(config.payloads) == {"TOKEN": "assets/token.out"}
        assert config.copy_rules == (("A/x.out", ("B/x.out", "C/x.out")),)
        assert config.debounce_seconds == 0.5

    def test_null_luac_disables_second_stage(self, tmp_path: Path):
        _write_config(tmp_path, {"luac": None})
        assert BuildConfig.load(tmp_path).luac_command == ()

    def test_invalid_json(self, tmp_path: Path):
        (tmp_path / "railbuild.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(BuildConfigError, match="Failed to read"):
            BuildConfig.load(tmp_path)

    def test_non_object(self, tmp_path: Path):
        _write_config(tmp_path, ["luac"])
        with pytest.raises(BuildConfigError, match="JSON object"):
            BuildConfig.load(tmp_path)

    def test_invalid_value(self, tmp_path: Path):
        _write_config(tmp_path, {"debounce_seconds": "soon"})
        with pytest.raises(BuildConfigError, match="Invalid value"):
            BuildConfig.load(tmp_path)

    def test_invalid_command_type(self, tmp_path: Path):
        _write_config(tmp_path, {"luac": 42})
        with pytest.raises(BuildConfigError, match="Invalid value"):
            BuildConfig.load(tmp_path)

    def test_unknown_keys_are_ignored(self, tmp_path: Path, caplog):
        _write_config(tmp_path, {"colour": "blue"})
        config = BuildConfig.load(tmp_path)
        assert config.output_dir == "dist"
        assert "colour" in caplog.text


class TestPrecedence:
    def test_environment_overrides_file(self, tmp_path: Path, monkeypatch):
        _write_config(tmp_path, {"luac": "luac-from-file"})
        monkeypatch.setenv("RAILBUILD_LUAC", "luac-from-env -o - -")
        monkeypatch.setenv("RAILBUILD_TSTL", "'/opt/my tools/tstl'")
        config = BuildConfig.load(tmp_path)
        assert config.luac_command == ("luac-from-env", "-o", "-", "-")
        assert config.tstl_command == ("/opt/my tools/tstl",)

    def test_empty_luac_environment_disables_second_stage(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("RAILBUILD_LUAC", "")
        assert BuildConfig.load(tmp_path).luac_command == ()

    def test_overrides_win(self, tmp_path: Path, monkeypatch):
        _write_config(tmp_path, {"debounce_seconds": 5})
        config = BuildConfig.load(tmp_path, debounce_seconds=1.0, jobs=3, lua_only=True)
        assert config.debounce_seconds == 1.0
        assert config.jobs == 3
        assert config.lua_only is True

    def test_none_overrides_are_skipped(self, tmp_path: Path):
        config = BuildConfig.load(tmp_path, jobs=None, entry_filters=None)
        assert config.jobs >= 1
        assert config.entry_filters == ()

    def test_jobs_must_be_positive(self, tmp_path: Path):
        with pytest.raises(BuildConfigError, match="jobs"):
            BuildConfig.load(tmp_path, jobs=0)

    def test_debounce_must_not_be_negative(self, tmp_path: Path):
        with pytest.raises(BuildConfigError, match="debounce_seconds"):
            BuildConfig.load(tmp_path, debounce_seconds=-1.0)


class TestResolveCommand:
    def test_relative_path_anchors_to_project(self, tmp_path: Path):
        config = BuildConfig(project_dir=tmp_path)
        assert config.resolve_command(("node_modules/.bin/tstl", "--x")) == [
            str(tmp_path / "node_modules/.bin/tstl"),
            "--x",
        ]

    def test_bare_name_uses_path_lookup(self, tmp_path: Path):
        config = BuildConfig(project_dir=tmp_path)
        assert config.resolve_command(("luac", "-o", "-", "-")) == ["luac", "-o", "-", "-"]

    def test_absolute_path_is_kept(self, tmp_path: Path):
        config = BuildConfig(project_dir=tmp_path)
        tool = str(tmp_path.resolve() / "bin" / "luac")
        assert config.resolve_command((tool,)) == [tool]

    def test_empty_command(self, tmp_path: Path):
        assert BuildConfig(project_dir=tmp_path).resolve_command(()) == []
