"""Build configuration.

BuildConfig collects every path, tool command and static table the pipeline
needs. Defaults describe the standard mod layout:

    <project>/
        src/
            build.json, @types/, lib/     shared overlay
            mod/**/*.ts                   entry points
            tsconfig.json                 base compiler options (optional)
        node_modules/lua-types/...        Lua 5.0 declarations (overlay)
        payware/...                       optional payload assets
        dist/                             output root
        railbuild.json                    optional overrides

Overrides are applied in order: defaults, railbuild.json, environment
variables (RAILBUILD_TSTL, RAILBUILD_LUAC), then CLI flags via
dataclasses.replace().
"""

from __future__ import annotations

import json
import logging
import os
import shlex
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .errors import BuildConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "railbuild.json"


@dataclass(frozen=True)
class OverlayGlob:
    """A glob contributing files to the shared overlay.

    Attributes:
        base: Directory (relative to the project root) the pattern is matched in.
            Virtual paths are relative to this directory.
        pattern: Glob pattern, "**" allowed.
    """

    base: str
    pattern: str


DEFAULT_OVERLAY_GLOBS: tuple[OverlayGlob, ...] = (
    OverlayGlob(".", "node_modules/lua-types/5.0.d.ts"),
    OverlayGlob(".", "node_modules/lua-types/core/index-5.0.d.ts"),
    OverlayGlob(".", "node_modules/lua-types/core/coroutine.d.ts"),
    OverlayGlob(".", "node_modules/lua-types/core/5.0/*"),
    OverlayGlob(".", "node_modules/lua-types/special/5.0.d.ts"),
    OverlayGlob(".", "node_modules/@typescript-to-lua/language-extensions/**/*"),
    OverlayGlob("src", "build.json"),
    OverlayGlob("src", "@types/**/*"),
    OverlayGlob("src", "lib/**/*.ts"),
)

DEFAULT_COMPILER_TYPES: tuple[str, ...] = (
    "lua-types/5.0",
    "@typescript-to-lua/language-extensions",
)

# Placeholder token -> asset path relative to the project root
DEFAULT_PAYLOADS: Mapping[str, str] = MappingProxyType(
    {
        "REPPO_AEM7_ENGINESCRIPT": "payware/Assets/Reppo/AEM7/RailVehicles/Scripts/AEM7_EngineScript.out",
        "REPPO_E60_ENGINESCRIPT": "payware/Assets/Reppo/E60CP/RailVehicles/Scripts/E60_EngineScript.out",
    }
)

# Primary output (relative to the output root) -> extra copies (same root)
DEFAULT_COPY_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "Assets/RSC/NorthEastCorridor/RailVehicles/Electric/AEM7/Default/Engine/RailVehicle_EngineScript.out",
        ("Assets/RSC/NorthEastCorridor/RailVehicles/Electric/AEM7/Default/Engine/EngineScript.out",),
    ),
    (
        "Assets/RSC/NewYorkNewHaven/RailVehicles/Electric/ACS-64/Default/CommonScripts/EngineScript.out",
        ("Assets/DTG/WashingtonBaltimore/RailVehicles/Electric/ACS-64/Default/CommonScripts/EngineScript.out",),
    ),
    (
        "Assets/RSC/AcelaPack01/RailVehicles/Electric/Acela/Default/CommonScripts/PowerCar_EngineScript.out",
        ("Assets/DTG/WashingtonBaltimore/RailVehicles/Electric/Acela/Default/CommonScripts/PowerCar_EngineScript.out",),
    ),
    (
        "Assets/RSC/P32Pack01/RailVehicles/Passengers/Shoreliner/Driving Trailer/CommonScripts/CabCarEngineScript.out",
        (
            "Assets/DTG/HudsonLine/RailVehicles/Passengers/Shoreliner/Driving Trailer/CommonScripts/"
            "CabCarEngineScript.out",
        ),
    ),
    (
        "Assets/DTG/NorthJerseyCoast/RailVehicles/Passengers/Comet/Driving Trailer/CommonScripts/"
        "CometCab_EngineScript.out",
        (
            "Assets/DTG/NJT-Alp46/RailVehicles/Passengers/Comet/Driving Trailer/CommonScripts/"
            "CometCab_EngineScript.out",
            "Assets/DTG/GP40PHPack01/RailVehicles/Passengers/Comet/Driving Trailer/CommonScripts/"
            "CometCab_EngineScript.out",
            "Assets/DTG/F40PH2Pack01/RailVehicles/Passengers/Comet/Driving Trailer/CommonScripts/"
            "CometCab_EngineScript.out",
        ),
    ),
)

DEFAULT_TSTL_COMMAND: tuple[str, ...] = ("node_modules/.bin/tstl",)
DEFAULT_LUAC_COMMAND: tuple[str, ...] = ("luac", "-o", "-", "-")
DEFAULT_DEBOUNCE_SECONDS = 2.0


def _default_jobs() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class BuildConfig:
    """Complete configuration for one railbuild invocation.

    Attributes:
        project_dir: Project root; every relative path below resolves against it
        source_dir: Source root holding entry points and the src-based overlay
        entry_dir: Directory under source_dir whose layout the output mirrors
        entry_glob: Glob (relative to source_dir) selecting entry points
        overlay_globs: Globs making up the shared overlay
        output_dir: Output root for compiled artifacts and copies
        tstl_command: TypeScript-to-Lua compiler command
        compiler_types: Values for the compiler's "types" option
        luac_command: Second-stage compiler command; empty skips the stage
        payloads: Placeholder token -> asset path (relative to project_dir)
        copy_rules: Primary output -> extra destinations (relative to output_dir)
        debounce_seconds: Watch mode cooldown per key
        jobs: Maximum entry pipelines running at once
        lua_only: Emit Lua text only; skip injection, second stage and copies
        entry_filters: Optional globs restricting which entry points are built
        verbose: Verbose output
    """

    project_dir: Path = field(default_factory=Path.cwd)
    source_dir: str = "src"
    entry_dir: str = "mod"
    entry_glob: str = "mod/**/*.ts"
    overlay_globs: tuple[OverlayGlob, ...] = DEFAULT_OVERLAY_GLOBS
    output_dir: str = "dist"
    tstl_command: tuple[str, ...] = DEFAULT_TSTL_COMMAND
    compiler_types: tuple[str, ...] = DEFAULT_COMPILER_TYPES
    luac_command: tuple[str, ...] = DEFAULT_LUAC_COMMAND
    payloads: Mapping[str, str] = field(default_factory=lambda: DEFAULT_PAYLOADS)
    copy_rules: tuple[tuple[str, tuple[str, ...]], ...] = DEFAULT_COPY_RULES
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    jobs: int = field(default_factory=_default_jobs)
    lua_only: bool = False
    entry_filters: tuple[str, ...] = ()
    verbose: bool = False

    @property
    def source_root(self) -> Path:
        return self.project_dir / self.source_dir

    @property
    def output_root(self) -> Path:
        return self.project_dir / self.output_dir

    @property
    def tsconfig_path(self) -> Path:
        return self.source_root / "tsconfig.json"

    def payload_paths(self) -> dict[str, Path]:
        """Resolve payload asset paths against the project root."""
        return {token: self.project_dir / rel for token, rel in self.payloads.items()}

    def resolve_command(self, command: tuple[str, ...]) -> list[str]:
        """Resolve a tool command, anchoring a relative executable path to the project root.

        Bare executable names ("luac") are left for PATH lookup; names with a
        directory component ("node_modules/.bin/tstl") resolve against project_dir.
        """
        if not command:
            return []
        executable = command[0]
        exe_path = Path(executable)
        if not exe_path.is_absolute() and len(exe_path.parts) > 1:
            executable = str(self.project_dir / exe_path)
        return [executable, *command[1:]]

    @classmethod
    def load(cls, project_dir: Path, **overrides: Any) -> "BuildConfig":
        """Load configuration for a project.

        Args:
            project_dir: Project root directory
            **overrides: Field values taking precedence over file and environment

        Returns:
            Resolved BuildConfig

        Raises:
            BuildConfigError: If railbuild.json exists but is invalid
        """
        config = cls(project_dir=project_dir.resolve())

        config_file = project_dir / CONFIG_FILE_NAME
        if config_file.is_file():
            config = config._apply_file(config_file)

        tstl_env = os.environ.get("RAILBUILD_TSTL")
        if tstl_env:
            config = replace(config, tstl_command=tuple(shlex.split(tstl_env)))
        luac_env = os.environ.get("RAILBUILD_LUAC")
        if luac_env is not None:
            config = replace(config, luac_command=tuple(shlex.split(luac_env)))

        overrides = {k: v for k, v in overrides.items() if v is not None}
        if overrides:
            config = replace(config, **overrides)

        if config.jobs < 1:
            raise BuildConfigError(f"jobs must be at least 1, got {config.jobs}")
        if config.debounce_seconds < 0:
            raise BuildConfigError(f"debounce_seconds must not be negative, got {config.debounce_seconds}")
        return config

    def _apply_file(self, config_file: Path) -> "BuildConfig":
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise BuildConfigError(f"Failed to read {config_file}: {e}") from e

        if not isinstance(data, dict):
            raise BuildConfigError(f"{config_file} must contain a JSON object")

        logger.debug(f"Loaded project config from {config_file}: {sorted(data)}")
        changes: dict[str, Any] = {}
        try:
            if "source_dir" in data:
                changes["source_dir"] = str(data["source_dir"])
            if "output_dir" in data:
                changes["output_dir"] = str(data["output_dir"])
            if "tstl" in data:
                changes["tstl_command"] = _parse_command(data["tstl"])
            if "luac" in data:
                changes["luac_command"] = _parse_command(data["luac"])
            if "types" in data:
                changes["compiler_types"] = tuple(str(t) for t in data["types"])
            if "payloads" in data:
                changes["payloads"] = MappingProxyType({str(k): str(v) for k, v in data["payloads"].items()})
            if "copy_rules" in data:
                changes["copy_rules"] = tuple(
                    (str(source), tuple(str(d) for d in destinations))
                    for source, destinations in data["copy_rules"].items()
                )
            if "debounce_seconds" in data:
                changes["debounce_seconds"] = float(data["debounce_seconds"])
        except (AttributeError, TypeError, ValueError) as e:
            raise BuildConfigError(f"Invalid value in {config_file}: {e}") from e

        unknown = set(data) - {
            "source_dir",
            "output_dir",
            "tstl",
            "luac",
            "types",
            "payloads",
            "copy_rules",
            "debounce_seconds",
        }
        if unknown:
            logger.warning(f"Ignoring unknown keys in {config_file}: {', '.join(sorted(unknown))}")

        return replace(self, **changes)


def _parse_command(value: Optional[Any]) -> tuple[str, ...]:
    """Parse a command given as a string, a list, or null (disabled)."""
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(shlex.split(value))
    if isinstance(value, list):
        return tuple(str(v) for v in value)
    raise TypeError(f"command must be a string, list or null, got {type(value).__name__}")
