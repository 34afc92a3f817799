"""
Toolchain registry.

Maps a language identifier to the commands that build and run a program
written in it.  Commands are argument vectors; the only substitution
performed is the ``{workspace}`` placeholder, replaced with the absolute
path of the request's scratch directory.  Nothing is ever handed to a shell.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

WORKSPACE_PLACEHOLDER = "{workspace}"

_CSPROJ = (
    '<Project Sdk="Microsoft.NET.Sdk"><PropertyGroup><OutputType>Exe</OutputType>'
    "<TargetFramework>net8.0</TargetFramework></PropertyGroup></Project>"
)


class UnsupportedLanguageError(LookupError):
    """Raised when a language identifier has no registered toolchain."""

    def __init__(self, language: Optional[str]) -> None:
        super().__init__(f"Unsupported language: {language}")
        self.language = language


@dataclass(frozen=True)
class CommandTemplate:
    """A program and its arguments, possibly containing placeholders."""

    program: str
    args: Tuple[str, ...] = ()

    def render(self, workspace: Path) -> List[str]:
        root = str(workspace)
        return [part.replace(WORKSPACE_PLACEHOLDER, root) for part in (self.program, *self.args)]


@dataclass(frozen=True)
class ToolchainSpec:
    """How to build and run one language.

    Attributes
    ----------
    language_id: str
        Canonical identifier, e.g. ``"python"``.
    source_file_name: str
        Name the submitted source is written under.
    run_command: CommandTemplate
        Command of the run phase.
    compile_command: CommandTemplate, optional
        Command of the compile phase; ``None`` for interpreted languages.
    aliases: tuple of str
        Additional identifiers accepted by :meth:`ToolchainRegistry.resolve`.
    support_files: mapping
        Extra files written next to the source (project files and such).
    """

    language_id: str
    source_file_name: str
    run_command: CommandTemplate
    compile_command: Optional[CommandTemplate] = None
    aliases: Tuple[str, ...] = ()
    support_files: Mapping[str, str] = field(default_factory=dict)

    @property
    def compiled(self) -> bool:
        return self.compile_command is not None


def _cmd(program: str, *args: str) -> CommandTemplate:
    return CommandTemplate(program, tuple(args))


DEFAULT_TOOLCHAINS: Tuple[ToolchainSpec, ...] = (
    ToolchainSpec(
        "javascript",
        "program.js",
        run_command=_cmd("node", "{workspace}/program.js"),
        aliases=("js", "node"),
    ),
    ToolchainSpec(
        "typescript",
        "program.ts",
        compile_command=_cmd(
            "npx",
            "tsc",
            "{workspace}/program.ts",
            "--outDir",
            "{workspace}",
            "--esModuleInterop",
            "--skipLibCheck",
        ),
        run_command=_cmd("node", "{workspace}/program.js"),
        aliases=("ts",),
    ),
    ToolchainSpec(
        "python",
        "program.py",
        run_command=_cmd("python3", "{workspace}/program.py"),
        aliases=("py", "python3"),
    ),
    ToolchainSpec(
        "c",
        "program.c",
        compile_command=_cmd("gcc", "{workspace}/program.c", "-o", "{workspace}/program"),
        run_command=_cmd("{workspace}/program"),
    ),
    ToolchainSpec(
        "cpp",
        "program.cpp",
        compile_command=_cmd(
            "clang++", "-std=c++17", "{workspace}/program.cpp", "-o", "{workspace}/program"
        ),
        run_command=_cmd("{workspace}/program"),
        aliases=("c++", "cxx"),
    ),
    ToolchainSpec(
        "java",
        "Program.java",
        compile_command=_cmd("javac", "{workspace}/Program.java"),
        run_command=_cmd("java", "-cp", "{workspace}", "Program"),
    ),
    ToolchainSpec(
        "csharp",
        "Program.cs",
        compile_command=_cmd(
            "dotnet",
            "build",
            "{workspace}",
            "-o",
            "{workspace}/out",
            "--nologo",
            "--verbosity",
            "minimal",
        ),
        run_command=_cmd("dotnet", "{workspace}/out/run.dll"),
        aliases=("c#", "cs"),
        support_files={"run.csproj": _CSPROJ},
    ),
    ToolchainSpec(
        "go",
        "program.go",
        run_command=_cmd("go", "run", "{workspace}/program.go"),
        aliases=("golang",),
    ),
    ToolchainSpec(
        "ruby",
        "program.rb",
        run_command=_cmd("ruby", "{workspace}/program.rb"),
        aliases=("rb",),
    ),
    ToolchainSpec(
        "php",
        "program.php",
        run_command=_cmd("php", "{workspace}/program.php"),
    ),
    ToolchainSpec(
        "rust",
        "program.rs",
        compile_command=_cmd("rustc", "{workspace}/program.rs", "-o", "{workspace}/program"),
        run_command=_cmd("{workspace}/program"),
        aliases=("rs",),
    ),
    ToolchainSpec(
        "kotlin",
        "Program.kt",
        compile_command=_cmd(
            "kotlinc",
            "{workspace}/Program.kt",
            "-include-runtime",
            "-d",
            "{workspace}/Program.jar",
        ),
        run_command=_cmd("java", "-jar", "{workspace}/Program.jar"),
        aliases=("kt",),
    ),
)


class ToolchainRegistry:
    """Case-insensitive lookup of toolchains by identifier or alias."""

    def __init__(self, specs: Iterable[ToolchainSpec]) -> None:
        self._specs: Dict[str, ToolchainSpec] = {}
        self._index: Dict[str, ToolchainSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: ToolchainSpec) -> None:
        names = [spec.language_id, *spec.aliases]
        for name in names:
            key = name.strip().lower()
            if key in self._index and self._index[key].language_id != spec.language_id:
                raise ValueError(f"Language identifier {name!r} is already registered")
        self._specs[spec.language_id] = spec
        for name in names:
            self._index[name.strip().lower()] = spec

    def resolve(self, language: Optional[str]) -> ToolchainSpec:
        if not language or not language.strip():
            raise UnsupportedLanguageError(language)
        try:
            return self._index[language.strip().lower()]
        except KeyError:
            raise UnsupportedLanguageError(language) from None

    def languages(self) -> List[ToolchainSpec]:
        return list(self._specs.values())

    def __contains__(self, language: str) -> bool:
        return language.strip().lower() in self._index

    @classmethod
    def default(cls, allowed: Optional[Iterable[str]] = None) -> "ToolchainRegistry":
        """Build the registry of built-in toolchains.

        ``allowed`` restricts it to the given identifiers (aliases count).
        """
        if not allowed:
            return cls(DEFAULT_TOOLCHAINS)
        full = cls(DEFAULT_TOOLCHAINS)
        wanted = {full.resolve(name).language_id for name in allowed}
        return cls(spec for spec in DEFAULT_TOOLCHAINS if spec.language_id in wanted)
