"""BitBake recipe rendering."""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Tuple

from .checksums import ChecksumPair, IndexProvenance
from .cli_config import get_config
from .dependency import Dependency, SourceKind
from .dependency_graph import Closure
from .error_handling import ErrorCategory, get_error_handler
from .git_sources import ProjectRepo, git_revision, git_source_extras, git_to_yocto_git_url
from .licenses import LicenseResolution

INDENT = "    "

# Sections preceded by an empty line in the rendered text
_SPACED_SECTIONS = {"source-list", "license-checksums", "summary", "project-source", "includes"}


@dataclass(frozen=True)
class RecipeMetadata:
    """Scalar recipe fields, already defaulted from the manifest."""

    name: str
    version: str
    summary: str
    homepage: str
    rel_dir: PurePosixPath = PurePosixPath("")

    @property
    def recipe_filename(self) -> str:
        return f"{self.name}_{self.version}.bb"


@dataclass(frozen=True)
class RecipeSection:
    name: str
    lines: Tuple[str, ...]


@dataclass(frozen=True)
class RecipeDocument:
    """The rendered recipe as ordered, named sections."""

    sections: Tuple[RecipeSection, ...]
    filename: str = ""

    def section(self, name: str) -> Optional[RecipeSection]:
        return next((s for s in self.sections if s.name == name), None)

    def section_names(self) -> List[str]:
        return [s.name for s in self.sections]

    @property
    def source_uris(self) -> List[str]:
        """Entries of the SRC_URI block, without indentation or continuation."""
        section = self.section("source-list")
        if section is None:
            return []
        return [line.strip()[:-2] for line in section.lines[1:-1]]

    def text(self) -> str:
        chunks = []
        for section in self.sections:
            if section.name in _SPACED_SECTIONS and chunks:
                chunks.append("")
            chunks.extend(section.lines)
        return "\n".join(chunks) + "\n"


def escape_value(value: str) -> str:
    """Escape a value for a double-quoted BitBake assignment."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return escaped.replace("\r\n", "\n").replace("\n", " \\\n")


def assignment(key: str, value: str) -> str:
    return f'{key} = "{escape_value(value)}"'


def continued_block(key: str, entries: List[str], operator: str = "=") -> Tuple[str, ...]:
    """A backslash-continued multi-line assignment, one entry per line."""
    if not entries:
        return (f'{key} {operator} ""',)
    return (
        f'{key} {operator} " \\',
        *(f"{INDENT}{entry} \\" for entry in entries),
        '"',
    )


class RecipeRenderer:
    """Assembles recipe text from already-computed pieces.

    Takes the closure, license resolution, checksums and metadata as they
    are; nothing is re-sorted, re-hashed or looked up on disk.
    """

    def __init__(
        self,
        uri_scheme: str = "crate",
        registry_host: str = "crates.io",
        inherit: str = "cargo",
        placeholder: str = "generateme",
        reproducible: bool = False,
        legacy_overrides: bool = False,
    ):
        self.uri_scheme = uri_scheme
        self.registry_host = registry_host
        self.inherit = inherit
        self.placeholder = placeholder
        self.reproducible = reproducible
        self.legacy_overrides = legacy_overrides
        self.error_handler = get_error_handler()

    def crate_uri(self, dependency: Dependency) -> str:
        return f"{self.uri_scheme}://{self.registry_host}/{dependency.name}/{dependency.version}"

    def render(
        self,
        closure: Closure,
        licenses: LicenseResolution,
        checksums: Dict[Path, Tuple[ChecksumPair, ...]],
        metadata: RecipeMetadata,
        provenance: IndexProvenance,
        project: Optional[ProjectRepo] = None,
    ) -> RecipeDocument:
        """Render the full recipe document."""
        uris, extras = self._source_entries(closure)
        uris.append(provenance.reference)

        sections = [
            RecipeSection("inherit", (f"inherit {self.inherit}",)),
            RecipeSection("source-list", continued_block("SRC_URI", uris, "+=")),
            RecipeSection(
                "index-checksums",
                tuple(assignment(f"SRC_URI[index.{d.algorithm}]", d.value) for d in provenance.digests()),
            ),
        ]
        if extras:
            sections.append(RecipeSection("source-extras", tuple(extras)))

        sections.extend(
            [
                RecipeSection("license-checksums", self._license_checksums(licenses, checksums)),
                RecipeSection("summary", (assignment("SUMMARY", metadata.summary),)),
                RecipeSection("homepage", (assignment("HOMEPAGE", metadata.homepage),)),
                RecipeSection("license", (assignment("LICENSE", licenses.declaration),)),
            ]
        )

        if project is not None:
            sections.append(RecipeSection("project-source", self._project_source(metadata, project)))
            sections.append(
                RecipeSection(
                    "includes",
                    (
                        "# includes this file if it exists but does not fail",
                        f"include {metadata.name}-${{PV}}.inc",
                        f"include {metadata.name}.inc",
                    ),
                )
            )

        return RecipeDocument(tuple(sections), metadata.recipe_filename)

    def _source_entries(self, closure: Closure) -> Tuple[List[str], List[str]]:
        uris = []
        extras = []
        for dependency in closure:
            if dependency == closure.root or dependency.source is SourceKind.REGISTRY:
                uris.append(self.crate_uri(dependency))
            elif dependency.source is SourceKind.GIT:
                uris.append(git_to_yocto_git_url(dependency.source_url, dependency.name))
                revision = git_revision(dependency, self.reproducible)
                extras.extend(git_source_extras(dependency, revision))
            # other path packages are workspace members built from the project checkout
        return uris, extras

    def _license_checksums(
        self, licenses: LicenseResolution, checksums: Dict[Path, Tuple[ChecksumPair, ...]]
    ) -> Tuple[str, ...]:
        entries = []
        unresolved = False
        for ref in licenses.entries():
            if ref.resolved:
                digests = ";".join(str(d) for d in checksums[ref.path])
            else:
                unresolved = True
                digests = f"md5={self.placeholder}"
            entries.append(f"file://{ref.recipe_path};{digests}")

        lines = continued_block("LIC_FILES_CHKSUM", entries)
        if unresolved:
            lines = (f"# FIXME: update {self.placeholder} with the real MD5 of the license file",) + lines
        return lines

    def _project_source(self, metadata: RecipeMetadata, project: ProjectRepo) -> Tuple[str, ...]:
        rel_dir = "" if str(metadata.rel_dir) == "." else str(metadata.rel_dir)
        lines = [
            f"# how to get {metadata.name} could be as easy as but default to a git checkout:",
            f'# SRC_URI += "{self.uri_scheme}://{self.registry_host}/{metadata.name}/{metadata.version}"',
            f'SRC_URI += "{project.uri}"',
            f'SRCREV = "{project.rev}"',
            'S = "${WORKDIR}/git"',
            f'CARGO_SRC_DIR = "{rel_dir}"',
        ]
        pv_append = project.pv_append(self.legacy_overrides)
        if pv_append:
            lines.append(pv_append)
        return tuple(lines)

    def save_recipe(self, document: RecipeDocument, output_dir: Path) -> Path:
        """Write the recipe into ``output_dir`` and return its path."""
        output_path = Path(output_dir) / document.filename
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, "w", encoding="utf-8", newline="\n") as f:
                f.write(document.text())
        except OSError as e:
            self.error_handler.error(
                ErrorCategory.FILESYSTEM,
                f"Failed to save recipe: {e}",
                "recipe_generator",
                "save_recipe",
                exception=e,
            )
            raise
        return output_path


def get_recipe_renderer(reproducible: Optional[bool] = None, legacy_overrides: Optional[bool] = None) -> RecipeRenderer:
    """Factory building a renderer from the global configuration."""
    config = get_config()
    return RecipeRenderer(
        uri_scheme=config.recipe.uri_scheme,
        registry_host=config.recipe.registry_host,
        inherit=config.recipe.inherit,
        placeholder=config.license.placeholder,
        reproducible=config.recipe.reproducible if reproducible is None else reproducible,
        legacy_overrides=(
            config.recipe.legacy_overrides if legacy_overrides is None else legacy_overrides
        ),
    )
