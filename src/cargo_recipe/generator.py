"""
Recipe generation pipeline.

Loads the manifest and lockfile, flattens the closure, resolves license
files, hashes them and renders the recipe. Every fatal condition is raised
before anything is written, so a failed run leaves no partial recipe behind.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .checksums import ChecksumEngine, IndexProvenance
from .cli_config import get_config
from .dependency_graph import flatten_closure
from .error_handling import (
    ErrorCategory,
    ManifestError,
    RecipeError,
    UnresolvedLicenseWarning,
    get_error_handler,
)
from .git_sources import ProjectRepo
from .licenses import LicenseResolver
from .parsers import Manifest, load_project
from .recipe_generator import RecipeDocument, RecipeMetadata, get_recipe_renderer
from .structured_logging import (
    clear_generation_context,
    log_generation_complete,
    log_generation_start,
)


@dataclass(frozen=True)
class GenerationResult:
    """A rendered recipe plus everything worth reporting about the run."""

    document: RecipeDocument
    warnings: Tuple[UnresolvedLicenseWarning, ...]
    recipe_name: str
    manifest: Optional[Manifest] = None
    total_dependencies: int = 0
    duration_ms: int = 0
    notices: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def text(self) -> str:
        return self.document.text()

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings or self.notices)


def recipe_metadata(manifest: Manifest, notices: Optional[List[str]] = None) -> RecipeMetadata:
    """
    Fill the recipe's scalar fields from the manifest.

    The summary falls back to the package name and the homepage to the
    repository URL. Both are stripped of surrounding whitespace.

    Raises:
        ManifestError: If neither homepage nor repository is set
    """
    notices = notices if notices is not None else []
    handler = get_error_handler()

    summary = (manifest.description or "").strip()
    if not summary:
        summary = manifest.name
        notices.append(f"No package.description in manifest, using '{summary}' as SUMMARY")
        handler.warning(
            ErrorCategory.MANIFEST,
            "No package.description, falling back to package name",
            "generator",
            "recipe_metadata",
        )

    homepage = (manifest.homepage or "").strip() or (manifest.repository or "").strip()
    if not homepage:
        handler.error(
            ErrorCategory.MANIFEST,
            "No package.homepage or package.repository",
            "generator",
            "recipe_metadata",
            suggestions=["Set package.homepage or package.repository in Cargo.toml"],
        )
        raise ManifestError(
            f"{manifest.manifest_path} has no package.homepage or package.repository"
        )

    if "_" in manifest.name:
        notices.append(
            f"Package name '{manifest.name}' contains '_'; bitbake recipe names normally use '-'"
        )
        handler.warning(
            ErrorCategory.MANIFEST,
            "Package name contains an underscore",
            "generator",
            "recipe_metadata",
            details={"package": manifest.name},
        )

    return RecipeMetadata(
        name=manifest.name,
        version=manifest.version,
        summary=summary,
        homepage=homepage,
        rel_dir=manifest.rel_dir,
    )


def generate_recipe(
    manifest_path: Optional[Path] = None,
    index_reference: Optional[str] = None,
    index_md5: Optional[str] = None,
    index_sha256: Optional[str] = None,
    reproducible: Optional[bool] = None,
    legacy_overrides: Optional[bool] = None,
    include_project_source: Optional[bool] = None,
) -> GenerationResult:
    """
    Generate the recipe for the crate at ``manifest_path`` (or the cwd).

    Options left as None take their value from the global configuration.

    Raises:
        RecipeError: Any fatal manifest, lockfile, graph, license or checksum error
    """
    config = get_config()
    started = time.time()

    manifest, graph = load_project(manifest_path)
    closure = flatten_closure(graph)

    generation_id = f"generation_{int(started)}"
    log_generation_start(generation_id, str(manifest.manifest_path), len(closure))

    try:
        notices: List[str] = []
        metadata = recipe_metadata(manifest, notices)

        resolver = LicenseResolver(
            manifest.crate_root,
            manifest.rel_dir,
            bare_names=config.license.bare_names,
            closed_license=config.license.closed_license,
        )
        licenses = resolver.resolve(manifest.license, manifest.license_file)

        engine = ChecksumEngine(config.license.digests)
        checksums = engine.compute(licenses.resolved_paths())

        provenance = IndexProvenance(
            reference=index_reference or config.index.reference,
            md5sum=index_md5 or config.index.md5sum,
            sha256sum=index_sha256 or config.index.sha256sum,
        )

        if include_project_source is None:
            include_project_source = config.recipe.include_project_source
        project = (
            ProjectRepo.discover_or_default(manifest.crate_root) if include_project_source else None
        )

        renderer = get_recipe_renderer(reproducible=reproducible, legacy_overrides=legacy_overrides)
        document = renderer.render(closure, licenses, checksums, metadata, provenance, project)

    except RecipeError:
        clear_generation_context()
        raise

    duration_ms = int((time.time() - started) * 1000)
    log_generation_complete(
        generation_id, duration_ms, len(document.source_uris), len(licenses.warnings)
    )

    return GenerationResult(
        document=document,
        warnings=licenses.warnings,
        recipe_name=document.filename,
        manifest=manifest,
        total_dependencies=len(closure),
        duration_ms=duration_ms,
        notices=tuple(notices),
    )


def write_recipe(result: GenerationResult, output_dir: Optional[Path] = None) -> Path:
    """Write a generated recipe to ``output_dir`` (config default when omitted)."""
    directory = Path(output_dir) if output_dir is not None else Path(get_config().recipe.output_dir)
    return get_recipe_renderer().save_recipe(result.document, directory)
