"""
Cargo manifest and lockfile loading.

Turns ``Cargo.toml`` and ``Cargo.lock`` into the inputs of the recipe
pipeline: a ``Manifest`` with the scalar fields the recipe needs and a
``ResolvedGraph`` of pinned packages. No resolution happens here; the
lockfile already pins every version.
"""

import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Set, Tuple
from urllib.parse import parse_qs, urlsplit, urlunsplit

import toml

from .cli_config import get_config
from .dependency import Dependency, GitReference, GitReferenceKind, SourceKind
from .dependency_graph import ResolvedGraph
from .error_handling import (
    ErrorCategory,
    GraphError,
    LockfileError,
    ManifestError,
    log_parsing_error,
)

MANIFEST_NAME = "Cargo.toml"
LOCKFILE_NAME = "Cargo.lock"

_DEPENDENCY_SPEC = re.compile(r"^(?P<name>\S+)(?: (?P<version>\S+))?(?: \((?P<source>.+)\))?$")
_DEPENDENCY_TABLES = ("dependencies", "build-dependencies", "dev-dependencies")


@dataclass(frozen=True)
class Manifest:
    """The ``[package]`` fields of a Cargo.toml that feed the recipe."""

    name: str
    version: str
    manifest_path: Path
    description: Optional[str] = None
    homepage: Optional[str] = None
    repository: Optional[str] = None
    license: Optional[str] = None
    license_file: Optional[str] = None
    workspace_root: Optional[Path] = None
    dev_only_dependencies: Tuple[str, ...] = ()

    @property
    def crate_root(self) -> Path:
        return self.manifest_path.parent

    @property
    def rel_dir(self) -> PurePosixPath:
        """Crate directory relative to the workspace root."""
        if self.workspace_root is None:
            return PurePosixPath("")
        relative = self.crate_root.relative_to(self.workspace_root)
        return PurePosixPath(*relative.parts)

    @property
    def lockfile_path(self) -> Path:
        return (self.workspace_root or self.crate_root) / LOCKFILE_NAME


def _validate_file_path(file_path: Path, error_type: type) -> Path:
    """
    Check a manifest or lockfile path before reading it.

    Raises:
        ManifestError or LockfileError (``error_type``) if the path is unusable
    """
    config = get_config()
    try:
        path = Path(file_path).resolve()
    except (OSError, RuntimeError) as e:
        raise error_type(f"Invalid file path: {e}") from e

    if not path.exists():
        raise error_type(f"File does not exist: {path}")
    if not path.is_file():
        raise error_type(f"Path is not a file: {path}")
    if path.name not in config.security.allowed_manifest_names:
        raise error_type(f"File type not allowed: {path.name}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise error_type(f"Cannot access file: {e}") from e
    if file_size > config.security.max_file_size_bytes:
        raise error_type(
            f"File too large: {file_size} bytes (max: {config.security.max_file_size_bytes})"
        )

    return path


def _load_toml(path: Path, error_type: type, category: ErrorCategory) -> Dict[str, Any]:
    validated_path = _validate_file_path(path, error_type)
    try:
        with open(validated_path, encoding="utf-8") as f:
            return toml.load(f)
    except toml.TomlDecodeError as e:
        log_parsing_error(
            f"Invalid TOML format in {validated_path.name}: {e}",
            "parsers",
            "_load_toml",
            category=category,
            file_path=str(validated_path),
            exception=e,
        )
        raise error_type(f"Invalid TOML format in {validated_path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        log_parsing_error(
            f"Error reading {validated_path.name}: {e}",
            "parsers",
            "_load_toml",
            category=category,
            file_path=str(validated_path),
            exception=e,
        )
        raise error_type(f"Error reading {validated_path}: {e}") from e


def find_root_manifest(start: Path) -> Path:
    """
    Locate the Cargo.toml for ``start``: the file itself, or the nearest one
    in ``start`` or its parents.

    Raises:
        ManifestError: If no Cargo.toml is found
    """
    start = Path(start).resolve()
    if start.is_file():
        return start

    for directory in [start, *start.parents]:
        candidate = directory / MANIFEST_NAME
        if candidate.is_file():
            return candidate

    raise ManifestError(f"Could not find `{MANIFEST_NAME}` in `{start}` or any parent directory")


def find_workspace_root(manifest_path: Path) -> Tuple[Optional[Path], Dict[str, Any]]:
    """
    Find the workspace containing ``manifest_path``.

    Returns:
        The workspace root directory (None outside a workspace) and the
        workspace manifest's ``[workspace]`` table
    """
    crate_root = manifest_path.parent
    for directory in [crate_root, *crate_root.parents]:
        candidate = directory / MANIFEST_NAME
        if not candidate.is_file():
            continue
        try:
            data = toml.load(candidate)
        except (toml.TomlDecodeError, OSError):
            continue
        if "workspace" in data:
            return directory, data["workspace"]
    return None, {}


def _inherited(value: Any, key: str, workspace_package: Dict[str, Any]) -> Any:
    """Resolve ``key.workspace = true`` against ``[workspace.package]``."""
    if isinstance(value, dict) and value.get("workspace") is True:
        if key not in workspace_package:
            raise ManifestError(f"package.{key} is inherited but [workspace.package] has no {key}")
        return workspace_package[key]
    return value


def _inherited_quietly(value: Any, key: str, workspace_package: Dict[str, Any]) -> Any:
    try:
        return _inherited(value, key, workspace_package)
    except ManifestError:
        return None


def _dependency_names(table: Any) -> Set[str]:
    names = set()
    if isinstance(table, dict):
        for key, spec in table.items():
            if isinstance(spec, dict) and "package" in spec:
                names.add(spec["package"])
            else:
                names.add(key)
    return names


def _dev_only_names(data: Dict[str, Any]) -> Set[str]:
    """Names listed under [dev-dependencies] and nowhere else in a manifest."""
    normal = _dependency_names(data.get("dependencies")) | _dependency_names(
        data.get("build-dependencies")
    )
    for target in data.get("target", {}).values():
        if isinstance(target, dict):
            normal |= _dependency_names(target.get("dependencies"))
            normal |= _dependency_names(target.get("build-dependencies"))
    return _dependency_names(data.get("dev-dependencies")) - normal


def _path_dependency_manifests(data: Dict[str, Any], crate_root: Path) -> List[Path]:
    tables = [data.get(key) for key in _DEPENDENCY_TABLES]
    for target in data.get("target", {}).values():
        if isinstance(target, dict):
            tables.extend(target.get(key) for key in _DEPENDENCY_TABLES)

    manifests = []
    for table in tables:
        if not isinstance(table, dict):
            continue
        for spec in table.values():
            if isinstance(spec, dict) and isinstance(spec.get("path"), str):
                manifests.append(crate_root / spec["path"] / MANIFEST_NAME)
    return manifests


def local_dev_only_dependencies(manifest: Manifest) -> Dict[Tuple[str, str], Set[str]]:
    """
    Dev-only dependency names of every local crate around ``manifest``.

    Local crates are the workspace members plus anything reached through a
    ``path`` dependency. Cargo.lock lists their dev-dependencies next to the
    normal ones, so each crate's Cargo.toml is read back to tell them apart.
    Unreadable manifests are skipped.

    Returns:
        Mapping of (name, version) to the crate's dev-only dependency names
    """
    pending = [manifest.manifest_path]
    workspace_package: Dict[str, Any] = {}
    if manifest.workspace_root is not None:
        _, workspace = find_workspace_root(manifest.manifest_path)
        workspace_package = workspace.get("package", {})
        pending.append(manifest.workspace_root / MANIFEST_NAME)
        for pattern in workspace.get("members", []):
            if any(char in pattern for char in "*?["):
                pending.extend(
                    directory / MANIFEST_NAME
                    for directory in sorted(manifest.workspace_root.glob(pattern))
                )
            else:
                pending.append(manifest.workspace_root / pattern / MANIFEST_NAME)

    seen: Set[Path] = set()
    dev_only: Dict[Tuple[str, str], Set[str]] = {}
    while pending:
        path = pending.pop().resolve()
        if path in seen or not path.is_file():
            continue
        seen.add(path)
        try:
            data = toml.load(path)
        except (toml.TomlDecodeError, OSError):
            continue

        package = data.get("package")
        if isinstance(package, dict):
            name = _inherited_quietly(package.get("name"), "name", workspace_package)
            version = _inherited_quietly(package.get("version"), "version", workspace_package)
            if name and version:
                dev_only[(str(name), str(version))] = _dev_only_names(data)
        pending.extend(_path_dependency_manifests(data, path.parent))

    return dev_only


def parse_cargo_toml(manifest_path: Path) -> Manifest:
    """
    Parse a crate's Cargo.toml.

    Raises:
        ManifestError: If the file is unreadable or has no [package] table
    """
    data = _load_toml(manifest_path, ManifestError, ErrorCategory.MANIFEST)
    path = Path(manifest_path).resolve()

    package = data.get("package")
    if not isinstance(package, dict):
        raise ManifestError(f"{path} has no [package] table (virtual workspace manifests have no recipe)")

    workspace_root, workspace = find_workspace_root(path)
    workspace_package = workspace.get("package", {}) if workspace else {}

    def field_value(key: str) -> Optional[str]:
        value = _inherited(package.get(key), key, workspace_package)
        return str(value) if value is not None else None

    name = field_value("name")
    version = field_value("version")
    if not name:
        raise ManifestError(f"{path} has no package.name")
    if not version:
        raise ManifestError(f"{path} has no package.version")

    dev_only = _dev_only_names(data)

    return Manifest(
        name=name,
        version=version,
        manifest_path=path,
        description=field_value("description"),
        homepage=field_value("homepage"),
        repository=field_value("repository"),
        license=field_value("license"),
        license_file=field_value("license-file"),
        workspace_root=workspace_root,
        dev_only_dependencies=tuple(sorted(dev_only)),
    )


def parse_source(source: Optional[str]) -> Dict[str, Any]:
    """Split a Cargo.lock ``source`` string into Dependency source fields."""
    if source is None:
        return {"source": SourceKind.PATH}

    kind, _, url = source.partition("+")
    if kind in ("registry", "sparse"):
        return {"source": SourceKind.REGISTRY, "source_url": url}
    if kind != "git":
        raise LockfileError(f"Unsupported package source: {source}")

    parts = urlsplit(url)
    query = parse_qs(parts.query)
    if "tag" in query:
        reference = GitReference(GitReferenceKind.TAG, query["tag"][0])
    elif "branch" in query:
        reference = GitReference(GitReferenceKind.BRANCH, query["branch"][0])
    elif "rev" in query:
        reference = GitReference(GitReferenceKind.REV, query["rev"][0])
    else:
        reference = GitReference()

    return {
        "source": SourceKind.GIT,
        "source_url": urlunsplit((parts.scheme, parts.netloc, parts.path, "", "")),
        "git_reference": reference,
        "precise": parts.fragment or None,
    }


def _lookup(spec: str, by_name: Dict[str, List[Dependency]], owner: Dependency) -> Dependency:
    match = _DEPENDENCY_SPEC.match(spec.strip())
    if not match:
        raise GraphError(f"Malformed dependency entry '{spec}' in {owner}")

    candidates = by_name.get(match.group("name"), [])
    if match.group("version"):
        candidates = [dep for dep in candidates if dep.version == match.group("version")]
    if match.group("source") and len(candidates) > 1:
        source_url = parse_source(match.group("source")).get("source_url")
        candidates = [dep for dep in candidates if dep.source_url == source_url]

    if len(candidates) != 1:
        problem = "unknown" if not candidates else "ambiguous"
        raise GraphError(f"{owner} depends on {problem} package '{spec}'")
    return candidates[0]


def parse_cargo_lock(lockfile_path: Path, manifest: Manifest) -> ResolvedGraph:
    """
    Build the resolved graph from Cargo.lock, rooted at ``manifest``'s package.

    Dev-only dependencies of local crates are left out; they are never
    built by the recipe.

    Raises:
        LockfileError: If the lockfile is missing or unreadable
        GraphError: If entries reference packages that are not locked
    """
    data = _load_toml(lockfile_path, LockfileError, ErrorCategory.LOCKFILE)
    entries = data.get("package", [])
    if not isinstance(entries, list):
        raise LockfileError(f"{lockfile_path} has no [[package]] entries")

    packages: List[Tuple[Dependency, List[str]]] = []
    by_name: Dict[str, List[Dependency]] = {}
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("name") or not entry.get("version"):
            raise LockfileError(f"Malformed [[package]] entry in {lockfile_path}: {entry}")
        dependency = Dependency(
            name=str(entry["name"]).strip(),
            version=str(entry["version"]).strip(),
            **parse_source(entry.get("source")),
        )
        packages.append((dependency, list(entry.get("dependencies", []))))
        by_name.setdefault(dependency.name, []).append(dependency)

    root = next(
        (
            dep
            for dep, _ in packages
            if dep.name == manifest.name
            and dep.version == manifest.version
            and dep.source is SourceKind.PATH
        ),
        None,
    )
    if root is None:
        raise GraphError(
            f"{manifest.name} {manifest.version} is not in {lockfile_path}; "
            "run `cargo generate-lockfile`"
        )

    dev_only = local_dev_only_dependencies(manifest)
    dev_only[(root.name, root.version)] = set(manifest.dev_only_dependencies)

    edges: Dict[Dependency, List[Dependency]] = {}
    for dependency, specs in packages:
        children = [_lookup(spec, by_name, dependency) for spec in specs]
        if dependency.source is SourceKind.PATH:
            pruned = dev_only.get((dependency.name, dependency.version), set())
            children = [c for c in children if c.name not in pruned]
        edges[dependency] = children

    return ResolvedGraph(root=root, edges=edges)


def load_project(manifest_path: Optional[Path] = None) -> Tuple[Manifest, ResolvedGraph]:
    """Load the manifest found from ``manifest_path`` (or cwd) and its lockfile."""
    manifest = parse_cargo_toml(find_root_manifest(manifest_path or Path.cwd()))
    return manifest, parse_cargo_lock(manifest.lockfile_path, manifest)
