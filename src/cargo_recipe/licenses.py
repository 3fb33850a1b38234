"""
License expression parsing and license file lookup.

A manifest's ``license`` field is split into identifiers once, into a tagged
``LicenseExpression``; each identifier is then mapped to a license text file
in the crate root. Lookup order for an identifier (first hit wins):

1. the manifest's explicit ``license-file``, if any (missing file is fatal)
2. a bare license file (``LICENSE`` by default)
3. ``LICENSE-<identifier>``
4. ``LICENSE-<family>``, the identifier without its SPDX version suffix
5. a file named exactly ``<identifier>``

Exact file names are tried first, then a case-insensitive match against the
sorted directory listing. An identifier with no match is unresolved: it is
reported as a warning and rendered as a placeholder.
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import List, Optional, Sequence, Tuple

from .error_handling import (
    ErrorCategory,
    LicenseFileMissing,
    ManifestError,
    UnresolvedLicenseWarning,
    get_error_handler,
)
from .structured_logging import log_license_resolution

CLOSED_LICENSE = "CLOSED"

_TOKEN = re.compile(r"[()/]|[^\s()/]+")
_VERSION_SUFFIX = re.compile(r"^([A-Za-z][A-Za-z+]*?)-\d[\w.+-]*$")


class CombinationPolicy(Enum):
    """How multiple license identifiers combine."""

    OR = "|"
    AND = "&"

    @property
    def operator(self) -> str:
        return self.value


_OPERATORS = {"/": CombinationPolicy.OR, "OR": CombinationPolicy.OR, "AND": CombinationPolicy.AND}
_OPEN_OR_OPERATOR = ("(", CombinationPolicy.OR.operator, CombinationPolicy.AND.operator)


class LicenseKind(Enum):
    SINGLE = "single"
    COMBINED = "combined"
    MIXED = "mixed"


@dataclass(frozen=True)
class LicenseExpression:
    """A manifest license field, parsed once into its identifiers."""

    kind: LicenseKind
    identifiers: Tuple[str, ...]
    policy: Optional[CombinationPolicy] = None
    raw: str = ""
    closed: bool = False
    declared: str = ""

    @classmethod
    def parse(cls, raw: str) -> "LicenseExpression":
        """
        Parse a Cargo license field.

        ``/`` (legacy Cargo) and ``OR`` both mean either license applies;
        ``AND`` means both do. A field using a single operator is flattened
        into its identifiers. A field mixing AND with OR keeps its
        parentheses and is translated operator by operator, e.g.
        ``(MIT OR Apache-2.0) AND Unicode-DFS-2016`` becomes
        ``(MIT | Apache-2.0) & Unicode-DFS-2016``.

        Raises:
            ManifestError: If the field is empty or malformed
        """
        pieces: List[str] = []
        identifiers: List[str] = []
        words: List[str] = []
        policies = []
        depth = 0

        def flush() -> None:
            if words:
                identifier = " ".join(words)
                identifiers.append(identifier)
                pieces.append(identifier)
                words.clear()

        def malformed(reason: str) -> ManifestError:
            return ManifestError(f"package.license '{raw}' {reason}")

        for token in _TOKEN.findall(raw):
            if token in _OPERATORS:
                flush()
                if not pieces or pieces[-1] in _OPEN_OR_OPERATOR:
                    raise malformed("has an empty identifier")
                policy = _OPERATORS[token]
                if policy not in policies:
                    policies.append(policy)
                pieces.append(policy.operator)
            elif token == "(":
                flush()
                depth += 1
                pieces.append(token)
            elif token == ")":
                flush()
                depth -= 1
                if depth < 0 or not pieces or pieces[-1] in _OPEN_OR_OPERATOR:
                    raise malformed("has unbalanced parentheses")
                pieces.append(token)
            else:
                words.append(token)
        flush()

        if not identifiers:
            raise ManifestError("package.license is empty")
        if depth != 0:
            raise malformed("has unbalanced parentheses")
        if pieces[-1] in _OPEN_OR_OPERATOR:
            raise malformed("has an empty identifier")

        if not policies:
            return cls(LicenseKind.SINGLE, (identifiers[0],), None, raw)
        if len(policies) == 1:
            return cls(LicenseKind.COMBINED, tuple(identifiers), policies[0], raw)

        declared = " ".join(pieces).replace("( ", "(").replace(" )", ")")
        return cls(LicenseKind.MIXED, tuple(identifiers), None, raw, declared=declared)

    @classmethod
    def closed_source(cls, name: str = CLOSED_LICENSE) -> "LicenseExpression":
        return cls(LicenseKind.SINGLE, (name,), None, name, closed=True)

    def declaration(self) -> str:
        """The value of the recipe's LICENSE line."""
        if self.kind is LicenseKind.SINGLE:
            return self.identifiers[0]
        if self.kind is LicenseKind.MIXED:
            return self.declared
        return f" {self.policy.operator} ".join(self.identifiers)


@dataclass(frozen=True)
class LicenseFileRef:
    """Where the text for one license identifier lives, if anywhere."""

    identifier: str
    path: Optional[Path] = None
    recipe_path: str = ""
    searched: Tuple[str, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.path is not None


@dataclass(frozen=True)
class LicenseResolution:
    """License declaration plus one file reference per identifier."""

    expression: LicenseExpression
    refs: Tuple[LicenseFileRef, ...] = ()
    warnings: Tuple[UnresolvedLicenseWarning, ...] = field(default_factory=tuple)

    @property
    def declaration(self) -> str:
        return self.expression.declaration()

    @property
    def policy(self) -> Optional[CombinationPolicy]:
        return self.expression.policy

    def entries(self) -> List[LicenseFileRef]:
        """References to render, each file or unresolved identifier once."""
        seen = set()
        entries = []
        for ref in self.refs:
            key = ref.path.resolve() if ref.resolved else ref.identifier
            if key in seen:
                continue
            seen.add(key)
            entries.append(ref)
        return entries

    def resolved_paths(self) -> List[Path]:
        return [ref.path for ref in self.entries() if ref.resolved]


def license_family(identifier: str) -> Optional[str]:
    """Strip an SPDX version suffix: ``Apache-2.0`` -> ``Apache``."""
    match = _VERSION_SUFFIX.match(identifier)
    return match.group(1) if match else None


class LicenseResolver:
    """Maps license identifiers to license files in a crate root."""

    def __init__(
        self,
        crate_root: Path,
        rel_dir: PurePosixPath = PurePosixPath(""),
        bare_names: Sequence[str] = ("LICENSE",),
        listing: Optional[Sequence[str]] = None,
        closed_license: str = CLOSED_LICENSE,
    ):
        """
        Args:
            crate_root: Directory holding the crate's Cargo.toml
            rel_dir: Crate directory relative to the workspace root, used to
                prefix paths written into the recipe
            bare_names: License file names tried before identifier-specific ones
            listing: File names in ``crate_root``; read from disk when omitted
            closed_license: Declaration used when the manifest names no license
        """
        self.crate_root = Path(crate_root)
        self.rel_dir = PurePosixPath(rel_dir)
        self.bare_names = tuple(bare_names)
        self._listing = tuple(sorted(listing)) if listing is not None else None
        self.closed_license = closed_license

    @property
    def listing(self) -> Tuple[str, ...]:
        if self._listing is None:
            try:
                names = [
                    entry.name
                    for entry in os.scandir(self.crate_root)
                    if entry.is_file()
                ]
            except OSError as e:
                get_error_handler().warning(
                    ErrorCategory.FILESYSTEM,
                    f"Unable to list crate root: {e}",
                    "licenses",
                    "listing",
                    exception=e,
                )
                names = []
            self._listing = tuple(sorted(names))
        return self._listing

    def resolve(
        self, license_field: Optional[str], license_file: Optional[str] = None
    ) -> LicenseResolution:
        """
        Resolve the manifest's license fields to file references.

        Raises:
            LicenseFileMissing: If ``license_file`` is given but absent
            ManifestError: If ``license_field`` cannot be parsed
        """
        if license_field:
            expression = LicenseExpression.parse(license_field)
        elif license_file:
            expression = LicenseExpression(
                LicenseKind.SINGLE, (license_file,), None, license_file
            )
        else:
            return LicenseResolution(LicenseExpression.closed_source(self.closed_license))

        if license_file:
            explicit = self._explicit_ref(license_file)
            refs = tuple(
                LicenseFileRef(identifier, explicit.path, explicit.recipe_path)
                for identifier in expression.identifiers
            )
            return LicenseResolution(expression, refs)

        refs = []
        warnings = []
        for identifier in dict.fromkeys(expression.identifiers):
            ref = self.find(identifier)
            log_license_resolution(
                identifier,
                str(ref.path) if ref.resolved else None,
                list(ref.searched),
            )
            if not ref.resolved:
                warnings.append(UnresolvedLicenseWarning(identifier, ref.searched))
            refs.append(ref)

        return LicenseResolution(expression, tuple(refs), tuple(warnings))

    def _explicit_ref(self, license_file: str) -> LicenseFileRef:
        path = Path(license_file)
        abs_path = path if path.is_absolute() else self.crate_root / path
        if not abs_path.is_file():
            get_error_handler().error(
                ErrorCategory.LICENSE,
                "Explicit license-file does not exist",
                "licenses",
                "resolve",
                details={"license_file": license_file},
            )
            raise LicenseFileMissing(abs_path)

        if path.is_absolute():
            try:
                path = abs_path.relative_to(self.crate_root)
            except ValueError:
                path = PurePosixPath(abs_path.name)
        recipe_path = str(self.rel_dir / PurePosixPath(*Path(path).parts))
        return LicenseFileRef(license_file, abs_path, recipe_path, (license_file,))

    def candidates(self, identifier: str) -> List[str]:
        names = list(self.bare_names)
        names.append(f"LICENSE-{identifier}")
        family = license_family(identifier)
        if family:
            names.append(f"LICENSE-{family}")
        names.append(identifier)
        # keep first occurrence only
        return list(dict.fromkeys(names))

    def find(self, identifier: str) -> LicenseFileRef:
        """Search the crate root for the license text of one identifier."""
        candidates = self.candidates(identifier)
        listing = self.listing

        match = next((name for name in candidates if name in listing), None)
        if match is None:
            folded = {}
            for name in listing:
                folded.setdefault(name.casefold(), name)
            match = next(
                (folded[name.casefold()] for name in candidates if name.casefold() in folded),
                None,
            )

        if match is None:
            return LicenseFileRef(identifier, None, identifier, tuple(candidates))

        return LicenseFileRef(
            identifier,
            self.crate_root / match,
            str(self.rel_dir / match),
            tuple(candidates),
        )
