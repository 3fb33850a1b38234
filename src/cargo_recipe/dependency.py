from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SourceKind(Enum):
    """Where a locked package is fetched from."""

    REGISTRY = "registry"
    GIT = "git"
    PATH = "path"


class GitReferenceKind(Enum):
    TAG = "tag"
    BRANCH = "branch"
    REV = "rev"
    DEFAULT_BRANCH = "default"


@dataclass(frozen=True)
class GitReference:
    """The reference a git dependency was requested with in the manifest."""

    kind: GitReferenceKind = GitReferenceKind.DEFAULT_BRANCH
    value: Optional[str] = None


@dataclass(frozen=True, order=True)
class Dependency:
    """A resolved package.

    Identity, equality and ordering are (name, version) only; the source
    fields describe how to fetch it.
    """

    name: str
    version: str
    source: SourceKind = field(default=SourceKind.REGISTRY, compare=False)
    source_url: Optional[str] = field(default=None, compare=False)
    git_reference: Optional[GitReference] = field(default=None, compare=False)
    precise: Optional[str] = field(default=None, compare=False)

    @property
    def key(self) -> tuple:
        return (self.name, self.version)

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"
