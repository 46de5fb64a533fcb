"""Terminal UI for browsing a git commit graph drawn in lanes."""

from importlib import metadata

try:
    __version__ = metadata.version("gitlanes")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0"

from .git_data import GitCommit, GitError, GitRef, GitRepository, discover_repository  # noqa: E402
from .graph import GraphLayout, build_graph  # noqa: E402
from .snapshot import RepoSnapshot, load_snapshot  # noqa: E402

__all__ = [
    "GitCommit",
    "GitError",
    "GitRef",
    "GitRepository",
    "GraphLayout",
    "RepoSnapshot",
    "build_graph",
    "discover_repository",
    "load_snapshot",
    "__version__",
]
