from __future__ import annotations

import enum
import logging
import os
import subprocess
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

_REF_PREFIXES = (
    ("refs/heads/", "local"),
    ("refs/remotes/", "remote"),
    ("refs/tags/", "tag"),
)


class RefKind(enum.Enum):
    LOCAL = "local"
    REMOTE = "remote"
    TAG = "tag"


@dataclass(frozen=True)
class GitCommit:
    """Container for the metadata needed by the TUI."""

    oid: str
    short_oid: str
    parent_oids: Tuple[str, ...]
    author_name: str
    author_email: str
    authored_at: datetime
    title: str

    @property
    def is_merge(self) -> bool:
        return len(self.parent_oids) > 1

    @property
    def is_root(self) -> bool:
        return not self.parent_oids


@dataclass(frozen=True)
class GitRef:
    """A branch, remote branch or tag resolved to the commit it points at."""

    kind: RefKind
    name: str
    target: str
    is_head: bool = False

    @property
    def is_local(self) -> bool:
        return self.kind is RefKind.LOCAL

    @property
    def remote_branch(self) -> Optional[str]:
        """Branch name without the remote prefix (``origin/dev`` -> ``dev``)."""
        if self.kind is not RefKind.REMOTE or "/" not in self.name:
            return None
        return self.name.split("/", 1)[1]


@dataclass(frozen=True)
class RefGroup:
    """All refs pointing at one commit, displayed as a single label."""

    target: str
    refs: Tuple[GitRef, ...]

    @property
    def primary(self) -> GitRef:
        return self.refs[0]

    @property
    def label(self) -> str:
        if len(self.refs) > 1:
            return f"{self.primary.name} +{len(self.refs) - 1}"
        return self.primary.name

    def __len__(self) -> int:
        return len(self.refs)


@dataclass(frozen=True)
class FileStat:
    path: str
    added: int
    deleted: int


@dataclass(frozen=True)
class DiffStat:
    files: Tuple[FileStat, ...] = ()
    total_files: int = 0
    truncated: bool = False

    @property
    def added(self) -> int:
        return sum(item.added for item in self.files)

    @property
    def deleted(self) -> int:
        return sum(item.deleted for item in self.files)


class GitError(RuntimeError):
    """Raised when git commands fail."""


class RepositoryNotFoundError(GitError):
    """No repository contains the requested directory."""


class ConflictError(GitError):
    """A merge or rebase stopped on conflicts."""


class NotFastForwardError(GitError):
    """The update was rejected because it is not a fast-forward."""


class RefNotFoundError(GitError):
    """A branch, tag or commit name did not resolve."""


class RemoteNotConfiguredError(GitError):
    """The requested remote does not exist."""


def _classify_failure(message: str) -> type[GitError]:
    lowered = message.lower()
    if "conflict" in lowered:
        return ConflictError
    if "non-fast-forward" in lowered or "not possible to fast-forward" in lowered:
        return NotFastForwardError
    if (
        "did not match any" in lowered
        or "not found" in lowered
        or "unknown revision" in lowered
        or "not a valid" in lowered
        or "invalid reference" in lowered
        or "not something we can merge" in lowered
    ):
        return RefNotFoundError
    if "does not appear to be a git repository" in lowered or "no such remote" in lowered:
        return RemoteNotConfiguredError
    return GitError


def group_refs(refs: List[GitRef]) -> dict[str, RefGroup]:
    """Collapse refs by target commit.

    Members are ordered HEAD branch first, then local branches, remote
    branches and tags, each alphabetically.
    """
    order = {RefKind.LOCAL: 1, RefKind.REMOTE: 2, RefKind.TAG: 3}
    by_target: dict[str, List[GitRef]] = {}
    for ref in refs:
        by_target.setdefault(ref.target, []).append(ref)
    return {
        target: RefGroup(
            target=target,
            refs=tuple(
                sorted(
                    members,
                    key=lambda ref: (0 if ref.is_head else order[ref.kind], ref.name),
                )
            ),
        )
        for target, members in by_target.items()
    }


class GitRepository:
    """Thin wrapper on top of cli git interactions."""

    def __init__(self, path: str) -> None:
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    def _run(self, *args: str, text: bool = True) -> subprocess.CompletedProcess:
        logger.debug("git %s", " ".join(args))
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self._path,
                text=text,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise GitError("git executable not found") from exc
        except subprocess.CalledProcessError as exc:
            message = exc.stderr.strip() or exc.stdout.strip()
            raise _classify_failure(message)(message) from exc

    # -- reads ---------------------------------------------------------------

    def list_refs(self) -> List[GitRef]:
        """Return local branches, remote branches and tags with their commits."""
        fmt = "%(refname)%1f%(objectname)%1f%(*objectname)%1f%(HEAD)%1f%(symref)"
        result = self._run(
            "for-each-ref",
            f"--format={fmt}",
            "refs/heads",
            "refs/remotes",
            "refs/tags",
        )
        refs: List[GitRef] = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            refname, objectname, peeled, head_marker, symref = line.split("\x1f")
            if symref:
                # refs/remotes/origin/HEAD and friends
                continue
            for prefix, kind in _REF_PREFIXES:
                if refname.startswith(prefix):
                    refs.append(
                        GitRef(
                            kind=RefKind(kind),
                            name=refname[len(prefix):],
                            target=peeled or objectname,
                            is_head=head_marker.strip() == "*",
                        )
                    )
                    break
        return refs

    def head_oid(self) -> Optional[str]:
        try:
            return self._run("rev-parse", "--verify", "--quiet", "HEAD").stdout.strip() or None
        except GitError:
            return None

    def head_branch(self) -> Optional[str]:
        try:
            name = self._run("symbolic-ref", "--quiet", "--short", "HEAD").stdout.strip()
        except GitError:
            return None
        return name or None

    def walk_commits(self, cap: int = 500) -> List[GitCommit]:
        """Return commits of every ref, children before parents, newest first."""
        head = self.head_oid()
        if head is None and not self.list_refs():
            return []
        pretty = "%H%x1f%h%x1f%P%x1f%an%x1f%ae%x1f%ad%x1f%s%x1e"
        result = self._run(
            "log",
            "--branches",
            "--remotes",
            "--tags",
            *(["HEAD"] if head else []),
            "--date-order",
            f"-n{max(0, cap)}",
            "--date=iso8601-strict",
            f"--pretty=format:{pretty}",
        )
        commits: List[GitCommit] = []
        for entry in filter(None, result.stdout.split("\x1e")):
            entry = entry.strip("\n")
            if not entry:
                continue
            (
                oid,
                short_oid,
                parents,
                author_name,
                author_email,
                authored_at,
                title,
            ) = entry.split("\x1f")
            commits.append(
                GitCommit(
                    oid=oid.strip(),
                    short_oid=short_oid.strip(),
                    parent_oids=tuple(p for p in parents.split(" ") if p),
                    author_name=author_name.strip(),
                    author_email=author_email.strip(),
                    authored_at=datetime.fromisoformat(authored_at.strip()),
                    title=title.strip(),
                )
            )
        return commits

    @lru_cache(maxsize=256)
    def diff_stat(
        self, oid: str, parent_oid: Optional[str] = None, limit: int = 50
    ) -> DiffStat:
        """Return per-file line counts for the commit against its first parent.

        Without ``parent_oid`` the commit is treated as a root and compared
        with the empty tree.
        """
        if parent_oid:
            args = ["diff-tree", "-r", "--numstat", "-M", parent_oid, oid]
        else:
            args = ["diff-tree", "-r", "--root", "--no-commit-id", "--numstat", "-M", oid]
        result = self._run(*args)
        return _parse_numstat(result.stdout, limit)

    def working_tree_diff_stat(self, limit: int = 50) -> DiffStat:
        """Return staged and unstaged changes against HEAD."""
        result = self._run("diff", "HEAD", "--numstat", "-M")
        return _parse_numstat(result.stdout, limit)

    def working_tree_status(self) -> bool:
        """True when tracked files have staged or unstaged changes."""
        result = self._run("status", "--porcelain", "--untracked-files=no")
        return bool(result.stdout.strip())

    def remotes(self) -> List[str]:
        return [line.strip() for line in self._run("remote").stdout.splitlines() if line.strip()]

    # -- mutations -----------------------------------------------------------

    def checkout(self, target: GitRef | str) -> None:
        """Check out a branch, a tracking branch for a remote, or a detached commit."""
        if isinstance(target, str):
            self._run("checkout", "--detach", target)
        elif target.kind is RefKind.LOCAL:
            self._run("checkout", target.name)
        elif target.kind is RefKind.REMOTE:
            local_name = target.remote_branch
            if not local_name:
                raise RefNotFoundError(f"cannot derive a local branch from {target.name}")
            self._run("checkout", "-B", local_name, "--track", target.name)
        else:
            self._run("checkout", "--detach", target.target)

    def create_branch(self, name: str, at_oid: str) -> None:
        self._run("branch", name, at_oid)

    def delete_branch(self, name: str) -> None:
        if name == self.head_branch():
            raise GitError(f"cannot delete the checked out branch '{name}'")
        self._run("branch", "-D", name)

    def merge(self, branch: str) -> None:
        self._run("merge", "--no-edit", branch)

    def rebase(self, onto: str) -> None:
        self._run("rebase", onto)

    def fetch(self, remote: str = "origin") -> None:
        if remote not in self.remotes():
            raise RemoteNotConfiguredError(f"remote '{remote}' is not configured")
        self._run("fetch", remote)


def _parse_numstat(output: str, limit: int) -> DiffStat:
    files: List[FileStat] = []
    total = 0
    for line in output.splitlines():
        parts = line.split("\t", 2)
        if len(parts) != 3:
            continue
        added, deleted, path = parts
        if added == "-" or deleted == "-":
            # binary file
            continue
        total += 1
        if len(files) < limit:
            files.append(FileStat(path=path, added=int(added), deleted=int(deleted)))
    return DiffStat(files=tuple(files), total_files=total, truncated=total > len(files))


@lru_cache(maxsize=32)
def _toplevel(start_dir: str) -> Optional[str]:
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=start_dir,
            text=True,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise GitError("git executable not found") from exc
    except subprocess.CalledProcessError:
        return None
    return result.stdout.strip() or None


def discover_repository(start_dir: str) -> GitRepository:
    """Return the repository containing ``start_dir``."""
    path = os.path.abspath(start_dir)
    if not os.path.isdir(path):
        raise RepositoryNotFoundError(f"directory does not exist: {path}")
    root = _toplevel(path)
    if root is None:
        raise RepositoryNotFoundError(f"not a git repository: {path}")
    return GitRepository(root)
