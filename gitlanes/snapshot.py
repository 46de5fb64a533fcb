from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .config import Settings
from .git_data import GitCommit, GitRef, GitRepository, RefGroup, group_refs
from .graph import GraphLayout, build_graph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepoSnapshot:
    """Everything the UI draws, loaded in one go and never modified."""

    path: str
    commits: Tuple[GitCommit, ...]
    refs: Tuple[GitRef, ...]
    groups: Tuple[RefGroup, ...]
    layout: GraphLayout
    head_oid: Optional[str] = None
    head_branch: Optional[str] = None
    dirty: bool = False
    truncated: bool = False
    _groups_by_target: Dict[str, RefGroup] = field(
        default_factory=dict, repr=False, compare=False
    )

    def group_for(self, oid: Optional[str]) -> Optional[RefGroup]:
        if oid is None:
            return None
        return self._groups_by_target.get(oid)

    @property
    def branch_refs(self) -> Tuple[GitRef, ...]:
        """Refs in branch-list order: one entry per ref, grouped by row."""
        return tuple(ref for group in self.groups for ref in group.refs)


def make_snapshot(
    path: str,
    commits: Tuple[GitCommit, ...],
    refs: Tuple[GitRef, ...],
    *,
    head_oid: Optional[str],
    head_branch: Optional[str],
    dirty: bool,
    palette_size: int,
    truncated: bool = False,
) -> RepoSnapshot:
    by_target = group_refs(list(refs))
    groups = tuple(by_target[c.oid] for c in commits if c.oid in by_target)
    layout = build_graph(
        commits, palette_size=palette_size, head_oid=head_oid, dirty=dirty
    )
    return RepoSnapshot(
        path=path,
        commits=commits,
        refs=refs,
        groups=groups,
        layout=layout,
        head_oid=head_oid,
        head_branch=head_branch,
        dirty=dirty,
        truncated=truncated,
        _groups_by_target={group.target: group for group in groups},
    )


def load_snapshot(repo: GitRepository, settings: Settings) -> RepoSnapshot:
    """Read refs, commits and working tree state and lay out the graph."""
    cap = settings.commit_cap
    # One extra commit tells us whether the cap cut anything off.
    commits = repo.walk_commits(cap + 1)
    truncated = len(commits) > cap
    commits = commits[:cap]
    head_oid = repo.head_oid()
    snapshot = make_snapshot(
        repo.path,
        tuple(commits),
        tuple(repo.list_refs()),
        head_oid=head_oid,
        head_branch=repo.head_branch(),
        dirty=bool(head_oid) and repo.working_tree_status(),
        palette_size=settings.palette_size,
        truncated=truncated,
    )
    logger.info(
        "loaded %d commits (%s), %d ref groups, dirty=%s",
        len(snapshot.commits),
        "truncated" if truncated else "complete",
        len(snapshot.groups),
        snapshot.dirty,
    )
    return snapshot
