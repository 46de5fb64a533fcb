"""Branch operations run off the UI loop, one at a time."""

from __future__ import annotations

import contextvars
import enum
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Optional

from .git_data import GitCommit, GitError, GitRef, GitRepository
from .snapshot import RepoSnapshot

logger = logging.getLogger(__name__)


class OperationKind(enum.Enum):
    CHECKOUT = "checkout"
    CREATE_BRANCH = "create branch"
    DELETE_BRANCH = "delete branch"
    MERGE = "merge"
    REBASE = "rebase"
    FETCH = "fetch"


class OperationRejected(ValueError):
    """The selection does not allow the requested operation."""


@dataclass(frozen=True)
class Operation:
    kind: OperationKind
    target: str
    ref: Optional[GitRef] = None
    at_oid: Optional[str] = None

    def describe(self) -> str:
        if self.kind is OperationKind.CHECKOUT:
            return f"Checking out {self.target}"
        if self.kind is OperationKind.CREATE_BRANCH:
            return f"Creating branch {self.target}"
        if self.kind is OperationKind.DELETE_BRANCH:
            return f"Deleting branch {self.target}"
        if self.kind is OperationKind.MERGE:
            return f"Merging {self.target}"
        if self.kind is OperationKind.REBASE:
            return f"Rebasing onto {self.target}"
        return f"Fetching from {self.target}"


@dataclass(frozen=True)
class OperationResult:
    operation: Operation
    error: Optional[BaseException] = None
    snapshot: Optional[RepoSnapshot] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def plan_checkout(ref: Optional[GitRef], commit: Optional[GitCommit]) -> Operation:
    if ref is not None:
        return Operation(OperationKind.CHECKOUT, ref.name, ref=ref)
    if commit is not None:
        return Operation(OperationKind.CHECKOUT, commit.short_oid, at_oid=commit.oid)
    raise OperationRejected("Nothing to check out here")


def plan_create_branch(name: str, commit: Optional[GitCommit]) -> Operation:
    name = name.strip()
    if not name:
        raise OperationRejected("Branch name is empty")
    if commit is None:
        raise OperationRejected("Select a commit to branch from")
    return Operation(OperationKind.CREATE_BRANCH, name, at_oid=commit.oid)


def _local_ref(ref: Optional[GitRef], verb: str) -> GitRef:
    if ref is None:
        raise OperationRejected(f"Select a branch to {verb}")
    if not ref.is_local:
        raise OperationRejected(f"Cannot {verb} {ref.kind.value} ref {ref.name}")
    return ref


def plan_delete_branch(ref: Optional[GitRef], head_branch: Optional[str]) -> Operation:
    ref = _local_ref(ref, "delete")
    if ref.is_head or ref.name == head_branch:
        raise OperationRejected(f"Cannot delete the current branch {ref.name}")
    return Operation(OperationKind.DELETE_BRANCH, ref.name, ref=ref)


def plan_merge(ref: Optional[GitRef], head_branch: Optional[str]) -> Operation:
    ref = _local_ref(ref, "merge")
    if ref.name == head_branch:
        raise OperationRejected(f"{ref.name} is the current branch")
    return Operation(OperationKind.MERGE, ref.name, ref=ref)


def plan_rebase(ref: Optional[GitRef], head_branch: Optional[str]) -> Operation:
    ref = _local_ref(ref, "rebase onto")
    if ref.name == head_branch:
        raise OperationRejected(f"{ref.name} is the current branch")
    return Operation(OperationKind.REBASE, ref.name, ref=ref)


def plan_fetch(remote: str = "origin") -> Operation:
    return Operation(OperationKind.FETCH, remote)


def apply_operation(repo: GitRepository, operation: Operation) -> None:
    kind = operation.kind
    if kind is OperationKind.CHECKOUT:
        repo.checkout(operation.ref if operation.ref is not None else operation.at_oid)
    elif kind is OperationKind.CREATE_BRANCH:
        repo.create_branch(operation.target, operation.at_oid)
    elif kind is OperationKind.DELETE_BRANCH:
        repo.delete_branch(operation.target)
    elif kind is OperationKind.MERGE:
        repo.merge(operation.target)
    elif kind is OperationKind.REBASE:
        repo.rebase(operation.target)
    elif kind is OperationKind.FETCH:
        repo.fetch(operation.target)
    else:
        raise ValueError(f"unknown operation {kind!r}")


class OperationDispatcher:
    """Single-slot background runner for mutating git operations.

    ``submit`` refuses work while an operation is in flight. The worker
    applies the operation and, on success, loads a fresh snapshot; the UI
    picks the outcome up with ``poll`` without ever blocking.
    """

    def __init__(
        self,
        repo: GitRepository,
        loader: Callable[[], RepoSnapshot],
    ) -> None:
        self._repo = repo
        self._loader = loader
        self._lock = threading.Lock()
        self._results: Queue[OperationResult] = Queue(maxsize=1)
        self._pending: Optional[Operation] = None
        self._generation = 0

    @property
    def busy(self) -> bool:
        return self._pending is not None

    @property
    def pending(self) -> Optional[Operation]:
        return self._pending

    def submit(self, operation: Operation) -> bool:
        with self._lock:
            if self._pending is not None:
                return False
            self._pending = operation
            generation = self._generation
        logger.info("starting %s", operation.describe().lower())
        # Carries textual's active app into the thread for TextualHandler.
        worker = threading.Thread(
            target=contextvars.copy_context().run,
            args=(self._worker, operation, generation),
            name="gitlanes-operation",
            daemon=True,
        )
        worker.start()
        return True

    def _worker(self, operation: Operation, generation: int) -> None:
        error: Optional[BaseException] = None
        snapshot: Optional[RepoSnapshot] = None
        try:
            apply_operation(self._repo, operation)
            snapshot = self._loader()
        except GitError as err:
            logger.warning("%s failed: %s", operation.kind.value, err)
            error = err
        except Exception as err:
            logger.exception("%s crashed", operation.kind.value)
            error = err
        with self._lock:
            if generation != self._generation:
                logger.info("discarding result of abandoned %s", operation.kind.value)
                return
            self._results.put_nowait(OperationResult(operation, error, snapshot))

    def poll(self) -> Optional[OperationResult]:
        try:
            result = self._results.get_nowait()
        except Empty:
            return None
        with self._lock:
            self._pending = None
        logger.info("finished %s (ok=%s)", result.operation.kind.value, result.ok)
        return result

    def abandon(self) -> None:
        """Forget the in-flight operation; its result is dropped when it arrives."""
        with self._lock:
            self._generation += 1
            self._pending = None
        while True:
            try:
                self._results.get_nowait()
            except Empty:
                break
