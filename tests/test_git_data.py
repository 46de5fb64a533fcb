"""Backend tests against throwaway repositories built with the git binary."""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
import unittest
from unittest import mock
from pathlib import Path

from gitlanes.config import Settings
from gitlanes.git_data import (
    GitError,
    GitRef,
    RefKind,
    RefNotFoundError,
    RemoteNotConfiguredError,
    RepositoryNotFoundError,
    _classify_failure,
    _parse_numstat,
    discover_repository,
    group_refs,
)
from gitlanes.snapshot import load_snapshot


def _git(root: Path, *args: str, when: int = 0) -> str:
    env = dict(os.environ)
    stamp = f"2024-01-01T12:{when:02d}:00+00:00"
    env.update(
        GIT_AUTHOR_DATE=stamp,
        GIT_COMMITTER_DATE=stamp,
        GIT_CONFIG_NOSYSTEM="1",
    )
    result = subprocess.run(
        ["git", *args],
        cwd=root,
        env=env,
        check=True,
        text=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    return result.stdout.strip()


def _commit(root: Path, name: str, content: str, message: str, when: int) -> str:
    (root / name).write_text(content, encoding="utf-8")
    _git(root, "add", name)
    _git(root, "commit", "-q", "-m", message, when=when)
    return _git(root, "rev-parse", "HEAD")


@unittest.skipIf(shutil.which("git") is None, "git is required for backend tests")
class GitRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        _git(self.root, "init", "-q")
        _git(self.root, "symbolic-ref", "HEAD", "refs/heads/main")
        _git(self.root, "config", "user.email", "tests@example.com")
        _git(self.root, "config", "user.name", "Tests")
        _git(self.root, "config", "commit.gpgsign", "false")
        _git(self.root, "config", "tag.gpgsign", "false")
        self.base = _commit(self.root, "a.txt", "one\n", "initial", when=1)
        _git(self.root, "branch", "feature")
        self.main_tip = _commit(self.root, "a.txt", "one\ntwo\n", "second", when=2)
        _git(self.root, "checkout", "-q", "feature")
        self.feature_tip = _commit(self.root, "b.txt", "b\n", "feature work", when=3)
        _git(self.root, "checkout", "-q", "main")
        _git(self.root, "tag", "-a", "v1", "-m", "release", self.base)
        self.repo = discover_repository(str(self.root))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_discover_from_subdirectory_finds_toplevel(self) -> None:
        nested = self.root / "deep" / "er"
        nested.mkdir(parents=True)

        repo = discover_repository(str(nested))

        self.assertEqual(Path(repo.path).resolve(), self.root)

    def test_list_refs_peels_annotated_tags(self) -> None:
        refs = {ref.name: ref for ref in self.repo.list_refs()}

        self.assertEqual(refs["main"].kind, RefKind.LOCAL)
        self.assertTrue(refs["main"].is_head)
        self.assertFalse(refs["feature"].is_head)
        self.assertEqual(refs["v1"].kind, RefKind.TAG)
        self.assertEqual(refs["v1"].target, self.base)

    def test_walk_commits_lists_children_before_parents(self) -> None:
        commits = self.repo.walk_commits(10)
        oids = [item.oid for item in commits]

        self.assertEqual(set(oids), {self.base, self.main_tip, self.feature_tip})
        self.assertEqual(oids[-1], self.base)
        self.assertEqual(commits[-1].parent_oids, ())
        self.assertEqual(commits[0].title, "feature work")
        self.assertEqual(commits[0].author_email, "tests@example.com")

    def test_walk_commits_respects_cap(self) -> None:
        self.assertEqual(len(self.repo.walk_commits(2)), 2)

    def test_head_information(self) -> None:
        self.assertEqual(self.repo.head_oid(), self.main_tip)
        self.assertEqual(self.repo.head_branch(), "main")

    def test_diff_stat_against_parent_and_root(self) -> None:
        stat = self.repo.diff_stat(self.main_tip, self.base)
        self.assertEqual([(f.path, f.added, f.deleted) for f in stat.files], [("a.txt", 1, 0)])

        root_stat = self.repo.diff_stat(self.base)
        self.assertEqual(root_stat.total_files, 1)
        self.assertEqual(root_stat.added, 1)

    def test_working_tree_changes(self) -> None:
        self.assertFalse(self.repo.working_tree_status())
        (self.root / "a.txt").write_text("changed\n", encoding="utf-8")

        self.assertTrue(self.repo.working_tree_status())
        stat = self.repo.working_tree_diff_stat()
        self.assertEqual(stat.files[0].path, "a.txt")
        self.assertEqual(stat.deleted, 2)

    def test_branch_lifecycle(self) -> None:
        self.repo.create_branch("topic", self.base)
        self.assertIn("topic", [ref.name for ref in self.repo.list_refs()])

        self.repo.checkout(GitRef(RefKind.LOCAL, "topic", self.base))
        self.assertEqual(self.repo.head_branch(), "topic")
        with self.assertRaises(GitError):
            self.repo.delete_branch("topic")

        self.repo.checkout(GitRef(RefKind.LOCAL, "main", self.main_tip))
        self.repo.delete_branch("topic")
        self.assertNotIn("topic", [ref.name for ref in self.repo.list_refs()])

    def test_checkout_commit_detaches_head(self) -> None:
        self.repo.checkout(self.base)

        self.assertIsNone(self.repo.head_branch())
        self.assertEqual(self.repo.head_oid(), self.base)

    def test_merge_creates_merge_commit(self) -> None:
        self.repo.merge("feature")

        head = self.repo.walk_commits(1)[0]
        self.assertEqual(head.parent_oids, (self.main_tip, self.feature_tip))

    def test_missing_branch_and_remote_errors(self) -> None:
        with self.assertRaises(RefNotFoundError):
            self.repo.merge("does-not-exist")
        with self.assertRaises(RemoteNotConfiguredError):
            self.repo.fetch("origin")

    def test_load_snapshot_marks_truncation_and_dirty_state(self) -> None:
        (self.root / "a.txt").write_text("changed\n", encoding="utf-8")

        snapshot = load_snapshot(self.repo, Settings(commit_cap=2))

        self.assertTrue(snapshot.truncated)
        self.assertTrue(snapshot.dirty)
        self.assertEqual(len(snapshot.commits), 2)
        self.assertTrue(snapshot.layout.rows[0].is_uncommitted)
        self.assertEqual(snapshot.head_branch, "main")


@unittest.skipIf(shutil.which("git") is None, "git is required for backend tests")
class DiscoveryTests(unittest.TestCase):
    def test_directory_outside_any_repository(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            env = {"GIT_CEILING_DIRECTORIES": str(Path(tmp).resolve().parent)}
            with mock.patch.dict(os.environ, env):
                with self.assertRaises(RepositoryNotFoundError):
                    discover_repository(tmp)

    def test_missing_directory(self) -> None:
        with self.assertRaises(RepositoryNotFoundError):
            discover_repository("/definitely/not/here")

    def test_empty_repository_has_no_commits(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            subprocess.run(["git", "init", "-q"], cwd=tmp, check=True)
            repo = discover_repository(tmp)

            self.assertEqual(repo.walk_commits(), [])
            self.assertIsNone(repo.head_oid())
            snapshot = load_snapshot(repo, Settings())
            self.assertEqual(len(snapshot.layout), 0)
            self.assertFalse(snapshot.dirty)


class ParsingTests(unittest.TestCase):
    def test_numstat_skips_binary_and_truncates(self) -> None:
        output = "1\t2\ta.txt\n-\t-\timage.png\n3\t0\tb.txt\n5\t5\tc.txt\n"

        stat = _parse_numstat(output, limit=2)

        self.assertEqual([f.path for f in stat.files], ["a.txt", "b.txt"])
        self.assertEqual(stat.total_files, 3)
        self.assertTrue(stat.truncated)

    def test_failure_classification(self) -> None:
        self.assertEqual(
            _classify_failure("error: pathspec 'nope' did not match any file(s) known to git").__name__,
            "RefNotFoundError",
        )
        self.assertEqual(
            _classify_failure("CONFLICT (content): Merge conflict in a.txt").__name__,
            "ConflictError",
        )
        self.assertIs(_classify_failure("something else"), GitError)

    def test_group_members_start_with_head_branch(self) -> None:
        refs = [
            GitRef(RefKind.TAG, "v1", "x"),
            GitRef(RefKind.REMOTE, "origin/main", "x"),
            GitRef(RefKind.LOCAL, "zeta", "x"),
            GitRef(RefKind.LOCAL, "main", "x", is_head=True),
        ]

        group = group_refs(refs)["x"]

        self.assertEqual([ref.name for ref in group.refs], ["main", "zeta", "origin/main", "v1"])
        self.assertEqual(group.label, "main +3")


if __name__ == "__main__":
    unittest.main()
