"""Tests for the async git wrappers."""

import asyncio

import pytest

from conftest import git
from ticket_to_pr.integrations.git import (
    GitError,
    branch_exists,
    changed_files,
    commit_count,
    detect_default_branch,
    run_git,
    worktree_add,
)


class TestRunGit:
    def test_returns_stdout(self, git_repo):
        assert asyncio.run(run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=git_repo)) == "main"

    def test_failure_raises(self, git_repo):
        with pytest.raises(GitError, match="failed"):
            asyncio.run(run_git(["checkout", "does-not-exist"], cwd=git_repo))


class TestDefaultBranch:
    def test_local_main(self, git_repo):
        assert asyncio.run(detect_default_branch(git_repo)) == "main"

    def test_local_master(self, git_repo):
        git("branch", "-m", "main", "master", cwd=git_repo)
        assert asyncio.run(detect_default_branch(git_repo)) == "master"

    def test_remote_head_wins(self, git_repo, origin_repo):
        git("checkout", "-b", "develop", cwd=git_repo)
        git("push", "origin", "develop", cwd=git_repo)
        git("symbolic-ref", "refs/remotes/origin/HEAD", "refs/remotes/origin/develop", cwd=git_repo)
        assert asyncio.run(detect_default_branch(git_repo)) == "develop"

    def test_fallback_is_main(self, git_repo):
        git("branch", "-m", "main", "trunk", cwd=git_repo)
        assert asyncio.run(detect_default_branch(git_repo)) == "main"


class TestBranches:
    def test_branch_exists(self, git_repo):
        assert asyncio.run(branch_exists(git_repo, "main")) is True
        assert asyncio.run(branch_exists(git_repo, "nope")) is False


class TestChanges:
    def test_committed_and_untracked(self, git_repo, tmp_dir):
        workspace = tmp_dir / "ws"
        asyncio.run(worktree_add(git_repo, workspace, "feature/a", start_point="main"))

        (workspace / "committed.py").write_text("x = 1\n")
        git("add", "committed.py", cwd=workspace)
        git("commit", "-m", "add committed", cwd=workspace)
        (workspace / "README.md").write_text("# Changed\n")
        (workspace / "new_dir").mkdir()
        (workspace / "new_dir" / "untracked.txt").write_text("hi\n")

        files = asyncio.run(changed_files(workspace, "main"))
        assert files == ["committed.py", "README.md", "new_dir/untracked.txt"]
        assert asyncio.run(commit_count(workspace, "main")) == 1

    def test_no_changes(self, git_repo, tmp_dir):
        workspace = tmp_dir / "ws"
        asyncio.run(worktree_add(git_repo, workspace, "feature/b", start_point="main"))
        assert asyncio.run(changed_files(workspace, "main")) == []
        assert asyncio.run(commit_count(workspace, "main")) == 0

    def test_rename_reports_both_paths(self, git_repo, tmp_dir):
        (git_repo / ".env").write_text("SECRET=1\n")
        git("add", ".env", cwd=git_repo)
        git("commit", "-m", "add env", cwd=git_repo)
        workspace = tmp_dir / "ws"
        asyncio.run(worktree_add(git_repo, workspace, "feature/c", start_point="main"))

        git("mv", ".env", "notes.txt", cwd=workspace)
        git("commit", "-m", "rename", cwd=workspace)
        git("mv", "README.md", "docs.md", cwd=workspace)

        files = asyncio.run(changed_files(workspace, "main"))
        assert set(files) == {".env", "notes.txt", "README.md", "docs.md"}

    def test_non_ascii_paths_are_unquoted(self, git_repo, tmp_dir):
        workspace = tmp_dir / "ws"
        asyncio.run(worktree_add(git_repo, workspace, "feature/d", start_point="main"))
        (workspace / "résumé.txt").write_text("hi\n")
        assert asyncio.run(changed_files(workspace, "main")) == ["résumé.txt"]
