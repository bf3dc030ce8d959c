"""Tests for ephemeral worktree workspaces."""

import asyncio

import pytest

from conftest import git
from ticket_to_pr.core.workspace import WorkspaceManager, ensure_ignored, sanitize_branch
from ticket_to_pr.integrations.git import GitError


@pytest.fixture
def manager():
    return WorkspaceManager()


class TestSanitize:
    def test_slashes(self):
        assert sanitize_branch("notion/abcd1234/fix-login") == "notion-abcd1234-fix-login"

    def test_odd_characters(self):
        assert sanitize_branch("feat: spaces & stuff!") == "feat-spaces-stuff"

    def test_empty(self):
        assert sanitize_branch("///") == "workspace"


class TestEnsureIgnored:
    def test_creates_gitignore(self, tmp_dir):
        ensure_ignored(tmp_dir)
        assert (tmp_dir / ".gitignore").read_text() == ".worktrees/\n"

    def test_appends_once(self, tmp_dir):
        (tmp_dir / ".gitignore").write_text("node_modules")
        ensure_ignored(tmp_dir)
        ensure_ignored(tmp_dir)
        assert (tmp_dir / ".gitignore").read_text() == "node_modules\n.worktrees/\n"

    def test_existing_entry_without_slash(self, tmp_dir):
        (tmp_dir / ".gitignore").write_text(".worktrees\n")
        ensure_ignored(tmp_dir)
        assert (tmp_dir / ".gitignore").read_text() == ".worktrees\n"


class TestWorkspaceLifecycle:
    def test_create(self, manager, git_repo):
        path = manager.workspace_path(git_repo, "notion/abc/fix")
        created = asyncio.run(manager.create(git_repo, "notion/abc/fix", path, "main"))

        assert created == path
        assert path == git_repo / ".worktrees" / "notion-abc-fix"
        assert (path / "README.md").exists()
        assert git("rev-parse", "--abbrev-ref", "HEAD", cwd=path) == "notion/abc/fix"
        assert ".worktrees/" in (git_repo / ".gitignore").read_text()
        # The primary checkout is untouched.
        assert git("rev-parse", "--abbrev-ref", "HEAD", cwd=git_repo) == "main"

    def test_stale_remnant_is_replaced(self, manager, git_repo):
        path = manager.workspace_path(git_repo, "feature/x")
        asyncio.run(manager.create(git_repo, "feature/x", path, "main"))
        (path / "leftover.txt").write_text("from a crashed run")

        asyncio.run(manager.create(git_repo, "feature/x", path, "main"))
        assert path.exists()
        assert not (path / "leftover.txt").exists()

    def test_plain_directory_remnant_is_replaced(self, manager, git_repo):
        path = manager.workspace_path(git_repo, "feature/y")
        path.mkdir(parents=True)
        (path / "junk").write_text("junk")

        asyncio.run(manager.create(git_repo, "feature/y", path, "main"))
        assert (path / "README.md").exists()
        assert not (path / "junk").exists()

    def test_attaches_existing_branch(self, manager, git_repo):
        git("branch", "feature/existing", cwd=git_repo)
        path = manager.workspace_path(git_repo, "feature/existing")
        asyncio.run(manager.create(git_repo, "feature/existing", path, "main"))
        assert git("rev-parse", "--abbrev-ref", "HEAD", cwd=path) == "feature/existing"

    def test_create_fails_for_bad_base(self, manager, git_repo):
        path = manager.workspace_path(git_repo, "feature/z")
        with pytest.raises(GitError, match="Failed to create workspace"):
            asyncio.run(manager.create(git_repo, "feature/z", path, "no-such-base"))

    def test_remove_twice_never_raises(self, manager, git_repo):
        path = manager.workspace_path(git_repo, "feature/rm")
        asyncio.run(manager.create(git_repo, "feature/rm", path, "main"))

        asyncio.run(manager.remove(git_repo, path))
        asyncio.run(manager.remove(git_repo, path))

        assert not path.exists()
        assert "feature/rm" not in git("worktree", "list", "--porcelain", cwd=git_repo)

    def test_remove_missing_path(self, manager, git_repo):
        asyncio.run(manager.remove(git_repo, git_repo / ".worktrees" / "never-created"))
