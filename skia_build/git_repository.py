"""Read-only inspection of the Skia source checkout using pygit2."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pygit2


@dataclass(frozen=True)
class RevisionInfo:
    """HEAD of a checkout: commit id, branch (``None`` when detached), local edits."""

    commit: str
    branch: Optional[str]
    dirty: bool

    @property
    def short(self) -> str:
        return self.commit[:7]


class GitRepository:
    """
    Reads HEAD of the checkout at ``path`` itself.

    Parent directories are not searched, so a Skia tree vendored inside
    another repository reports no revision rather than the outer one.
    Fetching and syncing the checkout belong to the tooling that prepares it.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).resolve()

    def _open(self) -> Optional[pygit2.Repository]:
        if not (self.path / ".git").exists():
            return None
        try:
            return pygit2.Repository(str(self.path))
        except pygit2.GitError:
            return None

    @property
    def is_valid(self) -> bool:
        return self._open() is not None

    @staticmethod
    def _branch(repo: pygit2.Repository) -> Optional[str]:
        return None if repo.head_is_detached else repo.head.shorthand

    @staticmethod
    def _has_local_changes(repo: pygit2.Repository) -> bool:
        # untracked files such as build outputs do not count
        return bool(repo.status(untracked_files="no"))

    def revision(self) -> Optional[RevisionInfo]:
        """HEAD information, or ``None`` for a plain directory or an unborn HEAD."""
        repo = self._open()
        if repo is None or repo.head_is_unborn:
            return None
        try:
            return RevisionInfo(
                commit=str(repo.head.target),
                branch=self._branch(repo),
                dirty=self._has_local_changes(repo),
            )
        except pygit2.GitError:
            return None


__all__ = ["GitRepository", "RevisionInfo"]
