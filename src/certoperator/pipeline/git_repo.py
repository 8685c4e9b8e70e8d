"""Sync the external pipeline manifest repository to a pinned release.

Each release reference gets its own working copy under
`<GIT_REPO_PATH>/operator-pipeline/<name>-<hash>` (see `release_dir_name`),
and every working copy is guarded by an in-process lock while git works
on it. Reconciles of descriptors pinned to different releases therefore
never share a working tree, and reconciles pinned to the same release
serialize on it.
"""

from __future__ import annotations

import hashlib
import logging
import re
import shutil
import threading
from collections.abc import Iterable
from pathlib import Path

import git

from ..descriptor import PipelineDescriptor
from ..errors import GitSyncError, ReleaseNotFoundError
from ..utils.deadline import Deadline

logger = logging.getLogger(__name__)

# One lock per working copy ever synced; like the working copies on disk, never pruned.
_PATH_LOCKS: dict[Path, threading.Lock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def _path_lock(path: Path) -> threading.Lock:
    with _PATH_LOCKS_GUARD:
        return _PATH_LOCKS.setdefault(path.resolve(), threading.Lock())


def resolve_release(ref_names: Iterable[str], release: str) -> str | None:
    """Return the first reference name ending with `release`, or None.

    This is a suffix match, not an exact match: "v1.1.0" matches both
    "v1.1.0" and "origin/v1.1.0", but never "release-v1.1.0-rc1".

    Args:
        ref_names: Short reference names in repository order.
        release: Requested release suffix.

    Returns:
        Matching reference name, or None when nothing matches.
    """
    if not release:
        return None
    for name in ref_names:
        if name.endswith(release):
            return name
    return None


def candidate_refs(repo: git.Repo) -> list[git.Reference]:
    """References a release may resolve to, in match order.

    Tags and remote-tracking branches come before local branches: working
    copies are always checked out detached, so local branches are never
    advanced by a fetch and only hold the commit of the initial clone.
    """
    remote_refs = list(repo.remote("origin").refs) if "origin" in [r.name for r in repo.remotes] else []
    return [*repo.tags, *remote_refs, *repo.heads]


def validate_release(release: str) -> str:
    """Return `release` unchanged, or raise if it cannot name a git reference.

    Raises:
        ReleaseNotFoundError: If the release is empty, contains a backslash
            or NUL, or has an empty, "." or ".." path component.
    """
    if not release or not release.strip():
        raise ReleaseNotFoundError("requested release is empty")
    if "\\" in release or "\0" in release:
        raise ReleaseNotFoundError(f"requested release {release!r} is not a valid reference name")
    if any(part in ("", ".", "..") for part in release.split("/")):
        raise ReleaseNotFoundError(f"requested release {release!r} is not a valid reference name")
    return release


def release_dir_name(release: str) -> str:
    """Filesystem-safe directory name for a release reference.

    The readable prefix alone can collide (`feature/x` and `feature_x`), so
    a short hash of the raw release keeps the mapping one-to-one.
    """
    prefix = re.sub(r"[^A-Za-z0-9._-]", "_", validate_release(release)).strip(".")
    digest = hashlib.sha256(release.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}" if prefix else digest


class GitRepoSync:
    """Clone-or-update the manifest repository and check out a release."""

    name = "git-repo"

    def __init__(self, repo_root: Path, repo_url: str) -> None:
        self.repo_root = Path(repo_root)
        self.repo_url = repo_url

    def working_copy(self, release: str) -> Path:
        """Working-copy directory for `release`, always a direct child of `repo_root`.

        Raises:
            ReleaseNotFoundError: If `release` is not a usable reference name.
        """
        return self.repo_root / release_dir_name(release)

    def _discard(self, path: Path) -> None:
        if path.resolve().parent != self.repo_root.resolve():
            raise GitSyncError(f"refusing to remove {path}: not a working copy under {self.repo_root}")
        shutil.rmtree(path, ignore_errors=True)

    def reconcile(self, descriptor: PipelineDescriptor, deadline: Deadline) -> bool:
        release = descriptor.spec.release
        commit = self.sync(release, deadline=deadline)
        logger.info("Hash of operator-pipelines %s: %s", release, commit)
        return False

    def sync(self, release: str, *, deadline: Deadline | None = None) -> str:
        """Ensure the working copy for `release` is checked out at its commit.

        Args:
            release: Branch or tag suffix to resolve.
            deadline: Pass deadline; bounds the clone and the fetch.

        Returns:
            Hex SHA of the checked-out commit.

        Raises:
            ReleaseNotFoundError: If `release` is not a valid reference name
                or no reference ends with it.
            GitSyncError: If clone, fetch or checkout fails.

        Logs:
            - INFO: on fresh clones and on checkouts that move HEAD.
            - DEBUG: when HEAD already points at the resolved commit.
        """
        deadline = deadline or Deadline.none()
        path = self.working_copy(release)

        with _path_lock(path):
            try:
                repo = self._clone_or_open(path, deadline)
                deadline.check("fetching operator-pipelines")
                repo.remote("origin").fetch(
                    tags=True, force=True, kill_after_timeout=deadline.timeout()
                )

                refs = candidate_refs(repo)
                match = resolve_release((ref.name for ref in refs), release)
                if match is None:
                    raise ReleaseNotFoundError(f"requested release {release!r} is not in repository")
                target = next(ref for ref in refs if ref.name == match).commit.hexsha

                if repo.head.is_valid() and repo.head.commit.hexsha == target:
                    logger.debug("Working copy %s already at %s", path, target)
                    return target

                deadline.check("checking out operator-pipelines")
                repo.git.checkout("--force", "--detach", target)
                logger.info("Checked out %s (%s) in %s", match, target, path)
                return target
            except (git.GitError, ValueError) as exc:
                raise GitSyncError(f"could not sync operator-pipelines at {release!r}: {exc}") from exc

    def _clone_or_open(self, path: Path, deadline: Deadline) -> git.Repo:
        if path.exists():
            try:
                return git.Repo(path)
            except git.InvalidGitRepositoryError:
                logger.warning("Discarding invalid working copy at %s", path)
                self._discard(path)

        deadline.check("cloning operator-pipelines")
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Cloning %s into %s", self.repo_url, path)
        try:
            git.Git().clone(self.repo_url, str(path), kill_after_timeout=deadline.timeout())
        except git.GitError:
            self._discard(path)
            raise
        return git.Repo(path)

    def head_hash(self, release: str) -> str:
        """Return the commit currently checked out for `release`.

        Raises:
            FileNotFoundError: If there is no working copy for the release.
            ReleaseNotFoundError: If the release does not resolve in the working copy.
            GitSyncError: If the working copy has no valid HEAD.
        """
        path = self.working_copy(release)
        try:
            repo = git.Repo(path)
        except (git.NoSuchPathError, git.InvalidGitRepositoryError) as exc:
            raise FileNotFoundError(f"no working copy at {path}") from exc
        if resolve_release((ref.name for ref in candidate_refs(repo)), release) is None:
            raise ReleaseNotFoundError(f"requested release {release!r} is not in the working copy")
        try:
            return repo.head.commit.hexsha
        except ValueError as exc:
            raise GitSyncError(f"working copy at {path} has no valid HEAD") from exc


def resolve_local_release(path: Path, release: str) -> tuple[str, str]:
    """Resolve `release` against the references of an existing local clone.

    Does not fetch.

    Returns:
        (reference name, commit hex SHA).

    Raises:
        GitSyncError: If `path` is not a git repository.
        ReleaseNotFoundError: If no reference ends with `release`.
    """
    try:
        repo = git.Repo(path)
    except (git.NoSuchPathError, git.InvalidGitRepositoryError) as exc:
        raise GitSyncError(f"{path} is not a git repository") from exc
    refs = candidate_refs(repo)
    match = resolve_release((ref.name for ref in refs), release)
    if match is None:
        raise ReleaseNotFoundError(f"requested release {release!r} is not in repository")
    return match, next(ref for ref in refs if ref.name == match).commit.hexsha
