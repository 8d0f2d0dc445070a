"""
Repository facade over the relational commit/ref/blob tables.
"""

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

BRANCH_REF_PREFIX = "refs/heads/"
TAG_REF_PREFIX = "refs/tags/"

_SHA_PATTERN = re.compile(r"\A[0-9a-f]{7,64}\Z")
_INVALID_REVISION = re.compile(r"(\.\.|[\s:~^?*\[\\]|@\{|[\x00-\x1f\x7f])")


class RepositoryError(Exception):
    """Base class for repository lookups that cannot be answered."""


class InvalidRefError(RepositoryError):
    """Raised when a revision is not a syntactically valid ref or sha."""

    def __init__(self, revision: str):
        self.revision = revision
        super().__init__(f"invalid revision: {revision!r}")


def validate_revision(revision: str) -> str:
    text = str(revision)
    if (
        not text
        or text.startswith("-")
        or text.endswith("/")
        or text.endswith(".lock")
        or _INVALID_REVISION.search(text)
    ):
        raise InvalidRefError(text)
    return text


def strip_ref_prefix(ref: Optional[str]) -> Optional[str]:
    if not ref:
        return ref
    for prefix in (BRANCH_REF_PREFIX, TAG_REF_PREFIX):
        if ref.startswith(prefix):
            return ref[len(prefix):]
    return ref


class Repository:
    """Read-only view of a project's repository."""

    def __init__(self, project):
        self.project = project

    def _refs(self):
        return self.project.refs.all()

    def find_branch(self, name: Optional[str]):
        if not name:
            return None
        return self._refs().filter(ref_type="branch", name=name).first()

    def find_tag(self, name: Optional[str]):
        if not name:
            return None
        return self._refs().filter(ref_type="tag", name=name).first()

    def branch_exists(self, name: Optional[str]) -> bool:
        return self.find_branch(strip_ref_prefix(name)) is not None

    def tag_exists(self, name: Optional[str]) -> bool:
        return self.find_tag(strip_ref_prefix(name)) is not None

    def ambiguous_ref(self, name: Optional[str]) -> bool:
        """A short ref name is ambiguous when it names both a branch and a tag."""
        if not name or name.startswith("refs/"):
            return False
        return self.branch_exists(name) and self.tag_exists(name)

    def commit(self, revision: Optional[str] = None):
        """
        Resolve a branch, tag, ``HEAD`` or (abbreviated) sha to a commit.

        Returns ``None`` when nothing matches and raises
        :class:`InvalidRefError` when the revision is malformed.
        """
        if revision is None or revision == "HEAD":
            revision = self.project.default_branch

        revision = validate_revision(revision)
        commits = self.project.commits.all()

        if revision.startswith(TAG_REF_PREFIX):
            ref = self.find_tag(strip_ref_prefix(revision))
            return commits.filter(sha=ref.sha).first() if ref else None

        if revision.startswith(BRANCH_REF_PREFIX):
            ref = self.find_branch(strip_ref_prefix(revision))
            return commits.filter(sha=ref.sha).first() if ref else None

        ref = self.find_branch(revision) or self.find_tag(revision)
        if ref is not None:
            return commits.filter(sha=ref.sha).first()

        if _SHA_PATTERN.match(revision):
            matches = list(commits.filter(sha__startswith=revision)[:2])
            if len(matches) == 1:
                return matches[0]
            if len(matches) > 1:
                logger.info(
                    "Ambiguous short sha %s in %s", revision, self.project.full_path
                )
        return None

    def root_ref_sha(self) -> Optional[str]:
        commit = self.commit(None)
        return commit.sha if commit else None

    def blob_data_at(self, sha: Optional[str], path: Optional[str]) -> Optional[str]:
        if not sha or not path:
            return None
        blob = (
            self.project.blobs.filter(sha=sha, path=str(path).lstrip("/"))
            .only("data")
            .first()
        )
        return blob.data if blob else None
