"""
Inputs of a pipeline creation request.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from django.utils.functional import cached_property

from ....projects.repository import BRANCH_REF_PREFIX, TAG_REF_PREFIX, strip_ref_prefix


@dataclass
class Command:
    """
    Everything the chain needs to know about the pipeline being created.

    Attributes mirror the request; the properties below derive repository
    facts once per command (ref kind, sha, protection).
    """

    source: Optional[str] = None
    project: Any = None
    current_user: Any = None
    origin_ref: Optional[str] = None
    checkout_sha: Optional[str] = None
    after_sha: Optional[str] = None
    before_sha: Optional[str] = None
    schedule: Any = None
    parent_pipeline: Any = None
    bridge: Any = None
    content: Optional[str] = None
    variables_attributes: list[dict[str, Any]] = field(default_factory=list)
    ignore_skip_ci: bool = False
    save_incompleted: bool = True
    dry_run: bool = False
    seeds_block: Optional[Callable[[Any], None]] = None

    @cached_property
    def ref(self) -> Optional[str]:
        return strip_ref_prefix(self.origin_ref)

    @cached_property
    def branch_exists(self) -> bool:
        if not self.ref or (self.origin_ref or "").startswith(TAG_REF_PREFIX):
            return False
        return self.project.repository.branch_exists(self.ref)

    @cached_property
    def tag_exists(self) -> bool:
        if not self.ref or (self.origin_ref or "").startswith(BRANCH_REF_PREFIX):
            return False
        return self.project.repository.tag_exists(self.ref)

    @cached_property
    def ambiguous_ref(self) -> bool:
        return self.project.repository.ambiguous_ref(self.origin_ref)

    @cached_property
    def sha(self) -> Optional[str]:
        """The commit the pipeline runs for: checkout sha, after sha, or the ref's head."""
        explicit = self.checkout_sha or self.after_sha
        if explicit:
            return explicit
        commit = self.project.commit(self.origin_ref)
        return commit.sha if commit else None

    @cached_property
    def protected_ref(self) -> bool:
        if not self.ref:
            return False
        return self.project.refs.filter(name=self.ref, protected=True).exists()

    @property
    def creates_child_pipeline(self) -> bool:
        return self.parent_pipeline is not None
