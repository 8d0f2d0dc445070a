"""
A file from another project: ``{project: group/name, file: path, ref: branch}``.
"""

import logging
from typing import Any, Optional

from django.utils.functional import cached_property

from .....config_proxy import external_url
from .....projects.abilities import Ability
from .....projects.models import Project as ProjectModel
from .....projects.repository import InvalidRefError
from .base import Base

logger = logging.getLogger(__name__)

HEAD = "HEAD"


class Project(Base):
    type_name = "file"

    def __init__(self, params: dict[str, Any], context):
        self.location = params.get("file")
        self.project_name = params.get("project")
        self.ref_name = params.get("ref") or HEAD
        super().__init__(params, context)

    def matching(self) -> bool:
        return super().matching() and bool(self.project_name)

    @cached_property
    def project(self) -> Optional[ProjectModel]:
        return ProjectModel.find_by_full_path(self.project_name)

    @cached_property
    def sha(self) -> Optional[str]:
        if self.project is None:
            return None
        try:
            commit = self.project.commit(self.ref_name)
        except InvalidRefError:
            logger.info("Invalid ref %r for include from %s", self.ref_name, self.project_name)
            return None
        return commit.sha if commit else None

    @cached_property
    def content(self) -> Optional[str]:
        if self.sha is None:
            return None
        return self.project.repository.blob_data_at(self.sha, self.location)

    def can_access_local_content(self) -> bool:
        return Ability.allowed(self.context.user, "download_code", self.project)

    def validate_content(self) -> None:
        masked_project = self.context.mask_variables_from(self.project_name)
        masked_ref = self.context.mask_variables_from(self.ref_name)
        if self.project is None or not self.can_access_local_content():
            self.errors.append(
                f"Project `{masked_project}` not found or access denied! Make sure any "
                "includes in the pipeline configuration are correctly defined."
            )
        elif self.sha is None:
            self.errors.append(
                f"Project `{masked_project}` reference `{masked_ref}` does not exist!"
            )
        elif self.content is None:
            self.errors.append(
                f"Project `{masked_project}` file `{self.masked_location}` does not exist!"
            )
        elif not self.content.strip():
            self.errors.append(
                f"Project `{masked_project}` file `{self.masked_location}` is empty!"
            )

    def expand_context_attrs(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "sha": self.sha,
            "user": self.context.user,
            "parent_pipeline": self.context.parent_pipeline,
            "variables": self.context.variables,
        }

    def metadata(self) -> dict[str, Any]:
        data = super().metadata()
        if self.project is not None:
            path = f"{self.project.full_path}/-/%s/{self.sha}/{self.location}"
            data["blob"] = self.context.mask_variables_from(external_url(path % "blob"))
            data["raw"] = self.context.mask_variables_from(external_url(path % "raw"))
        data["extra"] = {
            "project": self.context.mask_variables_from(self.project_name),
            "ref": self.context.mask_variables_from(self.ref_name),
        }
        return data
