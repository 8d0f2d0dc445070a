from typing import Any, Optional

from django.utils.functional import cached_property

from .....config_proxy import external_url
from .base import Base


class Local(Base):
    """A file from the repository the pipeline runs for."""

    type_name = "local"

    def __init__(self, params: dict[str, Any], context):
        location = params.get("local")
        self.location = location.lstrip("/") if isinstance(location, str) else location
        super().__init__(params, context)

    @cached_property
    def content(self) -> Optional[str]:
        if self.context.project is None:
            return None
        return self.context.project.repository.blob_data_at(self.context.sha, self.location)

    def validate_content(self) -> None:
        if self.context.project is None:
            self.errors.append(f"Local file `{self.masked_location}` does not have project!")
        elif self.content is None:
            self.errors.append(f"Local file `{self.masked_location}` does not exist!")
        elif not self.content.strip():
            self.errors.append(f"Local file `{self.masked_location}` is empty!")

    def expand_context_attrs(self) -> dict[str, Any]:
        return {
            "project": self.context.project,
            "sha": self.context.sha,
            "user": self.context.user,
            "parent_pipeline": self.context.parent_pipeline,
            "variables": self.context.variables,
        }

    def metadata(self) -> dict[str, Any]:
        data = super().metadata()
        project = self.context.project
        if project is not None:
            path = f"{project.full_path}/-/%s/{self.context.sha}/{self.location}"
            data["blob"] = self.context.mask_variables_from(external_url(path % "blob"))
            data["raw"] = self.context.mask_variables_from(external_url(path % "raw"))
        return data
