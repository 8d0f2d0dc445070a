"""
Configuration steps: pick the CI configuration, then process it.
"""

import logging
from typing import Optional

from .....config_proxy import get_setting
from .....error_tracking import track_exception
from .....logging_context import correlation_id
from ....config.external.file.remote import is_url
from ....config.loader import dump_yaml
from ....models import ConfigSource, FailureReason
from ....yaml_processor import YamlProcessor
from ..base import Step
from ..context import ChainContext

logger = logging.getLogger(__name__)


class ConfigContentStep(Step):
    """
    Choose where the configuration comes from.

    In order: content passed with the request, a remote URL or another
    project's file (``path@group/project[:ref]``) named by the project's
    CI config path, then the file at that path in the repository. Sources
    other than the request content are turned into an ``include:`` so the
    include machinery fetches and validates them.
    """

    order = 50
    name = "config_content"

    def execute(self, ctx: ChainContext) -> ChainContext:
        source, content = self._find_content(ctx)
        if content is None:
            ctx.error("Missing CI config file")
            return ctx

        ctx.pipeline.config_source = source
        ctx.config_content = content
        return ctx

    def _config_path(self, ctx: ChainContext) -> str:
        return ctx.project.ci_config_path or get_setting(
            "pipeline_settings.ci_config_path", ".gitlab-ci.yml"
        )

    def _find_content(self, ctx: ChainContext) -> tuple[Optional[str], Optional[str]]:
        if ctx.command.content:
            return ConfigSource.PARAMETER_SOURCE, ctx.command.content

        path = self._config_path(ctx)
        if is_url(path):
            return ConfigSource.REMOTE_SOURCE, dump_yaml({"include": [{"remote": path}]})

        if "@" in path:
            file_path, _, project_ref = path.partition("@")
            project_path, _, ref = project_ref.partition(":")
            include = {"project": project_path, "file": file_path}
            if ref:
                include["ref"] = ref
            return ConfigSource.EXTERNAL_PROJECT_SOURCE, dump_yaml({"include": [include]})

        if ctx.project.repository.blob_data_at(ctx.pipeline.sha, path) is not None:
            return ConfigSource.REPOSITORY_SOURCE, dump_yaml({"include": [{"local": path}]})

        return None, None


class ConfigProcessStep(Step):
    order = 60
    name = "config_process"

    def execute(self, ctx: ChainContext) -> ChainContext:
        variables = self._variables(ctx)
        ctx.extra["expression_variables"] = {item["key"]: item["value"] for item in variables}
        try:
            result = YamlProcessor(
                ctx.config_content,
                project=ctx.project,
                sha=ctx.pipeline.sha,
                user=ctx.current_user,
                parent_pipeline=ctx.command.parent_pipeline,
                variables=variables,
            ).execute()
        except Exception as exc:
            track_exception(
                exc,
                project_id=getattr(ctx.project, "id", None),
                sha=ctx.pipeline.sha,
            )
            ctx.error(
                f"Undefined error ({correlation_id()})",
                config_error=True,
                drop_reason=FailureReason.CONFIG_ERROR,
            )
            return ctx

        ctx.yaml_result = result
        for warning in result.warnings:
            ctx.add_warning(warning)

        if not result.valid:
            ctx.error(result.errors[0], config_error=True, drop_reason=FailureReason.CONFIG_ERROR)
        return ctx

    def _variables(self, ctx: ChainContext) -> list[dict]:
        project = ctx.project
        predefined = [
            {"key": "CI_PROJECT_PATH", "value": project.full_path},
            {"key": "CI_DEFAULT_BRANCH", "value": project.default_branch},
            {"key": "CI_COMMIT_REF_NAME", "value": ctx.command.ref or ""},
            {"key": "CI_COMMIT_SHA", "value": ctx.pipeline.sha or ""},
            {"key": "CI_PIPELINE_SOURCE", "value": ctx.command.source or ""},
        ]
        return predefined + list(ctx.extra.get("variables", []))
