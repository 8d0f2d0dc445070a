"""
Integration tests for CreatePipelineService and the creation chain.
"""

from datetime import timedelta
from unittest import mock

import pytest
from django.utils import timezone

from rail_ci.ci.models import (
    ConfigSource,
    FailureReason,
    MessageSeverity,
    Pipeline,
    PipelineSource,
    PipelineStatus,
    SourcePipeline,
)
from rail_ci.ci.services import CreatePipelineService
from rail_ci.projects.models import AccessLevel
from tests.factories import SIMPLE_CONFIG, add_blob, add_commit, add_member, make_project, make_user

pytestmark = [pytest.mark.integration, pytest.mark.django_db]

TEMPLATE = "compile:\n  stage: build\n  script: make\n"


def execute(project, user, ref="main", source=PipelineSource.PUSH, params=None, **kwargs):
    service = CreatePipelineService(project, user, {"ref": ref, **(params or {})})
    response = service.execute(source, **kwargs)
    return service, response


def statuses(pipeline):
    return {build.name: build.status for build in pipeline.builds.all()}


class TestSuccessfulCreation:
    def test_creates_pipeline_from_repository_config(self, project, user, head_commit):
        _, response = execute(project, user)
        pipeline = response.payload

        assert response.is_success
        assert pipeline.pk is not None
        assert pipeline.iid == 1
        assert pipeline.ref == "main"
        assert pipeline.sha == head_commit.sha
        assert pipeline.user == user
        assert pipeline.source == PipelineSource.PUSH
        assert pipeline.config_source == ConfigSource.REPOSITORY_SOURCE
        assert not pipeline.tag
        assert pipeline.status == PipelineStatus.PENDING
        assert [stage.name for stage in pipeline.ordered_stages()] == ["build", "test"]
        assert [stage.status for stage in pipeline.ordered_stages()] == [
            PipelineStatus.PENDING,
            PipelineStatus.CREATED,
        ]
        assert statuses(pipeline) == {"compile": PipelineStatus.PENDING, "rspec": PipelineStatus.CREATED}

    def test_iid_is_allocated_per_project(self, project, user, head_commit):
        first = execute(project, user)[1].payload
        second = execute(project, user)[1].payload

        assert (first.iid, second.iid) == (1, 2)
        assert not first.is_latest()
        assert second.is_latest()

    def test_tag_pipeline(self, project, user, head_commit):
        release = add_commit(project, seed="release", tag="v1.0")
        add_blob(project, release.sha, ".gitlab-ci.yml", SIMPLE_CONFIG)

        pipeline = execute(project, user, ref="refs/tags/v1.0")[1].payload

        assert pipeline.tag
        assert pipeline.ref == "v1.0"

    def test_content_parameter(self, project, user, head_commit):
        _, response = execute(project, user, content="lint:\n  stage: test\n  script: rubocop\n")
        pipeline = response.payload

        assert response.is_success
        assert pipeline.config_source == ConfigSource.PARAMETER_SOURCE
        assert list(pipeline.builds.values_list("name", flat=True)) == ["lint"]

    def test_request_variables_are_saved_once_per_key(self, project, user, head_commit):
        params = {
            "variables_attributes": [
                {"key": "DEPLOY", "value": "1"},
                {"key": "DEPLOY", "value": "2"},
                {"key": "", "value": "ignored"},
            ]
        }

        pipeline = execute(project, user, params=params)[1].payload

        assert list(pipeline.variables.values_list("key", "value")) == [("DEPLOY", "1")]

    def test_variable_expressions_select_jobs(self, project, user, head_commit):
        content = """
rspec:
  script: rspec
  only:
    variables:
      - $RUN_TESTS
deploy:
  stage: deploy
  script: deploy
  only:
    refs: [main]
    variables:
      - $CI_COMMIT_REF_NAME == "main" && $DEPLOY == "true"
lint:
  script: rubocop
  except:
    variables:
      - $CI_PIPELINE_SOURCE == "push"
"""
        params = {"variables_attributes": [{"key": "RUN_TESTS", "value": "1"}, {"key": "DEPLOY", "value": "true"}]}

        with_variables = execute(project, user, content=content, params=params)[1].payload
        without_variables = execute(project, user, content=content)[1]

        assert sorted(statuses(with_variables)) == ["deploy", "rspec"]
        assert without_variables.errors == ["No stages / jobs for this pipeline."]

    def test_parallel_jobs(self, project, user, head_commit):
        content = "compile:\n  stage: build\n  script: make\nrspec:\n  script: rspec\n  parallel: 2\n  needs: [compile]\n"

        pipeline = execute(project, user, content=content)[1].payload

        rspec_builds = pipeline.builds.filter(stage__name="test").order_by("id")
        assert [build.name for build in rspec_builds] == ["rspec 1/2", "rspec 2/2"]
        assert {build.group_name for build in rspec_builds} == {"rspec"}
        assert [build.options["instance"] for build in rspec_builds] == [1, 2]
        assert rspec_builds[0].needs == [{"name": "compile", "optional": False, "artifacts": True}]

    def test_manual_and_delayed_jobs(self, project, user, head_commit):
        content = """
stages: [build, test, deploy]
lint:
  stage: build
  script: rubocop
  when: manual
notify:
  stage: build
  script: notify
  when: on_failure
rspec:
  stage: test
  script: rspec
  when: delayed
  start_in: 1 hour
deploy:
  stage: deploy
  script: deploy
"""
        before = timezone.now()

        pipeline = execute(project, user, content=content)[1].payload

        assert statuses(pipeline) == {
            "lint": PipelineStatus.MANUAL,
            "notify": PipelineStatus.SKIPPED,
            "rspec": PipelineStatus.SCHEDULED,
            "deploy": PipelineStatus.CREATED,
        }
        assert [stage.status for stage in pipeline.ordered_stages()] == [
            PipelineStatus.MANUAL,
            PipelineStatus.SCHEDULED,
            PipelineStatus.CREATED,
        ]
        assert pipeline.status == PipelineStatus.SCHEDULED
        assert [build.name for build in pipeline.manual_actions()] == ["lint"]
        [rspec] = pipeline.scheduled_actions()
        assert rspec.scheduled_at >= before + timedelta(hours=1)

    def test_warnings_are_stored_on_the_pipeline(self, project, user, head_commit):
        service, response = execute(project, user, content="rspec:\n  type: test\n  script: rspec\n")
        pipeline = response.payload

        assert response.is_success
        assert service.context.warnings == [
            "jobs:rspec `type` is deprecated in 9.0 and will be removed in 15.0."
        ]
        assert list(
            pipeline.messages.filter(severity=MessageSeverity.WARNING).values_list("content", flat=True)
        ) == service.context.warnings

    def test_step_durations_are_recorded(self, project, user, head_commit):
        service, _ = execute(project, user)

        assert {"build", "config_process", "create", "process"} <= set(service.context.extra["step_durations"])


class TestSkipCi:
    @pytest.fixture
    def skip_commit(self, project):
        commit = add_commit(project, seed="skip", message="Update docs [ci skip]", branch="main")
        add_blob(project, commit.sha, ".gitlab-ci.yml", SIMPLE_CONFIG)
        return commit

    def test_skipped_pipeline_is_persisted(self, project, user, skip_commit):
        _, response = execute(project, user)
        pipeline = response.payload

        assert response.is_success
        assert pipeline.pk is not None
        assert pipeline.status == PipelineStatus.SKIPPED
        assert pipeline.builds.count() == 0

    def test_skip_ci_is_not_persisted_when_errors_are_not_saved(self, project, user, skip_commit):
        _, response = execute(project, user, save_on_errors=False)

        assert response.payload.status == PipelineStatus.SKIPPED
        assert response.payload.pk is None

    def test_ignore_skip_ci(self, project, user, skip_commit):
        pipeline = execute(project, user, ignore_skip_ci=True)[1].payload

        assert pipeline.status == PipelineStatus.PENDING


class TestFailures:
    def test_missing_config(self, project, user):
        add_commit(project, branch="main")

        _, response = execute(project, user)

        assert response.is_error
        assert response.errors == ["Missing CI config file"]
        assert response.payload.pk is None
        assert Pipeline.objects.count() == 0

    def test_config_error_drops_pipeline(self, project, user, head_commit):
        _, response = execute(project, user, content="rspec:\n  script: rspec\n  when: sometimes\n")
        pipeline = response.payload

        assert response.is_error
        assert response.message.startswith("jobs:rspec when config should be one of")
        assert pipeline.pk is not None
        assert pipeline.status == PipelineStatus.FAILED
        assert pipeline.failure_reason == FailureReason.CONFIG_ERROR
        assert pipeline.yaml_errors == response.message
        assert pipeline.error_messages() == [response.message]
        assert pipeline.iid == 1

    def test_config_error_without_saving(self, project, user, head_commit):
        _, response = execute(
            project, user, content="rspec:\n  script: rspec\n  when: sometimes\n", save_on_errors=False
        )

        assert response.is_error
        assert response.payload.pk is None
        assert Pipeline.objects.count() == 0

    def test_unexpected_processing_error_is_tracked(self, project, user, head_commit):
        with mock.patch(
            "rail_ci.ci.pipeline.chain.steps.config.YamlProcessor.execute",
            side_effect=RuntimeError("boom"),
        ), mock.patch("rail_ci.ci.pipeline.chain.steps.config.track_exception") as tracked:
            _, response = execute(project, user)

        assert response.message.startswith("Undefined error (")
        assert response.payload.failure_reason == FailureReason.CONFIG_ERROR
        tracked.assert_called_once()

    def test_builds_disabled(self, project, user, head_commit):
        project.builds_enabled = False
        project.save()

        _, response = execute(project, user)

        assert response.errors == ["Pipelines are disabled!"]

    def test_insufficient_permissions(self, project, head_commit):
        reporter = make_user("reporter")
        add_member(project, reporter, AccessLevel.REPORTER)

        _, response = execute(project, reporter)

        assert response.errors == ["Insufficient permissions to create a new pipeline"]

    def test_protected_ref(self, project, user, maintainer, head_commit):
        stable = add_commit(project, seed="stable", branch="stable", protected=True)
        add_blob(project, stable.sha, ".gitlab-ci.yml", SIMPLE_CONFIG)

        _, response = execute(project, user, ref="stable")

        assert response.errors == [
            "You do not have sufficient permission to run a pipeline on 'stable'. "
            "Please select a different branch or contact your administrator for assistance."
        ]
        pipeline = execute(project, maintainer, ref="stable")[1].payload
        assert pipeline.protected

    def test_reference_not_found(self, project, user, head_commit):
        _, response = execute(project, user, ref="missing")

        assert response.errors == ["Reference not found"]
        assert response.payload.pk is None

    def test_commit_not_found(self, project, user, head_commit):
        _, response = execute(project, user, params={"checkout_sha": "f" * 40})

        assert response.errors == ["Commit not found"]

    def test_ambiguous_ref(self, project, user, head_commit):
        add_commit(project, seed="tagged", tag="main")

        _, response = execute(project, user)

        assert response.errors == ["Ref is ambiguous"]

    def test_needs_filtered_job(self, project, user, head_commit):
        content = """
compile:
  stage: build
  script: make
  only: [tags]
rspec:
  stage: test
  script: rspec
  needs: [compile]
"""
        _, response = execute(project, user, content=content)

        assert response.errors == [
            "'rspec' job needs 'compile' job, but 'compile' is not in any previous stage"
        ]
        assert response.payload.failure_reason == FailureReason.CONFIG_ERROR

    def test_no_jobs_for_ref(self, project, user, head_commit):
        _, response = execute(project, user, content="rspec:\n  script: rspec\n  only: [tags]\n")

        assert response.errors == ["No stages / jobs for this pipeline."]
        assert response.payload.pk is not None
        assert response.payload.failure_reason == FailureReason.FILTERED_BY_RULES

    def test_except_source(self, project, user, head_commit):
        content = "rspec:\n  script: rspec\n  except: [schedules]\n"

        _, response = execute(project, user, source=PipelineSource.SCHEDULE, content=content)

        assert response.errors == ["No stages / jobs for this pipeline."]


class TestDryRun:
    def test_nothing_is_persisted(self, project, user, head_commit):
        service, response = execute(project, user, dry_run=True)

        assert response.is_success
        assert response.payload.pk is None
        assert Pipeline.objects.count() == 0
        assert [seed["name"] for seed in service.context.stage_seeds] == ["build", "test"]

    def test_errors_are_reported_without_dropping(self, project, user, head_commit):
        _, response = execute(project, user, dry_run=True, content="rspec:\n  script: rspec\n  only: [tags]\n")

        assert response.errors == ["No stages / jobs for this pipeline."]
        assert Pipeline.objects.count() == 0

    def test_seeds_block_runs_before_save(self, project, user, head_commit):
        seen = []

        execute(project, user, seeds_block=lambda pipeline: seen.append(pipeline.iid))

        assert seen == [1]


class TestIncludes:
    @pytest.fixture
    def templates(self, db):
        templates = make_project("group/templates")
        commit = add_commit(templates, seed="templates", branch="main")
        add_blob(templates, commit.sha, "templates/build.yml", TEMPLATE)
        return templates

    def test_local_include(self, project, user, head_commit):
        add_blob(project, head_commit.sha, "ci/build.yml", TEMPLATE)

        pipeline = execute(
            project, user, content="include:\n  - local: /ci/build.yml\nrspec:\n  script: rspec\n"
        )[1].payload

        assert sorted(statuses(pipeline)) == ["compile", "rspec"]

    def test_project_include(self, project, user, templates, head_commit):
        add_member(templates, user, AccessLevel.REPORTER)
        content = "include:\n  - project: group/templates\n    file: templates/build.yml\nrspec:\n  script: rspec\n"

        _, response = execute(project, user, content=content)

        assert response.is_success
        assert sorted(statuses(response.payload)) == ["compile", "rspec"]

    def test_project_include_access_denied(self, project, user, templates, head_commit):
        content = "include:\n  - project: group/templates\n    file: templates/build.yml\nrspec:\n  script: rspec\n"

        _, response = execute(project, user, content=content)

        assert response.errors == [
            "Project `group/templates` not found or access denied! Make sure any "
            "includes in the pipeline configuration are correctly defined."
        ]

    @pytest.mark.parametrize(
        "include, message",
        [
            (
                "file: templates/build.yml\n    ref: missing",
                "Project `group/templates` reference `missing` does not exist!",
            ),
            (
                "file: templates/missing.yml",
                "Project `group/templates` file `templates/missing.yml` does not exist!",
            ),
            (
                "file: templates/empty.yml",
                "Project `group/templates` file `templates/empty.yml` is empty!",
            ),
        ],
    )
    def test_project_include_errors(self, project, user, templates, head_commit, include, message):
        add_member(templates, user, AccessLevel.REPORTER)
        add_blob(templates, templates.commit().sha, "templates/empty.yml", "  \n")
        content = f"include:\n  - project: group/templates\n    {include}\nrspec:\n  script: rspec\n"

        _, response = execute(project, user, content=content)

        assert response.errors == [message]
        assert response.payload.failure_reason == FailureReason.CONFIG_ERROR

    def test_external_project_config_path(self, project, user, templates, head_commit):
        add_member(templates, user, AccessLevel.REPORTER)
        project.ci_config_path = "templates/build.yml@group/templates:main"
        project.save()

        pipeline = execute(project, user)[1].payload

        assert pipeline.config_source == ConfigSource.EXTERNAL_PROJECT_SOURCE
        assert list(pipeline.builds.values_list("name", flat=True)) == ["compile"]

    def test_remote_config_path(self, project, user, head_commit):
        project.ci_config_path = "https://example.com/ci.yml"
        project.save()

        with mock.patch(
            "rail_ci.ci.config.external.file.remote.requests.get",
            return_value=mock.Mock(status_code=200, text=SIMPLE_CONFIG),
        ) as get:
            pipeline = execute(project, user)[1].payload

        get.assert_called_once_with("https://example.com/ci.yml", timeout=30.0)
        assert pipeline.config_source == ConfigSource.REMOTE_SOURCE
        assert sorted(statuses(pipeline)) == ["compile", "rspec"]


class TestChildPipelines:
    def test_child_pipeline_is_linked_to_parent(self, project, user, head_commit):
        parent = execute(project, user)[1].payload
        bridge = parent.builds.get(name="compile")

        _, response = execute(
            project,
            user,
            source=PipelineSource.PARENT_PIPELINE,
            content="child:\n  script: echo child\n",
            parent_pipeline=parent,
            bridge=bridge,
        )
        child = response.payload

        assert response.is_success
        link = SourcePipeline.objects.get(pipeline=child)
        assert link.source_job == bridge
        assert child.triggered_by_pipeline == parent
        assert list(parent.triggered_pipelines()) == [child]

    def test_child_pipeline_skips_ref_protection(self, project, user, head_commit):
        add_commit(project, seed="stable", branch="stable", protected=True)
        add_blob(project, project.commit("stable").sha, ".gitlab-ci.yml", SIMPLE_CONFIG)
        parent = execute(project, user)[1].payload

        _, response = execute(
            project,
            user,
            ref="stable",
            source=PipelineSource.PARENT_PIPELINE,
            content="child:\n  script: echo child\n",
            parent_pipeline=parent,
        )

        assert response.is_success
