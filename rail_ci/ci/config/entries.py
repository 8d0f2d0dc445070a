"""
Validation and normalization of the root configuration and its jobs.

``RootEntry(config).compose()`` walks the (already expanded) configuration,
accumulating error and warning strings instead of raising, and leaves the
normalized stages, variables and job attributes on the entry.
"""

import logging
from typing import Any, Optional

from ...config_proxy import get_setting
from .expression import Expression, ExpressionError, compile_pattern
from .utils import flatten_strings, parse_duration, string_or_nested_strings

logger = logging.getLogger(__name__)

RESERVED_ROOT_KEYS = (
    "image",
    "services",
    "stages",
    "types",
    "before_script",
    "after_script",
    "variables",
    "cache",
    "include",
    "default",
    "workflow",
)
DEFAULT_INHERITABLE_KEYS = ("before_script", "after_script", "image", "tags", "interruptible")
DEFAULT_ALLOWED_KEYS = DEFAULT_INHERITABLE_KEYS + (
    "services",
    "cache",
    "retry",
    "timeout",
    "artifacts",
)
JOB_ALLOWED_KEYS = (
    "script",
    "before_script",
    "after_script",
    "stage",
    "type",
    "when",
    "start_in",
    "allow_failure",
    "needs",
    "only",
    "except",
    "extends",
    "variables",
    "image",
    "services",
    "tags",
    "environment",
    "trigger",
    "interruptible",
    "cache",
    "artifacts",
    "retry",
    "timeout",
    "parallel",
    "coverage",
    "dependencies",
    "resource_group",
)
WHEN_VALUES = ("on_success", "on_failure", "always", "manual", "delayed", "never")
ONLY_KEYWORDS = (
    "branches",
    "tags",
    "schedules",
    "pushes",
    "web",
    "api",
    "triggers",
    "pipelines",
    "parent_pipeline",
    "merge_requests",
    "external",
    "chat",
)
DEFAULT_ONLY = {"refs": ["branches", "tags"]}

PRE_STAGE = ".pre"
POST_STAGE = ".post"
DEFAULT_STAGE = "test"


def _variables_valid(value: Any) -> bool:
    return isinstance(value, dict) and all(
        isinstance(item, (str, int, float)) and not isinstance(item, bool)
        for item in value.values()
    )


def _stringify_variables(value: Optional[dict[str, Any]]) -> dict[str, str]:
    return {str(key): str(item) for key, item in (value or {}).items()}


class JobEntry:
    """One job definition and the attributes it normalizes to."""

    def __init__(self, name: str, config: Any, root: "RootEntry"):
        self.name = name
        self.config = config
        self.root = root
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.attributes: dict[str, Any] = {}

    def _error(self, message: str) -> None:
        self.errors.append(f"jobs:{self.name} {message}")

    def compose(self) -> None:
        if not isinstance(self.config, dict):
            self.errors.append(f"jobs:{self.name} config should be a hash")
            return

        unknown = [key for key in self.config if key not in JOB_ALLOWED_KEYS]
        if unknown:
            self._error(f"config contains unknown keys: {', '.join(unknown)}")

        config = self._with_defaults(self.config)
        bridge = "trigger" in config
        if not bridge and "script" not in config:
            self._error("config should implement a script: or a trigger: keyword")

        for key in ("script", "before_script", "after_script"):
            if key in config and not string_or_nested_strings(config[key]):
                self._error(
                    f"{key.replace('_', ' ')} config should be a string or a nested "
                    "array of strings up to 10 levels deep"
                )

        if "type" in config:
            self.warnings.append(f"jobs:{self.name} `type` is deprecated in 9.0 and will be removed in 15.0.")
        stage = config.get("stage", config.get("type", DEFAULT_STAGE))
        if not isinstance(stage, str):
            self._error("stage config should be a string")
            stage = DEFAULT_STAGE

        when = config.get("when", "on_success")
        if when not in WHEN_VALUES:
            self._error(f"when config should be one of: {', '.join(WHEN_VALUES)}")

        start_in = self._validate_start_in(config, when)

        allow_failure = config.get("allow_failure", when == "manual")
        if not isinstance(allow_failure, bool):
            self._error("allow failure should be a boolean value")
            allow_failure = False

        needs = self._validate_needs(config.get("needs"))
        only = self._validate_refs_policy("only", config.get("only"))
        except_ = self._validate_refs_policy("except", config.get("except"))
        if only is None and except_ is None:
            only = dict(DEFAULT_ONLY)

        variables = config.get("variables")
        if variables is not None and not _variables_valid(variables):
            self.errors.append(
                f"jobs:{self.name}:variables config should be a hash of key value pairs"
            )
            variables = None

        tags = config.get("tags")
        if tags is not None and (
            not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags)
        ):
            self._error("tags should be an array of strings")
            tags = None

        parallel = self._validate_parallel(config.get("parallel"))

        dependencies = config.get("dependencies")
        if dependencies is not None and (
            not isinstance(dependencies, list) or not all(isinstance(item, str) for item in dependencies)
        ):
            self._error("dependencies should be an array of strings")
            dependencies = None

        coverage = config.get("coverage")
        if coverage is not None and (not isinstance(coverage, str) or compile_pattern(coverage) is None):
            self._error("coverage config must be a regular expression")
            coverage = None

        resource_group = config.get("resource_group")
        if resource_group is not None and not isinstance(resource_group, str):
            self._error("resource group should be a string")
            resource_group = None

        options = {
            "script": flatten_strings(config.get("script")),
            "before_script": flatten_strings(config.get("before_script")),
            "after_script": flatten_strings(config.get("after_script")),
        }
        for key in ("image", "services", "environment", "trigger", "artifacts", "cache", "retry", "timeout"):
            if config.get(key) is not None:
                options[key] = config[key]
        if start_in is not None:
            options["start_in"] = config.get("start_in")
        if dependencies is not None:
            options["dependencies"] = list(dependencies)
        if coverage is not None:
            options["coverage"] = coverage
        if resource_group is not None:
            options["resource_group"] = resource_group

        merged_variables = dict(self.root.variables)
        merged_variables.update(_stringify_variables(variables))

        self.attributes = {
            "name": self.name,
            "stage": stage,
            "when": when,
            "allow_failure": allow_failure,
            "start_in_seconds": start_in,
            "needs": needs,
            "scheduling_type": "dag" if needs else "stage",
            "only": only,
            "except": except_,
            "tag_list": list(tags or []),
            "interruptible": bool(config.get("interruptible", False)),
            "yaml_variables": [
                {"key": key, "value": value, "public": True}
                for key, value in _stringify_variables(variables).items()
            ],
            "variables": merged_variables,
            "bridge": bridge,
            "parallel": parallel,
            "options": options,
        }

    def _validate_parallel(self, value: Any) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            self._error("parallel should be an integer")
            return None
        if value < 2:
            self._error("parallel config must be greater than or equal to 2")
            return None
        if value > 200:
            self._error("parallel config must be less than or equal to 200")
            return None
        return value

    def _with_defaults(self, config: dict[str, Any]) -> dict[str, Any]:
        inherited = {
            key: value
            for key, value in self.root.defaults.items()
            if key in DEFAULT_INHERITABLE_KEYS and key not in config
        }
        return {**inherited, **config}

    def _validate_start_in(self, config: dict[str, Any], when: Any) -> Optional[int]:
        value = config.get("start_in")
        if when != "delayed":
            if value is not None:
                self._error("start in should be blank")
            return None
        if value is None:
            self._error("start in should be a duration")
            return None

        seconds = parse_duration(value)
        if seconds is None:
            self._error("start in should be a duration")
            return None
        limit = int(get_setting("pipeline_settings.max_start_in_seconds", 604800))
        if seconds > limit:
            self._error("start in should not exceed the limit")
            return None
        return seconds

    def _validate_needs(self, value: Any) -> list[dict[str, Any]]:
        if value is None:
            return []
        if not isinstance(value, list):
            self.errors.append(f"jobs:{self.name}:needs config should be an array of strings or hashes")
            return []

        needs = []
        for item in value:
            if isinstance(item, str):
                needs.append({"name": item, "optional": False, "artifacts": True})
            elif isinstance(item, dict) and isinstance(item.get("job"), str):
                needs.append(
                    {
                        "name": item["job"],
                        "optional": bool(item.get("optional", False)),
                        "artifacts": bool(item.get("artifacts", True)),
                    }
                )
            else:
                self.errors.append(
                    f"jobs:{self.name}:needs config should be an array of strings or hashes"
                )
                return []
        return needs

    def _validate_refs_policy(self, key: str, value: Any) -> Optional[dict[str, Any]]:
        if value is None:
            return None
        if isinstance(value, list):
            value = {"refs": value}
        if not isinstance(value, dict):
            self._error(f"{key} config should be an array of strings or regexps")
            return None

        unknown = [name for name in value if name not in ("refs", "variables")]
        if unknown:
            self._error(f"{key} config contains unknown keys: {', '.join(unknown)}")
            return None

        policy: dict[str, Any] = {}
        if "refs" in value:
            refs = value["refs"]
            if not isinstance(refs, list) or not all(isinstance(ref, str) for ref in refs):
                self._error(f"{key} config should be an array of strings or regexps")
                return None
            policy["refs"] = list(refs)

        if "variables" in value:
            expressions = value["variables"]
            if not isinstance(expressions, list) or not expressions:
                self.errors.append(f"jobs:{self.name}:{key} variables should be an array of expressions")
                return None
            for expression in expressions:
                try:
                    Expression(expression)
                except ExpressionError:
                    self.errors.append(f"jobs:{self.name}:{key} variables invalid expression syntax")
                    return None
            policy["variables"] = list(expressions)
        return policy


class RootEntry:
    def __init__(self, config: dict[str, Any]):
        self.config = config
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.stages: list[str] = []
        self.variables: dict[str, str] = {}
        self.defaults: dict[str, Any] = {}
        self.jobs: dict[str, dict[str, Any]] = {}

    def compose(self) -> "RootEntry":
        self._compose_stages()
        self._compose_variables()
        self._compose_defaults()
        self._compose_jobs()
        self._expand_parallel()
        if not self.errors:
            self._validate_job_stages()
            self._validate_job_needs()

        max_warnings = int(get_setting("pipeline_settings.max_warnings", 25))
        self.warnings = self.warnings[:max_warnings]
        return self

    @property
    def valid(self) -> bool:
        return not self.errors

    def _compose_stages(self) -> None:
        stages = self.config.get("stages")
        if stages is None and "types" in self.config:
            self.warnings.append("root `types` is deprecated in 9.0 and will be removed in 15.0.")
            stages = self.config.get("types")
        if stages is None:
            stages = list(get_setting("pipeline_settings.default_stages", ["build", "test", "deploy"]))

        if not isinstance(stages, list) or not all(isinstance(stage, str) for stage in stages):
            self.errors.append("stages config should be an array of strings")
            stages = []

        body = [stage for stage in stages if stage not in (PRE_STAGE, POST_STAGE)]
        self.stages = [PRE_STAGE] + body + [POST_STAGE]

    def _compose_variables(self) -> None:
        variables = self.config.get("variables")
        if variables is None:
            return
        if not _variables_valid(variables):
            self.errors.append("variables config should be a hash of key value pairs")
            return
        self.variables = _stringify_variables(variables)

    def _compose_defaults(self) -> None:
        defaults = self.config.get("default")
        legacy = {
            key: self.config[key]
            for key in ("before_script", "after_script", "image", "services")
            if key in self.config
        }
        if defaults is None:
            self.defaults = legacy
            return
        if not isinstance(defaults, dict):
            self.errors.append("default config should be a hash")
            return
        unknown = [key for key in defaults if key not in DEFAULT_ALLOWED_KEYS]
        if unknown:
            self.errors.append(f"default config contains unknown keys: {', '.join(unknown)}")
        self.defaults = {**legacy, **defaults}

    def _compose_jobs(self) -> None:
        job_names = [
            key
            for key in self.config
            if key not in RESERVED_ROOT_KEYS and not key.startswith(".")
        ]
        if not job_names:
            self.errors.append("jobs config should contain at least one visible job")
            return

        for name in job_names:
            entry = JobEntry(name, self.config[name], self)
            entry.compose()
            self.errors.extend(entry.errors)
            self.warnings.extend(entry.warnings)
            if not entry.errors:
                self.jobs[name] = entry.attributes

    def _validate_job_stages(self) -> None:
        available = ", ".join(self.stages)
        for name, job in self.jobs.items():
            if job["stage"] not in self.stages:
                self.errors.append(
                    f"{name} job: chosen stage does not exist; available stages are {available}"
                )
            else:
                job["stage_idx"] = self.stages.index(job["stage"])

    def _validate_job_needs(self) -> None:
        for name, job in self.jobs.items():
            for need in job["needs"]:
                needed = self.jobs.get(need["name"])
                if needed is None:
                    if not need["optional"]:
                        self.errors.append(f"{name} job: undefined need: {need['name']}")
                    continue
                if needed.get("stage_idx", 0) > job.get("stage_idx", 0):
                    self.errors.append(
                        f"{name} job: need {need['name']} is not defined in current or prior stages"
                    )
            for dependency in job["options"].get("dependencies", []):
                needed = self.jobs.get(dependency)
                if needed is None:
                    self.errors.append(f"{name} job: undefined dependency: {dependency}")
                elif needed.get("stage_idx", 0) > job.get("stage_idx", 0):
                    self.errors.append(
                        f"{name} job: dependency {dependency} is not defined in current or prior stages"
                    )

    def _expand_parallel(self) -> None:
        """
        Replace each ``parallel: N`` job with ``name 1/N`` .. ``name N/N``.

        ``needs`` and ``dependencies`` naming the original job point at every
        instance afterwards.
        """
        instances: dict[str, list[str]] = {}
        expanded: dict[str, dict[str, Any]] = {}
        for name, job in self.jobs.items():
            total = job.get("parallel")
            if not total:
                expanded[name] = job
                continue
            instances[name] = []
            for index in range(1, total + 1):
                instance_name = f"{name} {index}/{total}"
                options = {**job["options"], "instance": index, "parallel": total}
                expanded[instance_name] = {**job, "name": instance_name, "options": options}
                instances[name].append(instance_name)

        if not instances:
            return
        for job in expanded.values():
            job["needs"] = [
                {**need, "name": target}
                for need in job["needs"]
                for target in instances.get(need["name"], [need["name"]])
            ]
            if "dependencies" in job["options"]:
                job["options"] = {
                    **job["options"],
                    "dependencies": [
                        target
                        for dependency in job["options"]["dependencies"]
                        for target in instances.get(dependency, [dependency])
                    ],
                }
        self.jobs = expanded
