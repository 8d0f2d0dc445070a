"""
YAML loading for CI configuration documents.
"""

from typing import Any

import yaml

from .errors import ConfigFormatError


class ConfigLoader(yaml.SafeLoader):
    """Safe loader whose mappings are keyed by strings."""


def _construct_mapping(loader: ConfigLoader, node: yaml.MappingNode) -> dict[str, Any]:
    # Keys are stringified as they are read, so `1` and `true` stay distinct.
    loader.flatten_mapping(node)
    mapping = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=True)
        mapping[str(key)] = loader.construct_object(value_node, deep=True)
    return mapping


ConfigLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_mapping)


def load_yaml(content: Any) -> Any:
    """Parse YAML text with the safe loader; syntax errors become ``ConfigFormatError``."""
    if content is None:
        raise ConfigFormatError()
    try:
        return yaml.load(content, Loader=ConfigLoader)
    except yaml.YAMLError as exc:
        raise ConfigFormatError() from exc


def load_yaml_hash(content: Any) -> dict[str, Any]:
    data = load_yaml(content)
    if not isinstance(data, dict):
        raise ConfigFormatError()
    return data


def yaml_valid(content: Any) -> bool:
    try:
        load_yaml(content)
    except ConfigFormatError:
        return False
    return True


def dump_yaml(data: Any) -> str:
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)
