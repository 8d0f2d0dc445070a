"""
Configuration management for rail-ci.

Settings are resolved in the following order:
1. Django ``RAIL_CI`` setting
2. Library defaults (``LIBRARY_DEFAULTS``)
3. The caller supplied default
"""

from typing import Any, Optional

from django.conf import settings

from .defaults import LIBRARY_DEFAULTS, merge_settings


class SettingsProxy:
    """
    Proxy for accessing rail-ci settings with hierarchical resolution.

    A proxy caches lookups for its own lifetime only; :func:`get_setting`
    builds a fresh proxy per call so ``override_settings`` is always honoured.
    """

    def __init__(self):
        self._cache: dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value using dot notation (``"section.key"``).

        Args:
            key: Setting key to retrieve
            default: Default value if setting is not found

        Returns:
            The setting value from the highest priority source
        """
        if key in self._cache:
            return self._cache[key]

        django_value = self._get_nested_value(self._django_settings(), key)
        if django_value is not None:
            self._cache[key] = django_value
            return django_value

        library_value = self._get_nested_value(LIBRARY_DEFAULTS, key)
        if library_value is not None:
            self._cache[key] = library_value
            return library_value

        self._cache[key] = default
        return default

    def section(self, name: str) -> dict[str, Any]:
        """Return a whole settings section merged over its defaults."""
        defaults = LIBRARY_DEFAULTS.get(name, {}) or {}
        overrides = self._django_settings().get(name, {}) or {}
        if not isinstance(overrides, dict):
            return dict(defaults)
        return merge_settings(defaults, overrides)

    def _django_settings(self) -> dict[str, Any]:
        value = getattr(settings, "RAIL_CI", None)
        return value if isinstance(value, dict) else {}

    def _get_nested_value(self, data: dict[str, Any], key: str) -> Any:
        if not isinstance(data, dict):
            return None

        current: Any = data
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        return current


def get_settings_proxy() -> SettingsProxy:
    return SettingsProxy()


def get_setting(key: str, default: Any = None) -> Any:
    """
    Get a setting value using the hierarchical settings system.

    Args:
        key: Dotted setting key, e.g. ``"include_settings.max_includes"``
        default: Value returned when neither Django nor the library define it
    """
    return get_settings_proxy().get(key, default)


def get_section(name: str) -> dict[str, Any]:
    return get_settings_proxy().section(name)


def external_url(path: Optional[str] = None) -> str:
    """Build an absolute URL under the configured external URL."""
    base = str(get_setting("routing.external_url", "http://localhost")).rstrip("/")
    if not path:
        return base
    return f"{base}/{path.lstrip('/')}"
