"""
A file fetched over HTTP(S).
"""

import logging
from typing import Any, Optional
from urllib.parse import urlparse

import requests
from django.utils.functional import cached_property

from .....config_proxy import get_setting
from .base import Base

logger = logging.getLogger(__name__)


def is_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class Remote(Base):
    type_name = "remote"

    def __init__(self, params: dict[str, Any], context):
        self.location = params.get("remote")
        self.fetch_error: Optional[str] = None
        super().__init__(params, context)

    def matching(self) -> bool:
        return super().matching() and is_url(self.location)

    @cached_property
    def content(self) -> Optional[str]:
        timeout = float(get_setting("include_settings.remote_timeout_seconds", 30))
        try:
            response = requests.get(self.location, timeout=timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout:
            self.fetch_error = "could not be fetched because of a timeout error!"
        except requests.exceptions.HTTPError as exc:
            code = getattr(exc.response, "status_code", None)
            self.fetch_error = f"could not be fetched because of HTTP code `{code}` error!"
        except requests.exceptions.ConnectionError:
            self.fetch_error = "could not be fetched because of a socket error!"
        except requests.exceptions.RequestException:
            self.fetch_error = "could not be fetched because of HTTP error!"
        else:
            return response.text

        logger.info("Remote include %s %s", self.masked_location, self.fetch_error)
        return None

    def validate_content(self) -> None:
        if self.content is None:
            self.errors.append(f"Remote file `{self.masked_location}` {self.fetch_error}")
        elif not self.content.strip():
            self.errors.append(f"Remote file `{self.masked_location}` is empty!")

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
        data["blob"] = None
        data["raw"] = self.masked_location
        return data
