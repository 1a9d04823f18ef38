"""
Holds the config bundle served by the decisions service.

Bundles are validated once at load time and swapped in wholesale, so a
request always sees one complete bundle.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from shared.errors import BundleValidationError, BundleUnavailableError
from .models import ConfigBundle


def parse_bundle(payload: Dict[str, Any]) -> ConfigBundle:
    """Validate a raw bundle payload."""
    try:
        return ConfigBundle.model_validate(payload)
    except PydanticValidationError as e:
        raise BundleValidationError(
            "Invalid config bundle",
            details={"errors": e.errors(include_url=False, include_context=False)}
        )


class BundleStore:
    """In-memory holder of the current config bundle."""

    def __init__(self, bundle: Optional[ConfigBundle] = None):
        self._bundle = bundle
        self.logger = get_logger("decisions.bundle_store")

    def load(self, payload: Dict[str, Any]) -> ConfigBundle:
        bundle = parse_bundle(payload)
        self._bundle = bundle
        self.logger.info(
            "Config bundle loaded",
            version=bundle.version,
            layers=len(bundle.layers),
            parameters=len(bundle.parameters)
        )
        return bundle

    def load_file(self, path: str) -> ConfigBundle:
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BundleValidationError(
                f"Cannot read config bundle from {path}",
                details={"error": str(e)}
            )
        return self.load(payload)

    def get(self) -> Optional[ConfigBundle]:
        return self._bundle

    def require(self) -> ConfigBundle:
        """Return the bundle or raise if none is loaded."""
        if self._bundle is None:
            raise BundleUnavailableError()
        return self._bundle
