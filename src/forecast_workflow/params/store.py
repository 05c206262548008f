from __future__ import annotations

import json
import logging
from pathlib import Path

from .fields import LiveFields

logger = logging.getLogger(__name__)


class ParameterFileStore:
    """Persist the editable parameter groups as JSON.

    A missing file yields the defaults. Invalid content raises pydantic's
    ``ValidationError`` (or ``json.JSONDecodeError``) rather than being
    silently replaced.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> LiveFields:
        if not self._path.exists():
            logger.info("No parameter file found, using defaults", extra={"path": str(self._path)})
            return LiveFields()

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        return LiveFields.model_validate(raw)

    def save(self, fields: LiveFields) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            json.dumps(fields.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        logger.info("Parameters saved", extra={"path": str(self._path)})
