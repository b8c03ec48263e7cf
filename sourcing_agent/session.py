from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path

from pydantic import ValidationError

from sourcing_agent.config import settings
from sourcing_agent.models.workflow import UserWorkflowState

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class StateStore:
    """One JSON file per user holding their ``UserWorkflowState``."""

    def __init__(self, base_dir: Path | None = None):
        self.base_dir = base_dir or settings.state_dir
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, user_id: str) -> Path:
        key = _UNSAFE_KEY_CHARS.sub("_", user_id.strip()) or "_"
        return self.base_dir / f"{key}.json"

    def load(self, user_id: str) -> UserWorkflowState:
        path = self._path(user_id)
        if not path.exists():
            return UserWorkflowState()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return UserWorkflowState.model_validate(data)
        except (ValueError, ValidationError) as exc:
            logger.warning("Discarding corrupt state for %s (%s): %s", user_id, path.name, exc)
            return UserWorkflowState()

    def save(self, user_id: str, state: UserWorkflowState) -> None:
        path = self._path(user_id)
        payload = json.dumps(state.model_dump(mode="json"), indent=2)
        fd, tmp_name = tempfile.mkstemp(dir=self.base_dir, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, user_id: str) -> bool:
        path = self._path(user_id)
        if not path.exists():
            return False
        path.unlink()
        return True
