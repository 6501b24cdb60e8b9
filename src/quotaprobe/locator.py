from __future__ import annotations

import logging
import os
import shutil

from quotaprobe.config import SearchConfig

logger = logging.getLogger(__name__)


class ProcessLocator:
    """Finds executables by name across the configured search directories."""

    def __init__(self, search: SearchConfig) -> None:
        self.search = search

    def which(self, tool: str) -> str | None:
        if os.sep in tool:
            return tool if is_executable_file(tool) else None
        found = shutil.which(tool, path=self.search.effective_path())
        if found is None:
            logger.debug("%s not found on search path", tool)
        return found

    def effective_path(self) -> str:
        return self.search.effective_path()


def is_executable_file(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)
