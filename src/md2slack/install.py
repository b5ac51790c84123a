"""User-mode install: link the working directory to ``~/.md2slack``."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def install(source: Path | None = None, target: Path | None = None) -> Path:
    source = (source or Path.cwd()).resolve()
    target = target or Path.home() / ".md2slack"

    if target.is_symlink():
        logger.info("install event=replace_symlink target=%s", target)
        target.unlink()
    elif target.is_dir():
        backup = target.with_name(target.name + ".bak")
        logger.info("install event=backup target=%s backup=%s", target, backup)
        target.rename(backup)

    target.symlink_to(source, target_is_directory=True)
    logger.info("install event=linked target=%s source=%s", target, source)
    return target
