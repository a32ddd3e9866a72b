"""
Resource resolution: which DMN files are compiled together for one invocation.

The main model file comes first, then explicit imports (files, or directories scanned one
level deep), then the main file's siblings when auto-import is on. Paths are absolute and
each appears once, in first-insertion order.
"""

import logging
import os
from typing import Iterable, Iterator

from dmn_executor.errors import ResourceNotFound

logger = logging.getLogger(__name__)

MODEL_FILE_EXTENSION = ".dmn"


class ResourceSet:
    """Ordered, duplicate-free set of absolute model file paths. Immutable once built."""

    __slots__ = ("_paths",)

    def __init__(self, paths: Iterable[str] = ()):
        unique: dict[str, None] = {}
        for path in paths:
            unique.setdefault(os.path.abspath(path), None)
        self._paths = tuple(unique)

    @property
    def paths(self) -> tuple[str, ...]:
        return self._paths

    @property
    def main_path(self) -> str:
        return self._paths[0]

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and os.path.abspath(path) in self._paths

    def __repr__(self) -> str:
        return f"ResourceSet({list(self._paths)!r})"


def is_model_file(name: str) -> bool:
    return name.lower().endswith(MODEL_FILE_EXTENSION)


def _model_files_in(directory: str) -> list[str]:
    """Direct child files of directory with the model extension, sorted by name."""
    try:
        names = sorted(os.listdir(directory))
    except OSError as e:
        logger.debug("Cannot list %s: %s", directory, e)
        return []
    paths = (os.path.join(directory, name) for name in names if is_model_file(name))
    return [p for p in paths if os.path.isfile(p)]


def resolve_resources(main_path: str, import_paths: Iterable[str] = (), auto_import: bool = True) -> ResourceSet:
    """
    Build the ResourceSet for an invocation.

    Raises ResourceNotFound when main_path is not an existing file. Import paths that are
    neither a file nor a directory are skipped.
    """
    main = os.path.abspath(main_path)
    if not os.path.isfile(main):
        raise ResourceNotFound(main_path)

    paths = [main]
    for import_path in import_paths:
        candidate = os.path.abspath(import_path)
        if os.path.isdir(candidate):
            found = _model_files_in(candidate)
            logger.debug("Import directory %s contributes %d model file(s)", candidate, len(found))
            paths.extend(found)
        elif os.path.isfile(candidate):
            paths.append(candidate)
        else:
            logger.debug("Skipping import path %s: not a file or directory", import_path)

    if auto_import:
        siblings = _model_files_in(os.path.dirname(main))
        logger.debug("Auto-import found %d sibling model file(s) next to %s", len(siblings), main)
        paths.extend(siblings)

    resources = ResourceSet(paths)
    logger.info("Resolved %d resource(s) for %s", len(resources), main)
    return resources
