"""Application-code classification by file path."""

from __future__ import annotations

import os
import site
import sys
import sysconfig
from collections.abc import Iterable
from enum import StrEnum
from pathlib import Path

_DEPENDENCY_DIR_NAMES = frozenset({"site-packages", "dist-packages"})


class CodeOrigin(StrEnum):
    """Where a source file comes from."""

    APPLICATION = "application"
    DEPENDENCY = "dependency"
    STANDARD_LIBRARY = "standard_library"
    OTHER = "other"


def _canonical(path: str | os.PathLike[str]) -> str:
    return os.path.realpath(os.path.abspath(os.path.expanduser(os.fspath(path))))


def _under(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def default_dependency_roots() -> tuple[str, ...]:
    """Package install directories known to this interpreter."""
    candidates: list[str] = []
    try:
        candidates.extend(site.getsitepackages())
    except AttributeError:
        # Old virtualenv's site.py lacks getsitepackages
        pass
    user_site = site.getusersitepackages()
    if isinstance(user_site, str):
        candidates.append(user_site)
    for entry in sys.path:
        if entry and _DEPENDENCY_DIR_NAMES.intersection(Path(entry).parts):
            candidates.append(entry)
    return _dedupe(_canonical(c) for c in candidates)


def default_stdlib_roots() -> tuple[str, ...]:
    """Standard-library install directories of this interpreter."""
    paths = sysconfig.get_paths()
    candidates = [paths.get("stdlib"), paths.get("platstdlib")]
    return _dedupe(_canonical(c) for c in candidates if c)


def _dedupe(items: Iterable[str]) -> tuple[str, ...]:
    seen: list[str] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return tuple(seen)


class CodeClassifier:
    """Decide whether a path belongs to the traced application.

    All roots are canonicalised once at construction; per-path answers are
    memoised because the same handful of files is asked about on every event.

    Parameters:
        application_roots: Configured roots of the traced program.
        dependency_roots: Third-party package directories. Defaults to the
            interpreter's site-packages.
        stdlib_roots: Standard-library directories. Defaults to sysconfig's.
    """

    def __init__(
        self,
        application_roots: Iterable[str],
        *,
        dependency_roots: Iterable[str] | None = None,
        stdlib_roots: Iterable[str] | None = None,
    ) -> None:
        self._app_roots = _dedupe(_canonical(r) for r in application_roots)
        self._dependency_roots = (
            _dedupe(_canonical(r) for r in dependency_roots)
            if dependency_roots is not None
            else default_dependency_roots()
        )
        self._stdlib_roots = (
            _dedupe(_canonical(r) for r in stdlib_roots)
            if stdlib_roots is not None
            else default_stdlib_roots()
        )
        self._cache: dict[str, CodeOrigin] = {}

    @property
    def application_roots(self) -> tuple[str, ...]:
        return self._app_roots

    def is_application_code(self, path: str | None) -> bool:
        return self.origin(path) is CodeOrigin.APPLICATION

    def origin(self, path: str | None) -> CodeOrigin:
        if not path:
            return CodeOrigin.OTHER
        cached = self._cache.get(path)
        if cached is None:
            cached = self._classify(path)
            self._cache[path] = cached
        return cached

    def _classify(self, path: str) -> CodeOrigin:
        try:
            resolved = _canonical(path)
        except (OSError, ValueError):
            return CodeOrigin.OTHER
        # Dependency dirs usually sit inside the stdlib dir, so check them first.
        if _DEPENDENCY_DIR_NAMES.intersection(Path(resolved).parts) or any(
            _under(resolved, root) for root in self._dependency_roots
        ):
            return CodeOrigin.DEPENDENCY
        if any(_under(resolved, root) for root in self._stdlib_roots):
            return CodeOrigin.STANDARD_LIBRARY
        if any(_under(resolved, root) for root in self._app_roots):
            return CodeOrigin.APPLICATION
        return CodeOrigin.OTHER
