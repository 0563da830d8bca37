"""A directory-backed file system that can hide directory listings."""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass
from typing import BinaryIO


@dataclass(frozen=True)
class DirFS:
    """Files under ``root``, addressed by slash-separated names that cannot escape it."""

    root: str = "."
    list_directory: bool = True

    def _resolve(self, name: str) -> str:
        for sep in (os.sep, os.altsep):
            if sep and sep != "/" and sep in name:
                raise ValueError(f"invalid character in file path: {name!r}")
        cleaned = posixpath.normpath("/" + name).lstrip("/")
        base = self.root or "."
        if not cleaned or cleaned == ".":
            return base
        return os.path.join(base, *cleaned.split("/"))

    def open(self, name: str) -> BinaryIO:
        """Open the named file for binary reading."""
        return open(self._resolve(name), "rb")

    def listdir(self, name: str) -> list[str]:
        """List a directory's entries, or nothing when listing is disabled."""
        path = self._resolve(name)
        if not self.list_directory:
            if not os.path.isdir(path):
                raise NotADirectoryError(path)
            return []
        return sorted(os.listdir(path))


def directory(root: str, list_directory: bool) -> DirFS:
    """Return a file system rooted at ``root``, listing directories only if asked."""
    return DirFS(root, list_directory)