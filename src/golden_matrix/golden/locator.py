from __future__ import annotations

from importlib import resources
from pathlib import Path, PurePosixPath
from typing import Mapping, Optional, Protocol


class GoldenLocator(Protocol):
    def locate(self, resource_key: str) -> Optional[bytes]: ...


def _is_safe_key(resource_key: str) -> bool:
    if not resource_key or resource_key.startswith("/") or "\\" in resource_key:
        return False
    return ".." not in PurePosixPath(resource_key).parts


class DirectoryGoldenStore:
    def __init__(self, root: Path, suffix: str = ".out.txt") -> None:
        self.root = Path(root)
        self.suffix = suffix

    def path_for(self, resource_key: str) -> Path:
        return self.root / f"{resource_key}{self.suffix}"

    def locate(self, resource_key: str) -> Optional[bytes]:
        if not _is_safe_key(resource_key):
            return None
        path = self.path_for(resource_key)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None


class MappingGoldenStore:
    def __init__(self, mapping: Mapping[str, bytes]) -> None:
        self.mapping = dict(mapping)

    def locate(self, resource_key: str) -> Optional[bytes]:
        return self.mapping.get(resource_key)


class PackageGoldenStore:
    def __init__(self, package: str, suffix: str = ".out.txt") -> None:
        self.package = package
        self.suffix = suffix

    def locate(self, resource_key: str) -> Optional[bytes]:
        if not _is_safe_key(resource_key):
            return None
        try:
            node = resources.files(self.package)
        except ModuleNotFoundError:
            return None
        for part in f"{resource_key}{self.suffix}".split("/"):
            node = node.joinpath(part)
        if not node.is_file():
            return None
        return node.read_bytes()
