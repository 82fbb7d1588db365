from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version as _dist_version


DIST_NAME = "kubectl-setimg"


def _installed_version() -> str:
    try:
        return _dist_version(DIST_NAME)
    except PackageNotFoundError:
        return "dev"


@dataclass(frozen=True)
class BuildInfo:
    version: str
    git_commit: str = ""
    git_tag: str = ""
    python_version: str = ""

    @classmethod
    def from_environment(cls) -> "BuildInfo":
        return cls(
            version=_installed_version(),
            git_commit=os.getenv("SETIMG_GIT_COMMIT", "").strip(),
            git_tag=os.getenv("SETIMG_GIT_TAG", "").strip(),
            python_version=platform.python_version(),
        )

    def effective_version(self) -> str:
        if self.git_tag:
            return self.git_tag
        if self.git_commit:
            return f"dev-{self.git_commit[:7]}"
        return self.version

    def describe(self) -> str:
        return f"kubectl-setimg version {self.effective_version()}\nPython version: {self.python_version}"


# Populated once per process.
BUILD_INFO = BuildInfo.from_environment()
