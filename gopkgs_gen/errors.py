from __future__ import annotations

from typing import Sequence


class GenError(Exception):
    """Base class for every fatal generation error.

    Messages start with a stable `E_*` code so callers and log readers can
    match on the failure class without parsing prose.
    """

    code = "E_GEN"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"{self.code}: {detail}")


class UsageError(GenError):
    code = "E_USAGE"


class ConfigError(GenError):
    code = "E_CONFIG"


class LoadError(GenError):
    code = "E_GO_LIST"


class PackageErrors(GenError):
    """All errors recorded against one package (package and module level)."""

    code = "E_PACKAGE_ERRORS"

    def __init__(self, package: str, causes: Sequence[str]) -> None:
        self.package = package
        self.causes = list(causes)
        super().__init__(f"{package}: " + "; ".join(self.causes))


class MissingModuleError(GenError):
    code = "E_PACKAGE_WITHOUT_MODULE"

    def __init__(self, package: str) -> None:
        self.package = package
        super().__init__(f"package without a module: {package}")


class MissingSourceDirError(GenError):
    code = "E_MODULE_WITHOUT_DIR"

    def __init__(self, module: str) -> None:
        self.module = module
        super().__init__(f"module without a dir: {module}")


class ReplacePathMismatchError(GenError):
    code = "E_REPLACE_PATH_MISMATCH"

    def __init__(self, module: str, replace_path: str, expected: str) -> None:
        self.module = module
        self.replace_path = replace_path
        self.expected = expected
        super().__init__(
            f"{module}: replace points at //{replace_path}, "
            f"expected it to point at //{expected}"
        )
