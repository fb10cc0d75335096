"""
Error taxonomy for the deploy pipeline.

Every error is fatal.  Each carries the process exit code the CLI reports;
tool and uploader failures carry the child's own exit code.
"""
from typing import Optional


class DeployError(Exception):
    """Base class for all pipeline failures."""

    exit_code: int = 1
    state: Optional[str] = None  # terminal pipeline state, set by the runner

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InputNotFound(DeployError):
    """The source executable does not exist or cannot be read."""

    def __init__(self, path: str):
        super().__init__(f"Executable not found or unreadable: {path}")
        self.path = path


class ToolInvocationError(DeployError):
    """An external tool could not be started or exited non-zero."""

    # POSIX shells report 127 for "command not found"
    NOT_FOUND = 127

    def __init__(self, tool: str, exit_code: int, detail: str = ""):
        message = f"{tool} failed with exit code {exit_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, exit_code=exit_code or 1)
        self.tool = tool


class DescriptorWriteError(DeployError):
    """The project descriptor could not be serialized or written."""

    def __init__(self, path: str, detail: str):
        super().__init__(f"Cannot write descriptor {path}: {detail}")
        self.path = path


class UploadError(DeployError):
    """The uploader returned a non-zero exit code."""

    def __init__(self, exit_code: int):
        super().__init__(f"Uploader exited with code {exit_code}", exit_code=exit_code)
