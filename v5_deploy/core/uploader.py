"""
Uploader — hand the descriptor to the external flashing tool.

The PROS uploader finds project.pros by its well-known name in its working
directory, so the child is started in the descriptor's directory with no
extra arguments.  Its exit code is returned untouched; retries, if any, are
the uploader's business.
"""
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence

from v5_deploy.core.toolchain import run_tool
from v5_deploy.policy.profile import Profile

logger = logging.getLogger(__name__)


class Uploader(ABC):
    """Transfers the artifact described by a descriptor file to the device."""

    @abstractmethod
    def upload(self, descriptor_path: Path) -> int:
        """Run one upload attempt and return the process exit code."""


class ProsUploader(Uploader):
    """Runs ``prosv5 ut`` (or a configured equivalent) next to the descriptor."""

    def __init__(
        self,
        command: Optional[Sequence[str]] = None,
        profile: Optional[Profile] = None,
        timeout: Optional[float] = None,
    ):
        profile = profile or Profile.v5()
        self.command = list(command) if command else list(profile.uploader_command)
        self.descriptor_filename = profile.descriptor_filename
        self.timeout = timeout

    def upload(self, descriptor_path: Path) -> int:
        descriptor_path = Path(descriptor_path)
        if descriptor_path.name != self.descriptor_filename:
            logger.warning(
                "Descriptor %s is not named %s; %s may not find it",
                descriptor_path, self.descriptor_filename, " ".join(self.command) or "the uploader",
            )

        cwd = descriptor_path.parent
        logger.info("Uploading via %s (cwd=%s)", " ".join(self.command), cwd)
        result = run_tool(self.command, cwd=cwd, timeout=self.timeout)
        return result.exit_code
