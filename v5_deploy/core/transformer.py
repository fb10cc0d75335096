"""
Image transformer — ELF executable → flat binary + size report.

Two backends share one capability:

  ObjcopyTransformer   runs <prefix>size and <prefix>objcopy -O binary.
  ElfImageTransformer  does the same in-process with pyelftools, for hosts
                       that have no cross toolchain installed.

Both overwrite an existing binary silently and never touch the descriptor.
A binary left by an earlier run is removed before extraction starts, so a
failed run never leaves an image behind.
"""
import logging
import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from elftools.common.exceptions import ELFError

from v5_deploy.core.artifact import BuildArtifact
from v5_deploy.core.elf_reader import (
    extract_flat_image,
    format_size_report,
    read_elf,
    sha256_file,
)
from v5_deploy.core.toolchain import check_tool, run_tool
from v5_deploy.errors import InputNotFound, ToolInvocationError
from v5_deploy.policy.profile import Profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransformResult:
    """What the transformer produced for one artifact."""

    artifact: BuildArtifact
    size_report: str
    binary_size: int
    binary_sha256: str


def ensure_readable(path: str) -> None:
    """Raise InputNotFound unless *path* is an existing, readable file."""
    if not os.path.isfile(path) or not os.access(path, os.R_OK):
        raise InputNotFound(path)


def _warn_on_foreign_machine(elf_path: str, profile: Profile) -> None:
    # Informational only; the toolchain owns validation.
    try:
        meta = read_elf(elf_path)
    except (ELFError, OSError) as e:
        logger.debug("Could not inspect %s: %s", elf_path, e)
        return
    if meta.machine != profile.expected_machine:
        logger.warning(
            "%s targets %s, expected %s", elf_path, meta.machine, profile.expected_machine
        )


class ImageTransformer(ABC):
    """Turns a compiled executable into the image the bootloader flashes."""

    def __init__(self, profile: Optional[Profile] = None):
        self.profile = profile or Profile.v5()

    @abstractmethod
    def report_size(self, elf_path: str) -> str:
        """Return a human-readable static section size report."""

    @abstractmethod
    def extract(self, elf_path: str, binary_path: str) -> None:
        """Write the flat binary image of *elf_path* to *binary_path*."""

    def transform(self, artifact: BuildArtifact) -> TransformResult:
        """
        Size-report then extract *artifact*.

        Raises
        ------
        InputNotFound
            If the executable is missing or unreadable.
        ToolInvocationError
            If either step fails.
        """
        ensure_readable(artifact.elf_path)
        _warn_on_foreign_machine(artifact.elf_path, self.profile)

        binary = Path(artifact.binary_path)
        try:
            binary.unlink(missing_ok=True)
        except OSError as e:
            raise ToolInvocationError(
                self.profile.objcopy_tool, 1, f"cannot remove stale {binary}: {e}"
            )

        size_report = self.report_size(artifact.elf_path)
        self.extract(artifact.elf_path, artifact.binary_path)

        if not binary.is_file():
            raise ToolInvocationError(
                self.profile.objcopy_tool, 1, f"no output at {artifact.binary_path}"
            )

        result = TransformResult(
            artifact=artifact,
            size_report=size_report,
            binary_size=binary.stat().st_size,
            binary_sha256=sha256_file(binary),
        )
        logger.info(
            "Wrote %s (%d bytes, sha256=%s)",
            artifact.binary_path, result.binary_size, result.binary_sha256[:12],
        )
        return result


class ObjcopyTransformer(ImageTransformer):
    """Backend driving the GNU cross binutils."""

    def __init__(self, profile: Optional[Profile] = None, timeout: Optional[float] = None):
        super().__init__(profile)
        self.timeout = timeout

    def report_size(self, elf_path: str) -> str:
        result = check_tool(
            run_tool(
                [self.profile.size_tool, elf_path],
                capture_stdout=True,
                timeout=self.timeout,
            )
        )
        # pass through for the user, unmodified
        sys.stdout.write(result.stdout)
        sys.stdout.flush()
        return result.stdout

    def extract(self, elf_path: str, binary_path: str) -> None:
        check_tool(
            run_tool(
                [self.profile.objcopy_tool, "-O", "binary", elf_path, binary_path],
                timeout=self.timeout,
            )
        )


class ElfImageTransformer(ImageTransformer):
    """In-process backend built on pyelftools."""

    def _read(self, elf_path: str):
        try:
            return read_elf(elf_path)
        except (ELFError, OSError) as e:
            raise ToolInvocationError("elftools", 1, str(e))

    def report_size(self, elf_path: str) -> str:
        report = format_size_report(self._read(elf_path), filename=elf_path)
        sys.stdout.write(report)
        sys.stdout.flush()
        return report

    def extract(self, elf_path: str, binary_path: str) -> None:
        try:
            image = extract_flat_image(elf_path)
        except (ELFError, OSError) as e:
            raise ToolInvocationError("elftools", 1, str(e))
        try:
            Path(binary_path).write_bytes(image)
        except OSError as e:
            raise ToolInvocationError("elftools", 1, f"cannot write {binary_path}: {e}")


def make_transformer(
    kind: str = "objcopy",
    profile: Optional[Profile] = None,
    timeout: Optional[float] = None,
) -> ImageTransformer:
    """Build the transformer backend named by *kind* ("objcopy" or "elftools")."""
    if kind == "objcopy":
        return ObjcopyTransformer(profile, timeout=timeout)
    if kind == "elftools":
        return ElfImageTransformer(profile)
    raise ValueError(f"Unknown transformer backend: {kind}")
