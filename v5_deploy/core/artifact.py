"""
Build artifact — the (name, elf_path, binary_path) triple for one run.
"""
import os
import posixpath
from dataclasses import dataclass


@dataclass(frozen=True)
class BuildArtifact:
    """Paths derived from a compiled executable."""

    name: str
    elf_path: str
    binary_path: str

    @classmethod
    def from_elf_path(cls, elf_path: str, binary_suffix: str = ".bin") -> "BuildArtifact":
        """
        Derive the artifact for *elf_path*.

        ``name`` is the base name with directory components removed; the
        extension is kept (``/build/auton.elf`` → ``auton.elf``).
        ``binary_path`` is *elf_path* with *binary_suffix* appended verbatim.
        """
        elf_path = str(elf_path)
        return cls(
            name=posixpath.basename(elf_path),
            elf_path=elf_path,
            binary_path=elf_path + binary_suffix,
        )

    def binary_path_from(self, directory) -> str:
        """
        Return ``binary_path`` as it resolves from *directory*.

        Absolute paths, and relative paths when *directory* is the working
        directory, come back verbatim.  Otherwise the path is rewritten
        relative to *directory* (absolute if no relative form exists, as
        across Windows drives).
        """
        if os.path.isabs(self.binary_path):
            return self.binary_path
        directory = os.path.realpath(directory)
        if directory == os.path.realpath(os.curdir):
            return self.binary_path
        target = os.path.realpath(self.binary_path)
        try:
            return os.path.relpath(target, directory)
        except ValueError:
            return target
