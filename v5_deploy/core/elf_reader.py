"""
ELF reader — open a firmware executable and extract image-relevant metadata.

Responsibilities:
  - Read ELF header facts (class, machine, entry point, endianness).
  - List allocatable sections with their load address (LMA).
  - Compute Berkeley-style text/data/bss totals, as ``size`` reports them.
  - Produce the flat "loadable contents only" image (objcopy -O binary).

This module never rejects a file for being the wrong architecture; callers
decide what a foreign machine type means.
"""
import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from elftools.elf.constants import SH_FLAGS
from elftools.elf.elffile import ELFFile


@dataclass(frozen=True)
class ImageSection:
    """One allocatable section of the executable."""

    name: str
    vma: int
    lma: int
    size: int
    has_contents: bool   # False for SHT_NOBITS (.bss and friends)
    writable: bool
    executable: bool


@dataclass(frozen=True)
class SectionSizes:
    text: int = 0
    data: int = 0
    bss: int = 0

    @property
    def total(self) -> int:
        return self.text + self.data + self.bss


@dataclass(frozen=True)
class ElfMeta:
    """Structural metadata extracted from a firmware ELF."""

    path: str
    file_sha256: str
    file_size: int

    elf_class: int           # 32 or 64
    machine: str             # e.g. "EM_ARM"
    endianness: str          # "little" or "big"
    entry: int

    sections: List[ImageSection] = field(default_factory=list)
    sizes: SectionSizes = field(default_factory=SectionSizes)

    @property
    def loadable_sections(self) -> List[ImageSection]:
        """Sections that contribute bytes to the flat image, by load address."""
        return sorted(
            (s for s in self.sections if s.has_contents and s.size > 0),
            key=lambda s: (s.lma, s.name),
        )


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def _load_address(elffile: ELFFile, section) -> int:
    """Map a section's VMA to its LMA through the PT_LOAD segment holding it."""
    for segment in elffile.iter_segments():
        if segment["p_type"] != "PT_LOAD":
            continue
        if segment.section_in_segment(section):
            return segment["p_paddr"] + (section["sh_addr"] - segment["p_vaddr"])
    return section["sh_addr"]


def _iter_alloc_sections(elffile: ELFFile):
    for section in elffile.iter_sections():
        if section["sh_flags"] & SH_FLAGS.SHF_ALLOC:
            yield section


def _berkeley_sizes(sections: List[ImageSection]) -> SectionSizes:
    # Same split as GNU size: NOBITS → bss, writable → data, the rest → text
    text = data = bss = 0
    for s in sections:
        if not s.has_contents:
            bss += s.size
        elif s.writable:
            data += s.size
        else:
            text += s.size
    return SectionSizes(text=text, data=data, bss=bss)


def read_elf(path: str) -> ElfMeta:
    """
    Open *path* as an ELF file and return its image metadata.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ELFError
        If the file is not a valid ELF binary.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Executable not found: {path}")

    file_sha256 = sha256_file(p)
    file_size = p.stat().st_size

    with open(p, "rb") as f:
        elffile = ELFFile(f)

        sections: List[ImageSection] = []
        for section in _iter_alloc_sections(elffile):
            flags = section["sh_flags"]
            sections.append(
                ImageSection(
                    name=section.name,
                    vma=section["sh_addr"],
                    lma=_load_address(elffile, section),
                    size=section["sh_size"],
                    has_contents=section["sh_type"] != "SHT_NOBITS",
                    writable=bool(flags & SH_FLAGS.SHF_WRITE),
                    executable=bool(flags & SH_FLAGS.SHF_EXECINSTR),
                )
            )

        meta = ElfMeta(
            path=str(p),
            file_sha256=file_sha256,
            file_size=file_size,
            elf_class=elffile.elfclass,
            machine=elffile.header.e_machine,
            endianness="little" if elffile.little_endian else "big",
            entry=elffile.header.e_entry,
            sections=sections,
            sizes=_berkeley_sizes(sections),
        )

    return meta


def extract_flat_image(path: str, fill: int = 0x00) -> bytes:
    """
    Return the flat binary image of *path*, as ``objcopy -O binary`` lays it out.

    Sections with file contents are placed at ``lma - base`` where *base* is
    the lowest LMA; gaps between them are padded with *fill*.  An executable
    without loadable contents yields ``b""``.
    """
    with open(path, "rb") as f:
        elffile = ELFFile(f)

        placed = []
        for section in _iter_alloc_sections(elffile):
            if section["sh_type"] == "SHT_NOBITS" or section["sh_size"] == 0:
                continue
            placed.append((_load_address(elffile, section), section.name, section.data()))

    if not placed:
        return b""

    placed.sort(key=lambda item: (item[0], item[1]))
    base = placed[0][0]
    end = max(lma + len(data) for lma, _, data in placed)

    image = bytearray([fill]) * (end - base)
    for lma, _, data in placed:
        offset = lma - base
        image[offset:offset + len(data)] = data
    return bytes(image)


def format_size_report(meta: ElfMeta, filename: Optional[str] = None) -> str:
    """Render *meta* in GNU ``size`` Berkeley format."""
    sizes = meta.sizes
    name = filename if filename is not None else meta.path
    header = f"{'text':>7}\t{'data':>7}\t{'bss':>7}\t{'dec':>7}\t{'hex':>7}\tfilename"
    row = (
        f"{sizes.text:>7}\t{sizes.data:>7}\t{sizes.bss:>7}\t"
        f"{sizes.total:>7}\t{sizes.total:>7x}\t{name}"
    )
    return f"{header}\n{row}\n"
