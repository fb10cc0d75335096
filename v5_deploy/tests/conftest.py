"""
Shared pytest fixtures for v5_deploy tests.

ELF inputs are assembled byte-by-byte, so no cross toolchain is needed.
The main image mirrors a V5 user program: .text at the user-code base,
.data linked into RAM but loaded right after .text (VMA != LMA), and .bss.

External tools (size, objcopy, prosv5) are replaced by small shell scripts
put on PATH; modules that use them skip themselves on Windows.
"""
import functools
import json
import os
import stat
import struct
import textwrap
from pathlib import Path

import pytest

from v5_deploy.core.transformer import ImageTransformer
from v5_deploy.core.uploader import Uploader
from v5_deploy.errors import ToolInvocationError

EM_ARM = 40
EM_X86_64 = 62

TEXT_ADDR = 0x03800000
TEXT_BYTES = bytes(range(1, 17))
DATA_VMA = 0x03900000
DATA_LMA = 0x03800020
DATA_BYTES = b"\xde\xad\xbe\xef\xca\xfe\xba\xbe"
BSS_SIZE = 12

# text, 16-byte gap, data
EXPECTED_IMAGE = TEXT_BYTES + b"\x00" * (DATA_LMA - TEXT_ADDR - len(TEXT_BYTES)) + DATA_BYTES

_SHT_PROGBITS, _SHT_STRTAB, _SHT_NOBITS = 1, 3, 8
_SHF_WRITE, _SHF_ALLOC, _SHF_EXECINSTR = 0x1, 0x2, 0x4
_PT_LOAD = 1

def _align(n: int, a: int = 4) -> int:
    return (n + a - 1) & ~(a - 1)


def assemble_elf(machine: int = EM_ARM, loadable: bool = True) -> bytes:
    """Build a little-endian ELF32 executable image."""
    shstrtab = b"\0.text\0.data\0.bss\0.shstrtab\0"

    def name(n: bytes) -> int:
        return shstrtab.index(n + b"\0")

    sections = [(0,) * 10]
    phdrs = []

    if loadable:
        text_off, data_off = 0x100, 0x110
        shstr_off = data_off + len(DATA_BYTES)
        phdrs = [
            (_PT_LOAD, text_off, TEXT_ADDR, TEXT_ADDR,
             len(TEXT_BYTES), len(TEXT_BYTES), 0x5, 0x4),
            (_PT_LOAD, data_off, DATA_VMA, DATA_LMA,
             len(DATA_BYTES), len(DATA_BYTES) + BSS_SIZE, 0x6, 0x4),
        ]
        sections += [
            (name(b".text"), _SHT_PROGBITS, _SHF_ALLOC | _SHF_EXECINSTR,
             TEXT_ADDR, text_off, len(TEXT_BYTES), 0, 0, 4, 0),
            (name(b".data"), _SHT_PROGBITS, _SHF_ALLOC | _SHF_WRITE,
             DATA_VMA, data_off, len(DATA_BYTES), 0, 0, 4, 0),
            (name(b".bss"), _SHT_NOBITS, _SHF_ALLOC | _SHF_WRITE,
             DATA_VMA + len(DATA_BYTES), shstr_off, BSS_SIZE, 0, 0, 4, 0),
        ]
    else:
        shstr_off = 52

    sections.append(
        (name(b".shstrtab"), _SHT_STRTAB, 0, 0, shstr_off, len(shstrtab), 0, 0, 1, 0)
    )
    shoff = _align(shstr_off + len(shstrtab))

    out = bytearray(shoff + 40 * len(sections))
    out[0:16] = b"\x7fELF\x01\x01\x01" + b"\x00" * 9
    out[16:52] = struct.pack(
        "<HHIIIIIHHHHHH",
        2,                        # ET_EXEC
        machine,
        1,                        # EV_CURRENT
        TEXT_ADDR,                # e_entry
        52 if phdrs else 0,       # e_phoff
        shoff,
        0x05000000,               # EABI v5
        52, 32, len(phdrs), 40, len(sections),
        len(sections) - 1,        # .shstrtab is last
    )
    for i, ph in enumerate(phdrs):
        out[52 + 32 * i:52 + 32 * (i + 1)] = struct.pack("<8I", *ph)
    if loadable:
        out[0x100:0x100 + len(TEXT_BYTES)] = TEXT_BYTES
        out[0x110:0x110 + len(DATA_BYTES)] = DATA_BYTES
    out[shstr_off:shstr_off + len(shstrtab)] = shstrtab
    for i, sh in enumerate(sections):
        out[shoff + 40 * i:shoff + 40 * (i + 1)] = struct.pack("<10I", *sh)
    return bytes(out)


# ── ELF inputs ───────────────────────────────────────────────────────────────

@pytest.fixture
def build_dir(tmp_path) -> Path:
    d = tmp_path / "build"
    d.mkdir()
    return d


@pytest.fixture
def arm_elf(build_dir) -> Path:
    """A V5-style ARM executable with .text, .data and .bss."""
    p = build_dir / "auton.elf"
    p.write_bytes(assemble_elf())
    return p


@pytest.fixture
def empty_elf(build_dir) -> Path:
    """An ARM executable with no loadable sections."""
    p = build_dir / "empty"
    p.write_bytes(assemble_elf(loadable=False))
    return p


@pytest.fixture
def x86_elf(build_dir) -> Path:
    """Same layout, wrong machine type."""
    p = build_dir / "host.elf"
    p.write_bytes(assemble_elf(machine=EM_X86_64))
    return p


@pytest.fixture
def not_elf(build_dir) -> Path:
    """A file that is not an ELF binary."""
    p = build_dir / "not_an_elf"
    p.write_bytes(b"This is not an ELF file.\x00\x00\x00")
    return p


# ── Fake capabilities ────────────────────────────────────────────────────────

class FakeTransformer(ImageTransformer):
    """Writes a fixed payload; records calls."""

    def __init__(self, payload: bytes = b"\x01\x02\x03\x04"):
        super().__init__()
        self.payload = payload
        self.calls = []

    def report_size(self, elf_path: str) -> str:
        self.calls.append(("size", elf_path))
        return "text data bss\n"

    def extract(self, elf_path: str, binary_path: str) -> None:
        self.calls.append(("extract", elf_path, binary_path))
        Path(binary_path).write_bytes(self.payload)


class FailingTransformer(ImageTransformer):
    """Extraction tool exits with *exit_code*."""

    def __init__(self, exit_code: int = 1):
        super().__init__()
        self.exit_code = exit_code

    def report_size(self, elf_path: str) -> str:
        return ""

    def extract(self, elf_path: str, binary_path: str) -> None:
        raise ToolInvocationError("arm-none-eabi-objcopy", self.exit_code)


class RecordingUploader(Uploader):
    """Returns *exit_code*; records the descriptor path and its contents."""

    def __init__(self, exit_code: int = 0):
        self.exit_code = exit_code
        self.calls = []

    def upload(self, descriptor_path: Path) -> int:
        descriptor_path = Path(descriptor_path)
        self.calls.append((descriptor_path, json.loads(descriptor_path.read_text())))
        return self.exit_code


@pytest.fixture
def fake_transformer() -> FakeTransformer:
    return FakeTransformer()


@pytest.fixture
def uploader() -> RecordingUploader:
    return RecordingUploader()


# ── Fake tool executables ────────────────────────────────────────────────────

def make_tool(bin_dir: Path, name: str, body: str) -> Path:
    """Write an executable shell script *name* into *bin_dir*."""
    p = bin_dir / name
    p.write_text("#!/bin/sh\n" + textwrap.dedent(body))
    p.chmod(p.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return p


@pytest.fixture
def tool_dir(tmp_path, monkeypatch) -> Path:
    """Empty directory placed first on PATH for fake tools."""
    d = tmp_path / "bin"
    d.mkdir()
    monkeypatch.setenv("PATH", f"{d}{os.pathsep}{os.environ.get('PATH', '')}")
    return d


@pytest.fixture
def fake_binutils(tool_dir) -> Path:
    """arm-none-eabi-size / -objcopy fakes; objcopy copies the input verbatim."""
    make_tool(tool_dir, "arm-none-eabi-size", """\
        echo "   text	   data	    bss	    dec	    hex	filename"
        echo "     16	      8	     12	     36	     24	$1"
    """)
    make_tool(tool_dir, "arm-none-eabi-objcopy", """\
        # invoked as: -O binary <elf> <bin>
        [ "$1" = "-O" ] && [ "$2" = "binary" ] || exit 2
        cp "$3" "$4"
    """)
    return tool_dir


@pytest.fixture
def fake_prosv5(tool_dir, tmp_path, monkeypatch) -> Path:
    """
    prosv5 fake: logs its argv and cwd and copies project.pros to a log dir,
    then exits with $FAKE_UPLOAD_EXIT (default 0).
    """
    log_dir = tmp_path / "upload_log"
    log_dir.mkdir()
    monkeypatch.setenv("FAKE_UPLOAD_LOG", str(log_dir))
    make_tool(tool_dir, "prosv5", """\
        echo "$@" >> "$FAKE_UPLOAD_LOG/argv"
        pwd >> "$FAKE_UPLOAD_LOG/cwd"
        cp project.pros "$FAKE_UPLOAD_LOG/project.pros" 2>/dev/null
        exit ${FAKE_UPLOAD_EXIT:-0}
    """)
    return log_dir


@pytest.fixture
def expected_image() -> bytes:
    """Flat image of ``arm_elf`` as objcopy -O binary lays it out."""
    return EXPECTED_IMAGE


@pytest.fixture
def failing_transformer() -> FailingTransformer:
    return FailingTransformer(exit_code=3)


@pytest.fixture
def failing_uploader() -> RecordingUploader:
    """Uploader that reports no device connected."""
    return RecordingUploader(exit_code=3)


@pytest.fixture
def fake_tool(tool_dir):
    """``fake_tool(name, body)`` writes a script into the PATH tool directory."""
    return functools.partial(make_tool, tool_dir)
