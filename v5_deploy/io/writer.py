"""
Writer — serialize the project descriptor to disk.

Output is ``json.dumps(indent=4, sort_keys=True)`` plus a trailing newline,
so identical inputs give byte-identical files.  The file is replaced
wholesale through a sibling temp file; readers never see a partial write.
The result gets the usual umask-derived mode, not mkstemp's 0600.
"""
import json
import logging
import os
import tempfile
from pathlib import Path

from v5_deploy.errors import DescriptorWriteError
from v5_deploy.io.schema import ProjectDescriptor

logger = logging.getLogger(__name__)


def _default_mode() -> int:
    # os.umask can only be read by setting it
    mask = os.umask(0)
    os.umask(mask)
    return 0o666 & ~mask


def render_descriptor(descriptor: ProjectDescriptor) -> str:
    """Return the exact text written for *descriptor*."""
    return json.dumps(descriptor.to_json_dict(), indent=4, sort_keys=True) + "\n"


def write_descriptor(descriptor: ProjectDescriptor, path: Path) -> Path:
    """
    Write *descriptor* to *path*, replacing any existing file.

    Raises
    ------
    DescriptorWriteError
        If serialization fails or the file cannot be written.
    """
    path = Path(path)
    try:
        text = render_descriptor(descriptor)
    except (TypeError, ValueError) as e:
        raise DescriptorWriteError(str(path), f"serialization failed: {e}")

    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
        )
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        os.chmod(tmp_name, _default_mode())
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise DescriptorWriteError(str(path), str(e))

    logger.info("Descriptor written: %s", path)
    return path
