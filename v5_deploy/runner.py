"""
Deploy runner — top-level orchestration: ELF → binary → project.pros → upload.

The pipeline is a single linear pass through the stages below; nothing is
retried and nothing resumes.  Any failure ends the run and its exit code
becomes the process exit code.

    START → TRANSFORMING → TRANSFORMED → SYNTHESIZING → UPLOADING → SUCCEEDED
              │                              │              │
              └→ TRANSFORM_FAILED            └→ DESCRIPTOR_FAILED
                                                            └→ UPLOAD_FAILED

``run_pipeline`` takes its transformer and uploader as arguments so tests
can drive it with fakes; ``main`` wires the real ones from Settings.
"""
import argparse
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum, unique
from pathlib import Path
from typing import List, Optional

from v5_deploy import PACKAGE_NAME, __version__
from v5_deploy.config import Settings
from v5_deploy.core.artifact import BuildArtifact
from v5_deploy.core.transformer import (
    ImageTransformer,
    TransformResult,
    ensure_readable,
    make_transformer,
)
from v5_deploy.core.uploader import ProsUploader, Uploader
from v5_deploy.errors import (
    DeployError,
    DescriptorWriteError,
    InputNotFound,
    UploadError,
)
from v5_deploy.io.schema import build_descriptor
from v5_deploy.io.writer import write_descriptor
from v5_deploy.policy.profile import Profile

logger = logging.getLogger(__name__)


@unique
class PipelineState(str, Enum):
    START = "START"
    INPUT_NOT_FOUND = "INPUT_NOT_FOUND"
    TRANSFORMING = "TRANSFORMING"
    TRANSFORMED = "TRANSFORMED"
    TRANSFORM_FAILED = "TRANSFORM_FAILED"
    SYNTHESIZING = "SYNTHESIZING"
    DESCRIPTOR_FAILED = "DESCRIPTOR_FAILED"
    UPLOADING = "UPLOADING"
    SUCCEEDED = "SUCCEEDED"
    UPLOAD_FAILED = "UPLOAD_FAILED"


TERMINAL_STATES = frozenset({
    PipelineState.INPUT_NOT_FOUND,
    PipelineState.TRANSFORM_FAILED,
    PipelineState.DESCRIPTOR_FAILED,
    PipelineState.SUCCEEDED,
    PipelineState.UPLOAD_FAILED,
})


@dataclass
class PipelineResult:
    """Outcome of a successful run."""

    state: PipelineState
    exit_code: int
    artifact: BuildArtifact
    descriptor_path: Path
    transform: TransformResult
    history: List[PipelineState] = field(default_factory=list)


class _Tracker:
    """Records the stage sequence; a stage is never entered twice."""

    def __init__(self):
        self.state = PipelineState.START
        self.history: List[PipelineState] = [PipelineState.START]

    def enter(self, state: PipelineState) -> None:
        if self.state in TERMINAL_STATES or state in self.history:
            raise RuntimeError(f"illegal transition {self.state.value} → {state.value}")
        logger.debug("%s → %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def fail(self, state: PipelineState, error: DeployError) -> DeployError:
        self.enter(state)
        error.state = state.value
        return error


def run_pipeline(
    elf_path: str,
    transformer: ImageTransformer,
    uploader: Uploader,
    descriptor_path: Optional[Path] = None,
    profile: Optional[Profile] = None,
) -> PipelineResult:
    """
    Run one build-and-deploy pass for *elf_path*.

    Parameters
    ----------
    elf_path : str
        Compiled executable to deploy.
    transformer : ImageTransformer
        Produces ``<elf_path>.bin`` and the size report.
    uploader : Uploader
        Consumes the descriptor and flashes the device.
    descriptor_path : Path, optional
        Where to write the descriptor.  Defaults to the profile's
        descriptor filename in the current working directory.
    profile : Profile, optional
        Target constants.  Defaults to Profile.v5().

    Raises
    ------
    InputNotFound, ToolInvocationError, DescriptorWriteError, UploadError
        On the first failing stage; later stages never run.  The error's
        ``state`` names the terminal state reached.
    """
    if profile is None:
        profile = Profile.v5()
    if descriptor_path is None:
        descriptor_path = Path(profile.descriptor_filename)
    descriptor_path = Path(descriptor_path)

    tracker = _Tracker()
    artifact = BuildArtifact.from_elf_path(elf_path, profile.binary_suffix)

    # ── Step 0: input must exist before any side effect ──────────────
    try:
        ensure_readable(artifact.elf_path)
    except InputNotFound as e:
        raise tracker.fail(PipelineState.INPUT_NOT_FOUND, e)

    # ── Step 1: transform ────────────────────────────────────────────
    tracker.enter(PipelineState.TRANSFORMING)
    logger.info("Transforming %s → %s", artifact.elf_path, artifact.binary_path)
    try:
        transform = transformer.transform(artifact)
    except DeployError as e:
        raise tracker.fail(PipelineState.TRANSFORM_FAILED, e)
    tracker.enter(PipelineState.TRANSFORMED)

    # ── Step 2: synthesize descriptor ────────────────────────────────
    # the uploader runs in the descriptor's directory and resolves
    # metadata.output from there
    tracker.enter(PipelineState.SYNTHESIZING)
    try:
        descriptor = build_descriptor(
            artifact, profile, output=artifact.binary_path_from(descriptor_path.parent)
        )
    except ValueError as e:
        # pydantic.ValidationError is a ValueError
        raise tracker.fail(
            PipelineState.DESCRIPTOR_FAILED,
            DescriptorWriteError(str(descriptor_path), str(e)),
        ) from e
    try:
        write_descriptor(descriptor, descriptor_path)
    except DescriptorWriteError as e:
        raise tracker.fail(PipelineState.DESCRIPTOR_FAILED, e)

    # ── Step 3: upload ───────────────────────────────────────────────
    tracker.enter(PipelineState.UPLOADING)
    try:
        exit_code = uploader.upload(descriptor_path)
    except DeployError as e:
        raise tracker.fail(PipelineState.UPLOAD_FAILED, e)
    if exit_code != 0:
        raise tracker.fail(PipelineState.UPLOAD_FAILED, UploadError(exit_code))

    tracker.enter(PipelineState.SUCCEEDED)
    logger.info("Deployed %s", artifact.name)
    return PipelineResult(
        state=tracker.state,
        exit_code=0,
        artifact=artifact,
        descriptor_path=descriptor_path,
        transform=transform,
        history=list(tracker.history),
    )


# ── CLI ──────────────────────────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point: ``v5-deploy <elf_path>``."""
    parser = argparse.ArgumentParser(
        prog="v5-deploy",
        description=f"{PACKAGE_NAME} {__version__} — convert a V5 ELF to a binary and upload it",
    )
    parser.add_argument(
        "elf_path",
        help="Path to the compiled executable",
    )
    args = parser.parse_args(argv)

    settings = Settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    profile = settings.profile()
    transformer = make_transformer(
        settings.transformer, profile=profile, timeout=settings.tool_timeout
    )
    uploader = ProsUploader(profile=profile, timeout=settings.tool_timeout)

    try:
        run_pipeline(
            args.elf_path,
            transformer=transformer,
            uploader=uploader,
            descriptor_path=settings.descriptor_path,
            profile=profile,
        )
    except DeployError as e:
        logger.error("%s", e)
        return e.exit_code
    return 0


if __name__ == "__main__":
    sys.exit(main())
