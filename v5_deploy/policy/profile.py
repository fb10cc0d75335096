"""
Profile — target descriptor and fixed deployment constants.

Everything the pipeline hard-codes about the V5 target lives here, so core
and io modules carry no opinions of their own.  The jsonpickle class paths,
origin tag and kernel version are what the PROS uploader expects to find in
project.pros and are kept verbatim.
"""
from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True)
class Profile:
    """Describes one deployable target and how its artifacts are labelled."""

    # Identity
    profile_id: str
    target: str

    # Descriptor constants
    template_name: str
    origin: str
    kernel_version: str
    project_class: str
    template_class: str

    # File conventions
    descriptor_filename: str = "project.pros"
    binary_suffix: str = ".bin"

    # Toolchain / uploader
    expected_machine: str = "EM_ARM"
    toolchain_prefix: str = "arm-none-eabi-"
    uploader_command: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def size_tool(self) -> str:
        return f"{self.toolchain_prefix}size"

    @property
    def objcopy_tool(self) -> str:
        return f"{self.toolchain_prefix}objcopy"

    @classmethod
    def v5(cls) -> "Profile":
        """The locked V5 profile: arm-none-eabi toolchain, PROS 3.3.1 kernel."""
        return cls(
            profile_id="vex-v5-pros-3.3.1",
            target="v5",
            template_name="kernel",
            origin="pros-mainline",
            kernel_version="3.3.1",
            project_class="pros.conductor.project.Project",
            template_class="pros.conductor.templates.local_template.LocalTemplate",
            descriptor_filename="project.pros",
            binary_suffix=".bin",
            expected_machine="EM_ARM",
            toolchain_prefix="arm-none-eabi-",
            uploader_command=("prosv5", "ut"),
        )
