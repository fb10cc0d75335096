"""
Schema — Pydantic models for the project.pros descriptor.

The uploader deserializes project.pros with jsonpickle, so the serialized
form is a jsonpickle envelope:

    {"py/object": <project class>, "py/state": {...project fields...}}

and each template carries its own "py/object" key.  Field aliases map those
keys onto plain Python attributes; always dump with ``by_alias=True``.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from v5_deploy.core.artifact import BuildArtifact
from v5_deploy.policy.profile import Profile


# ── Template entry ───────────────────────────────────────────────────────────

class TemplateMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    origin: str
    output: str              # path of the flat binary to flash


class TemplateEntry(BaseModel):
    """The single local "kernel" template pointing at the built binary."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    py_object: str = Field(alias="py/object")
    location: str = ""
    metadata: TemplateMetadata
    name: str
    supported_kernels: Optional[str] = None
    system_files: List[str] = Field(default_factory=list)
    target: str
    user_files: List[str] = Field(default_factory=list)
    version: str


# ── Project ──────────────────────────────────────────────────────────────────

class ProjectState(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_name: str
    target: str
    templates: Dict[str, TemplateEntry]
    upload_options: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _exactly_one_kernel(self) -> "ProjectState":
        if list(self.templates) != ["kernel"]:
            raise ValueError(
                f"descriptor must hold exactly one 'kernel' template, got {sorted(self.templates)}"
            )
        return self


class ProjectDescriptor(BaseModel):
    """Top-level jsonpickle envelope written to project.pros."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    py_object: str = Field(alias="py/object")
    state: ProjectState = Field(alias="py/state")

    @property
    def kernel(self) -> TemplateEntry:
        return self.state.templates["kernel"]

    def to_json_dict(self) -> dict:
        """Serialized form, with jsonpickle keys and explicit nulls."""
        return self.model_dump(mode="json", by_alias=True)


def build_descriptor(
    artifact: BuildArtifact,
    profile: Optional[Profile] = None,
    output: Optional[str] = None,
) -> ProjectDescriptor:
    """
    Populate a descriptor for *artifact* from the profile's fixed constants.

    *output* overrides ``metadata.output`` (default: ``artifact.binary_path``).
    """
    if profile is None:
        profile = Profile.v5()

    kernel = TemplateEntry(
        py_object=profile.template_class,
        location="",
        metadata=TemplateMetadata(origin=profile.origin, output=output or artifact.binary_path),
        name=profile.template_name,
        supported_kernels=None,
        system_files=[],
        target=profile.target,
        user_files=[],
        version=profile.kernel_version,
    )
    return ProjectDescriptor(
        py_object=profile.project_class,
        state=ProjectState(
            project_name=artifact.name,
            target=profile.target,
            templates={profile.template_name: kernel},
            upload_options={},
        ),
    )
