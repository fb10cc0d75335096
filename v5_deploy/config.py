"""
Pipeline configuration
"""
import dataclasses
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from v5_deploy.policy.profile import Profile


class Settings(BaseSettings):
    """Pipeline settings, read from V5_DEPLOY_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="V5_DEPLOY_",
        env_file=".env",
        extra="ignore",
    )

    # Toolchain
    toolchain_prefix: str = "arm-none-eabi-"
    transformer: Literal["objcopy", "elftools"] = "objcopy"
    tool_timeout: Optional[float] = None  # seconds; None blocks indefinitely

    # Uploader
    uploader_command: List[str] = Field(default=["prosv5", "ut"], min_length=1)
    descriptor_path: Path = Path("project.pros")

    # Logging
    log_level: str = "INFO"

    def profile(self, base: Optional[Profile] = None) -> Profile:
        """Return *base* (default Profile.v5()) with toolchain overrides applied."""
        if base is None:
            base = Profile.v5()
        return dataclasses.replace(
            base,
            toolchain_prefix=self.toolchain_prefix,
            uploader_command=tuple(self.uploader_command),
        )
