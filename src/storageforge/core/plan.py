"""
StorageForge install plan.

An InstallPlan describes one provisioning run completely. It is frozen once
validated and handed by reference to every stage; nothing downstream keeps
its own copy of disks, sizes or names.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from storageforge.core.models import BootMode, FileSystem
from storageforge.platform.linux.parsers import DEFAULT_SWAP_MIB, parse_size_mib


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class SimpleStrategy(_Frozen):
    """One disk, plain partitions."""

    uses_raid: ClassVar[bool] = False
    swap_on_partition: ClassVar[bool] = True

    kind: Literal["simple"] = "simple"


class SimpleLuksStrategy(_Frozen):
    """One disk, root (and optionally home) inside LUKS2 containers."""

    uses_raid: ClassVar[bool] = False
    swap_on_partition: ClassVar[bool] = True

    kind: Literal["simple_luks"] = "simple_luks"
    passphrase: SecretStr
    root_mapper: str = "cryptroot"
    home_mapper: str = "crypthome"

    @field_validator("passphrase")
    @classmethod
    def non_empty_passphrase(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("passphrase must not be empty")
        return v


class RaidLvmStrategy(_Frozen):
    """Mirrored boot array, redundant data array, LVM on top of the data array."""

    uses_raid: ClassVar[bool] = True
    swap_on_partition: ClassVar[bool] = False

    kind: Literal["raid_lvm"] = "raid_lvm"
    volume_group: str = "volgroup0"
    root_lv: str = "lv_root"
    swap_lv: str = "lv_swap"
    home_lv: str = "lv_home"


class RaidLuksStrategy(_Frozen):
    """RAID arrays with encryption on the data array. Not supported."""

    uses_raid: ClassVar[bool] = True
    swap_on_partition: ClassVar[bool] = False

    kind: Literal["raid_luks"] = "raid_luks"


class RaidLvmLuksStrategy(_Frozen):
    """RAID, then encryption, then LVM. Not supported."""

    uses_raid: ClassVar[bool] = True
    swap_on_partition: ClassVar[bool] = False

    kind: Literal["raid_lvm_luks"] = "raid_lvm_luks"


Strategy = Annotated[
    Union[
        SimpleStrategy,
        SimpleLuksStrategy,
        RaidLvmStrategy,
        RaidLuksStrategy,
        RaidLvmLuksStrategy,
    ],
    Field(discriminator="kind"),
]


class SwapRequest(_Frozen):
    enabled: bool = False
    size_mib: int = DEFAULT_SWAP_MIB

    @field_validator("size_mib", mode="before")
    @classmethod
    def parse_human_size(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_size_mib(v)
        return v


class HomeRequest(_Frozen):
    enabled: bool = False


class SizingPolicy(_Frozen):
    """Sizes used when laying out partitions and logical volumes."""

    alignment_mib: int = Field(default=1, ge=1)
    esp_size_mib: int = Field(default=100, ge=32)
    xbootldr_size_mib: int = Field(default=1024, ge=64)
    boot_size_mib: int = Field(default=1024, ge=64)
    simple_root_size_mib: int = Field(default=102400, ge=1024)
    root_free_percent: int = Field(default=90, ge=1, le=99)


class InstallPlan(_Frozen):
    """Immutable description of one provisioning run."""

    disks: tuple[str, ...] = Field(min_length=1)
    boot_mode: BootMode
    strategy: Strategy
    root_filesystem: FileSystem = FileSystem.EXT4
    home_filesystem: FileSystem | None = None
    boot_filesystem: FileSystem = FileSystem.EXT4
    swap: SwapRequest = Field(default_factory=SwapRequest)
    home: HomeRequest = Field(default_factory=HomeRequest)
    sizing: SizingPolicy = Field(default_factory=SizingPolicy)
    target_root: str = "/mnt"

    @field_validator("strategy", mode="before")
    @classmethod
    def strategy_from_name(cls, v: Any) -> Any:
        # "raid+lvm" or "simple-luks" written as a bare name
        if isinstance(v, str):
            kind = v.strip().lower().replace("+", "_").replace("-", "_")
            return {"kind": kind.replace("encryption", "luks")}
        return v

    @field_validator("root_filesystem", "home_filesystem", "boot_filesystem", mode="before")
    @classmethod
    def filesystem_from_name(cls, v: Any) -> Any:
        if isinstance(v, str):
            return FileSystem.from_string(v)
        return v

    @field_validator("target_root")
    @classmethod
    def absolute_target(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("target_root must be an absolute path")
        return v.rstrip("/") or "/"

    @model_validator(mode="after")
    def home_filesystem_only_with_home(self) -> InstallPlan:
        if self.home_filesystem is not None and not self.home.enabled:
            raise ValueError("home_filesystem is set but no home volume is requested")
        return self

    @property
    def uses_raid(self) -> bool:
        return self.strategy.uses_raid

    @property
    def wants_swap(self) -> bool:
        return self.swap.enabled

    @property
    def wants_home(self) -> bool:
        return self.home.enabled

    @property
    def primary_disk(self) -> str:
        return self.disks[0]

    @classmethod
    def load(cls, plan_path: Path) -> InstallPlan:
        """Load a plan from a JSON file."""
        with open(plan_path) as f:
            data = json.load(f)
        return cls.model_validate(data)

    def describe(self) -> dict[str, Any]:
        """Plan summary with secrets masked."""
        return self.model_dump(mode="json")
