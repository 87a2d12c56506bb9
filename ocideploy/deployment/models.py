#!/usr/bin/env python3
"""
Deployment data model: artifacts, activation targets, rollback points,
stages, outcomes and the per-attempt context.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

ARCHIVE_SUFFIX = ".image.tar"
CHECKSUM_SUFFIX = ".sha256"


class Stage(Enum):
    PLANNING = "Planning"
    BUILDING = "Building"
    EXPORTING = "Exporting"
    LOCALLY_VERIFYING = "LocallyVerifying"
    TRANSFERRING = "Transferring"
    REMOTELY_VERIFYING = "RemotelyVerifying"
    ACTIVATING = "Activating"
    POST_START_VERIFYING = "PostStartVerifying"
    ROLLING_BACK = "RollingBack"
    REGISTERING_SERVICE = "RegisteringService"
    PRUNING = "Pruning"


class Outcome(Enum):
    SUCCEEDED = ("Succeeded", 0)
    FAILED_NO_ROLLBACK = ("FailedNoRollback", 1)
    FAILED_ROLLED_BACK = ("FailedRolledBack", 2)
    ROLLBACK_FAILED = ("RollbackFailed", 3)
    ABORTED = ("Aborted", 4)

    def __init__(self, label, exit_code):
        self.label = label
        self.exit_code = exit_code


@dataclass(frozen=True)
class Artifact:
    """Exported, checksummed image archive. Never mutated once created."""
    name: str
    local_path: str
    remote_path: str
    checksum: str
    size: int

    @property
    def local_checksum_path(self):
        return self.local_path + CHECKSUM_SUFFIX

    def checksum_line(self):
        """Companion file content, valid input for `sha256sum -c` in the app dir."""
        return f"{self.checksum}  {self.name}\n"


def artifact_name(app, tag, when=None):
    """Unique archive name: <app>_<tag>_<YYYYmmdd_HHMMSS>.image.tar"""
    stamp = (when or datetime.now()).strftime('%Y%m%d_%H%M%S')
    return f"{app}_{tag}_{stamp}{ARCHIVE_SUFFIX}"


@dataclass(frozen=True)
class ActivationTarget:
    reference: str
    image_id: Optional[str] = None


@dataclass(frozen=True)
class RollbackPoint:
    """Image of the container that was active before this attempt."""
    image_id: Optional[str] = None
    artifact_name: Optional[str] = None

    @property
    def exists(self):
        return bool(self.image_id)


NO_ROLLBACK_POINT = RollbackPoint()


@dataclass
class DeploymentResult:
    """Terminal record of one invocation."""
    outcome: Outcome
    reason: Optional[str] = None
    failed_stage: Optional[Stage] = None
    simulated: bool = False

    @property
    def exit_code(self):
        return self.outcome.exit_code


@dataclass
class AttemptContext:
    """State threaded between stages of one attempt; discarded afterwards."""
    simulate: bool = False
    stage: Stage = Stage.PLANNING
    build_file: Optional[str] = None
    artifact: Optional[Artifact] = None
    target: Optional[ActivationTarget] = None
    rollback_point: Optional[RollbackPoint] = None
    rootless: Optional[bool] = None
    service_scope: Optional[str] = None
    torn_down: bool = False
    completed: list = field(default_factory=list)
