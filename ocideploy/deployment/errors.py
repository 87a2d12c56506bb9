#!/usr/bin/env python3
"""
Deployment exceptions.

Every failure the pipeline can surface has its own type so the orchestrator
can map it to an outcome without parsing messages.
"""


class DeploymentError(Exception):
    """Base class for all deployment failures."""


class ConfigError(DeploymentError):
    """Invalid or incomplete deployment configuration."""


class BuildFailure(DeploymentError):
    """Local image build failed."""


class ExportFailure(DeploymentError):
    """Saving the built image to an archive failed."""


class ChecksumMismatch(DeploymentError):
    """Recomputed SHA-256 does not match the recorded value."""

    def __init__(self, location, expected, actual):
        self.location = location
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch ({location}): expected {expected}, got {actual or '<none>'}"
        )


class CorruptArchive(DeploymentError):
    """Archive cannot be read end to end (truncated or malformed)."""


class TransferError(DeploymentError):
    """File could not be delivered after all attempts."""


class TransportTimeout(DeploymentError):
    """Remote connection went silent or exceeded its time budget."""


class ActivationFailure(DeploymentError):
    """New container did not reach a running state."""


class RollbackFailure(DeploymentError):
    """Restoring the previous container failed; manual intervention needed."""


class ServiceRegistrationError(DeploymentError):
    """systemd unit generation or enablement failed."""


class PruneWarning(DeploymentError):
    """Non-fatal: a single retention deletion failed."""
