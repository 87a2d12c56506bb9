#!/usr/bin/env python3
"""
Rollback manager.

Captures the image of the running container right before it is torn down and
can recreate the container from that image when the new one fails.
"""

from .errors import DeploymentError, RollbackFailure
from .models import NO_ROLLBACK_POINT, RollbackPoint
from .requests import InspectContainerRequest, RemoveContainerRequest
from .utils import print_ok, print_step
from ..executors.ssh import RemoteCommandError


def parse_inspect(output):
    """Parse '<image id>\\t<artifact label>' into a RollbackPoint."""
    image_id, _, label = output.strip().partition('\t')
    image_id = image_id.strip()
    label = label.strip()
    if not image_id:
        return NO_ROLLBACK_POINT
    if label in ('', '<no value>'):
        label = None
    return RollbackPoint(image_id=image_id, artifact_name=label)


class RollbackManager:
    """One instance per attempt."""

    def __init__(self, engine, activator, config):
        self.engine = engine
        self.activator = activator
        self.config = config
        self.point = None

    def capture(self):
        """Record the active container's image. Must run once, before teardown."""
        if self.point is not None:
            raise RuntimeError("Rollback point already captured for this attempt")

        stdout, _, returncode = self.engine.run(
            InspectContainerRequest(self.config.container_name)
        )
        self.point = parse_inspect(stdout) if returncode == 0 else NO_ROLLBACK_POINT

        if self.point.exists:
            print_ok(f"previous image ID: {self.point.image_id}")
        else:
            print_ok("no existing container found.")
        return self.point

    @property
    def available(self):
        return self.point is not None and self.point.exists

    def restore(self):
        """Recreate the container from the rollback point and verify it runs."""
        if not self.available:
            raise RollbackFailure("No rollback point with an image ID was captured")

        point = self.point
        print_step(f"Attempting rollback to previous image ID: {point.image_id}")
        try:
            self.engine.check(RemoveContainerRequest(self.config.container_name))
            self.activator.start(point.image_id, point.artifact_name)
            running = self.activator.verify_running()
        except (RemoteCommandError, DeploymentError) as e:
            raise RollbackFailure(f"Could not restart previous image: {e}") from e

        if not running:
            raise RollbackFailure(
                f"Restored container {self.config.container_name} did not reach a running state"
            )
        print_ok(f"Rollback container running from {point.image_id}")
        return point
