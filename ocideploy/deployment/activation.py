#!/usr/bin/env python3
"""
Remote activation: load the archive into podman, replace the running
container and check that the new one comes up.
"""

import re
import time

from .errors import ActivationFailure
from .models import ARCHIVE_SUFFIX, ActivationTarget
from .requests import (
    ImageIdRequest, LoadRequest, RemoveContainerRequest, RootlessProbeRequest,
    StatusRequest, TagRequest, activate_request_for,
)
from ..executors.ssh import RemoteCommandError

LOADED_RE = re.compile(r'^Loaded image(?:\(s\))?:\s*(\S+)', re.MULTILINE)


def parse_loaded_reference(output):
    """First image reference from `podman load` output, or None."""
    match = LOADED_RE.search(output or '')
    if not match:
        return None
    return match.group(1).split(',')[0]


def history_tag(config, artifact):
    """Per-artifact tag that keeps every loaded image addressable for pruning."""
    stem = artifact.name
    if stem.endswith(ARCHIVE_SUFFIX):
        stem = stem[:-len(ARCHIVE_SUFFIX)]
    prefix = f"{config.app}_"
    if stem.startswith(prefix):
        stem = stem[len(prefix):]
    return f"{config.image_repository}:{stem}"


def is_running(status_output, name):
    for line in status_output.splitlines():
        parts = line.split(None, 1)
        if parts and parts[0] == name:
            return True
    return False


class Activator:
    """Container lifecycle operations on the remote host."""

    def __init__(self, engine, config, sleep=time.sleep):
        self.engine = engine
        self.config = config
        self.sleep = sleep

    def load(self, artifact):
        """Load the archive and resolve the ActivationTarget."""
        try:
            output = self.engine.check(LoadRequest(artifact.remote_path))
        except RemoteCommandError as e:
            raise ActivationFailure(f"Image load failed: {e.stderr.strip()}") from e

        reference = parse_loaded_reference(output) or self.config.image
        try:
            image_id = self.engine.check(ImageIdRequest(reference)).strip()
        except RemoteCommandError as e:
            raise ActivationFailure(f"Loaded image {reference} not found on remote") from e

        try:
            self.engine.check(TagRequest(reference, history_tag(self.config, artifact)))
        except RemoteCommandError as e:
            raise ActivationFailure(f"Could not tag {reference}: {e.stderr.strip()}") from e

        return ActivationTarget(reference=reference, image_id=image_id or None)

    def probe_rootless(self):
        """True/False from `podman info`; None when the probe fails."""
        stdout, _, returncode = self.engine.run(RootlessProbeRequest())
        if returncode != 0:
            return None
        value = stdout.strip().lower()
        if value in ('true', 'false'):
            return value == 'true'
        return None

    def teardown(self):
        """Stop and remove the current container (absent is fine)."""
        self.engine.check(RemoveContainerRequest(self.config.container_name))

    def start(self, image, artifact_name=None):
        request = activate_request_for(self.config, image, artifact_name)
        try:
            self.engine.check(request)
        except RemoteCommandError as e:
            raise ActivationFailure(f"Container start failed: {e.stderr.strip()}") from e

    def verify_running(self):
        """Poll until the container shows up as running or the window closes."""
        name = self.config.container_name
        checks = max(1, self.config.verify_checks)
        for check in range(1, checks + 1):
            stdout, _, returncode = self.engine.run(StatusRequest(name))
            if returncode == 0 and is_running(stdout, name):
                return True
            if check < checks:
                self.sleep(self.config.verify_interval)
        return False
