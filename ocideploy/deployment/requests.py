#!/usr/bin/env python3
"""
Typed requests for remote container-engine operations.

Each request renders to an argv list; RemoteExecutor quotes it with shlex at
the ssh boundary, so no caller composes shell strings by hand.
"""

from dataclasses import dataclass
from typing import Optional

ARTIFACT_LABEL = "io.ocideploy.artifact"


@dataclass(frozen=True)
class LoadRequest:
    archive_path: str

    def argv(self, engine):
        return [engine, 'load', '-i', self.archive_path]


@dataclass(frozen=True)
class TagRequest:
    source: str
    target: str

    def argv(self, engine):
        return [engine, 'tag', self.source, self.target]


@dataclass(frozen=True)
class ImageIdRequest:
    reference: str

    def argv(self, engine):
        return [engine, 'image', 'inspect', '--format', '{{.Id}}', self.reference]


@dataclass(frozen=True)
class ListImagesRequest:

    def argv(self, engine):
        return [
            engine, 'images', '--no-trunc',
            '--format', '{{.CreatedAt}}\t{{.Repository}}:{{.Tag}}\t{{.ID}}',
        ]


@dataclass(frozen=True)
class ContainerImagesRequest:
    """Image IDs used by any container, running or not."""

    def argv(self, engine):
        return [engine, 'ps', '-a', '--no-trunc', '--format', '{{.ImageID}}']


@dataclass(frozen=True)
class InspectContainerRequest:
    name: str

    def argv(self, engine):
        fmt = '{{.Image}}\t{{index .Config.Labels "%s"}}' % ARTIFACT_LABEL
        return [engine, 'container', 'inspect', '--format', fmt, self.name]


@dataclass(frozen=True)
class RemoveContainerRequest:
    name: str

    def argv(self, engine):
        return [engine, 'rm', '-f', '--ignore', self.name]


@dataclass(frozen=True)
class ActivateRequest:
    unit_name: str
    image: str
    host_port: int
    container_port: int
    restart_policy: str
    env_file: Optional[str] = None
    artifact_name: Optional[str] = None

    def argv(self, engine):
        argv = [
            engine, 'run', '-d',
            '--name', self.unit_name,
            '-p', f"{self.host_port}:{self.container_port}",
            f"--restart={self.restart_policy}",
        ]
        if self.env_file:
            argv += ['--env-file', self.env_file]
        if self.artifact_name:
            argv += ['--label', f"{ARTIFACT_LABEL}={self.artifact_name}"]
        argv.append(self.image)
        return argv


@dataclass(frozen=True)
class StatusRequest:
    name: str

    def argv(self, engine):
        return [
            engine, 'ps', '--filter', f"name=^{self.name}$",
            '--format', '{{.Names}} {{.Status}}',
        ]


@dataclass(frozen=True)
class RootlessProbeRequest:

    def argv(self, engine):
        return [engine, 'info', '--format', '{{.Host.Security.Rootless}}']


@dataclass(frozen=True)
class RemoveImageRequest:
    image_id: str

    def argv(self, engine):
        return [engine, 'rmi', '-f', self.image_id]


def activate_request_for(config, image, artifact_name=None):
    """Build the run request for config; used for both activation and restore."""
    return ActivateRequest(
        unit_name=config.container_name,
        image=image,
        host_port=config.port.host,
        container_port=config.port.container,
        restart_policy=config.restart_policy,
        env_file=config.env_file,
        artifact_name=artifact_name,
    )


class RemoteEngine:
    """Sends typed requests to the container engine on the remote host."""

    def __init__(self, ssh, engine='podman'):
        self.ssh = ssh
        self.engine = engine

    def run(self, request):
        """Returns (stdout, stderr, returncode)."""
        return self.ssh.ssh_exec(request.argv(self.engine))

    def check(self, request):
        """Returns stdout; raises RemoteCommandError on non-zero exit."""
        return self.ssh.ssh_exec_check(request.argv(self.engine))
