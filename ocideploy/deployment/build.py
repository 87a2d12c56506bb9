#!/usr/bin/env python3
"""
Local build engine integration (podman or docker).
Builds the image, exports it as a single archive and records its checksum.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import BuildFailure, ExportFailure
from .integrity import sha256_file
from .models import Artifact
from .utils import print_step
from ..executors.local import LocalCommandError

BUILD_FILES = ('Containerfile', 'Dockerfile')

DEFAULT_CONTAINERFILE = """\
# Default Containerfile generated by ocideploy
FROM registry.access.redhat.com/ubi9/nodejs-20:latest
WORKDIR /app

COPY package*.json ./
RUN npm ci --omit=dev --no-audit --no-fund

COPY . .
ENV NODE_ENV=production
EXPOSE 8080

CMD ["npm", "start"]
"""


@dataclass(frozen=True)
class BuildRequest:
    source_dir: str
    build_file: str
    image_tag: str


@dataclass(frozen=True)
class ExportRequest:
    image_reference: str
    destination: str


def find_build_file(app_dir):
    """Return the name of the build file in app_dir, or None."""
    for name in BUILD_FILES:
        if (Path(app_dir) / name).is_file():
            return name
    return None


def create_default_containerfile(app_dir):
    """Write the default Containerfile when neither build file exists."""
    path = Path(app_dir) / 'Containerfile'
    print_step(f"No Containerfile/Dockerfile found. Creating a default Containerfile at: {path}")
    path.write_text(DEFAULT_CONTAINERFILE)
    print_step("Created default Containerfile. Review CMD/EXPOSE if needed.")
    return path.name


class BuildEngine:
    """Wraps the local podman/docker CLI."""

    def __init__(self, local, engine='podman'):
        self.local = local
        self.engine = engine

    def build_cmd(self, request):
        return [self.engine, 'build', '-f', request.build_file, '-t', request.image_tag, '.']

    def export_cmd(self, request):
        if self.engine == 'podman':
            return [self.engine, 'save', '--format', 'oci-archive',
                    '-o', request.destination, request.image_reference]
        return [self.engine, 'save', '-o', request.destination, request.image_reference]

    def build(self, request):
        """Build the image. Returns the local image reference."""
        try:
            self.local.run_check(self.build_cmd(request), cwd=request.source_dir)
        except LocalCommandError as e:
            raise BuildFailure(f"{self.engine} build failed: {e.stderr.strip()}") from e
        return request.image_tag

    def export(self, request, remote_dir):
        """Save the image to request.destination and return the Artifact."""
        destination = request.destination
        for stale in (destination, destination + '.sha256'):
            if os.path.exists(stale):
                os.remove(stale)

        try:
            self.local.run_check(self.export_cmd(request))
        except LocalCommandError as e:
            raise ExportFailure(f"{self.engine} save failed: {e.stderr.strip()}") from e

        if not os.path.isfile(destination):
            raise ExportFailure(f"{self.engine} save produced no archive at {destination}")

        name = os.path.basename(destination)
        artifact = Artifact(
            name=name,
            local_path=destination,
            remote_path=f"{remote_dir.rstrip('/')}/{name}",
            checksum=sha256_file(destination),
            size=os.path.getsize(destination),
        )
        with open(artifact.local_checksum_path, 'w') as f:
            f.write(artifact.checksum_line())
        return artifact
