#!/usr/bin/env python3
"""
Retention engine: keep the newest N archives and images on the remote host.

Entries beyond position N are deleted unless they match a protected
reference (the active artifact/image and the rollback point). Deletion is
best-effort; a failed delete is reported as a PruneWarning and skipped.
"""

import re
import shlex
from dataclasses import dataclass, field

from .errors import DeploymentError, PruneWarning
from .models import ARCHIVE_SUFFIX, CHECKSUM_SUFFIX
from .requests import ContainerImagesRequest, ListImagesRequest, RemoveImageRequest
from .utils import print_ok, print_step, print_warn
from ..executors.ssh import RemoteCommandError


def normalize_id(image_id):
    image_id = (image_id or '').strip()
    if image_id.startswith('sha256:'):
        image_id = image_id[len('sha256:'):]
    return image_id


def same_image(a, b):
    """Image IDs match when one is a prefix of the other (short vs full IDs)."""
    a, b = normalize_id(a), normalize_id(b)
    if not a or not b:
        return False
    return a.startswith(b) or b.startswith(a)


def select_for_deletion(entries, keep, is_protected=lambda entry: False):
    """
    Entries are ordered newest first. Returns those beyond position `keep`
    that are not protected; keep == 0 disables pruning.
    """
    if keep <= 0:
        return []
    return [entry for entry in entries[keep:] if not is_protected(entry)]


def parse_image_listing(output, repository):
    """
    Parse `images` output ('<created>\\t<repo:tag>\\t<id>') into image IDs for
    repository, newest first, one entry per image.
    """
    repo_re = re.compile(r'(^|/)' + re.escape(repository) + r':')
    rows = []
    for line in output.splitlines():
        parts = line.split('\t')
        if len(parts) != 3:
            continue
        created, reference, image_id = (p.strip() for p in parts)
        if repo_re.search(reference):
            rows.append((created, normalize_id(image_id)))

    rows.sort(key=lambda row: row[0], reverse=True)
    seen = []
    for _, image_id in rows:
        if image_id not in seen:
            seen.append(image_id)
    return seen


@dataclass
class PruneReport:
    archives: list = field(default_factory=list)
    images: list = field(default_factory=list)
    warnings: list = field(default_factory=list)

    def warn(self, message):
        warning = PruneWarning(message)
        self.warnings.append(warning)
        print_warn(message)


class RetentionEngine:
    """Prunes old archives in the remote app dir and old images for the app repo."""

    def __init__(self, ssh, engine, config):
        self.ssh = ssh
        self.engine = engine
        self.config = config

    def list_archives(self):
        """Archive names in the remote app dir, newest first."""
        app_dir = shlex.quote(self.config.remote_app_dir)
        stdout = self.ssh.ssh_exec_check(
            f"cd {app_dir} && ls -1t -- *{ARCHIVE_SUFFIX} 2>/dev/null || true"
        )
        return [line.strip() for line in stdout.splitlines() if line.strip()]

    def prune_archives(self, protected, report):
        keep = self.config.keep_archives
        if keep == 0:
            print_step("Archive pruning disabled (keep_archives 0).")
            return
        print_step(f"Pruning remote archives (keep newest {keep})...")

        try:
            archives = self.list_archives()
        except (RemoteCommandError, DeploymentError) as e:
            report.warn(f"Could not list remote archives: {e}")
            return

        protected = {name for name in protected if name}
        for name in select_for_deletion(archives, keep, lambda n: n in protected):
            path = f"{self.config.remote_app_dir}/{name}"
            try:
                self.ssh.ssh_exec_check(['rm', '-f', '--', path, path + CHECKSUM_SUFFIX])
            except (RemoteCommandError, DeploymentError) as e:
                report.warn(f"Could not delete archive {name}: {e}")
                continue
            report.archives.append(name)
            print_ok(f"Deleted archive {name}")

    def prune_images(self, protected, report):
        keep = self.config.keep_images
        if keep == 0:
            print_step("Image pruning disabled (keep_images 0).")
            return
        print_step(
            f"Pruning remote images (best-effort, keep newest {keep} for repo "
            f"{self.config.image_repository})..."
        )

        try:
            images = parse_image_listing(
                self.engine.check(ListImagesRequest()), self.config.image_repository
            )
            in_use = [normalize_id(i) for i in
                      self.engine.check(ContainerImagesRequest()).split() if i.strip()]
        except (RemoteCommandError, DeploymentError) as e:
            report.warn(f"Could not list remote images: {e}")
            return

        protected = [p for p in protected if p]

        def is_protected(image_id):
            return any(same_image(image_id, p) for p in protected)

        for image_id in select_for_deletion(images, keep, is_protected):
            if any(same_image(image_id, used) for used in in_use):
                print_ok(f"Keeping image {image_id[:12]} (used by a container)")
                continue
            try:
                self.engine.check(RemoveImageRequest(image_id))
            except (RemoteCommandError, DeploymentError) as e:
                report.warn(f"Could not delete image {image_id[:12]}: {e}")
                continue
            report.images.append(image_id)
            print_ok(f"Deleted image {image_id[:12]}")

    def prune(self, active_artifact=None, active_image=None, rollback_point=None):
        """Run both retention policies. Never raises for individual failures."""
        report = PruneReport()
        point_artifact = rollback_point.artifact_name if rollback_point else None
        point_image = rollback_point.image_id if rollback_point else None

        self.prune_archives([active_artifact, point_artifact], report)
        self.prune_images([active_image, point_image], report)
        return report
