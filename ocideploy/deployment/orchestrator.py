#!/usr/bin/env python3
"""
Deployment Orchestrator
Builds an image locally, ships it to a remote host and activates it under
podman, rolling back to the previous image when the new container fails.

Stage order for one attempt:
  Building -> Exporting -> LocallyVerifying -> Transferring ->
  RemotelyVerifying -> Activating -> PostStartVerifying
followed, on success, by systemd registration and pruning.
"""

import argparse
import shlex
import sys
import time
from datetime import datetime
from pathlib import Path

from .activation import Activator
from .build import (
    BuildEngine, BuildRequest, ExportRequest,
    create_default_containerfile, find_build_file,
)
from .errors import (
    ActivationFailure, ConfigError, DeploymentError,
    RollbackFailure, ServiceRegistrationError,
)
from .integrity import IntegrityVerifier
from .models import (
    NO_ROLLBACK_POINT, ActivationTarget, Artifact, AttemptContext,
    DeploymentResult, Outcome, Stage, artifact_name,
)
from .requests import (
    InspectContainerRequest, LoadRequest, RemoteEngine, RemoveContainerRequest,
    RootlessProbeRequest, activate_request_for,
)
from .retention import RetentionEngine
from .rollback import RollbackManager, parse_inspect
from .systemd import ServiceSupervisor, resolve_scope
from .utils import (
    confirm, logs_hint, print_dry_run, print_failed, print_kv,
    print_ok, print_phase, print_step,
)
from ..config.settings import load_config
from ..executors import LocalCommandError, RemoteCommandError, get_executors
from ..transfer import RetryPolicy, Transfer, get_transfer_backend

STAGE_ERRORS = (DeploymentError, RemoteCommandError, LocalCommandError)


class Pipeline:
    """Pipeline controller for a single deployment attempt."""

    def __init__(self, config, local=None, ssh=None, sleep=time.sleep,
                 confirm_fn=confirm, clock=datetime.now):
        self.config = config
        default_local, default_ssh = get_executors(config)
        self.local = local or default_local
        self.ssh = ssh or default_ssh
        self.sleep = sleep
        self.confirm_fn = confirm_fn
        self.clock = clock

        self.engine = RemoteEngine(self.ssh, config.remote_engine)
        self.builder = BuildEngine(self.local, config.engine)
        self.verifier = IntegrityVerifier(self.ssh)
        self.activator = Activator(self.engine, config, sleep=sleep)
        self.rollback = None
        self.retention = RetentionEngine(self.ssh, self.engine, config)
        self.supervisor = ServiceSupervisor(self.ssh, config)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def preflight(self):
        """Local checks that must pass before anything is planned."""
        if not self.config.local_app_dir.is_dir():
            raise ConfigError(f"Local app directory not found: {self.config.local_app_dir}")
        if not self.local.which(self.config.engine):
            raise ConfigError(
                f"Local engine '{self.config.engine}' not found. "
                f"Install podman or docker on your local machine."
            )

    def print_plan(self):
        c = self.config
        rsync_available = 'yes' if self.local.which('rsync') else 'no'
        print_step("Deployment plan")
        print_kv("Local app dir:", c.local_app_dir)
        print_kv("Local engine:", c.engine)
        print_kv("Image tag:", c.image)
        print_kv("Local archive dir:", c.local_archive_dir)
        print_kv("Remote host:", c.target)
        print_kv("Remote app dir:", c.remote_app_dir)
        print_kv("Port mapping:", f"{c.port.host} -> {c.port.container}")
        print_kv("Restart policy:", c.restart_policy)
        print_kv("Env file:", c.env_file or '<none>')
        print_kv("Systemd:", c.use_systemd)
        print_kv("Systemd scope:", c.systemd_scope)
        print_kv("Enable linger:", c.enable_linger)
        print_kv("Rollback:", c.rollback)
        print_kv("Keep archives:", c.keep_archives)
        print_kv("Keep images:", c.keep_images)
        print_kv("Transfer:", f"{c.transfer} (rsync avail: {rsync_available})")
        print_kv("SSH keepalive:", f"{c.ssh_keepalive}s x{c.ssh_keepalive_count} (port {c.ssh_port})")
        print_kv("Retries:", c.retries)
        print_kv("Dry-run:", c.dry_run)
        print()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _remote_dry_run(self, command):
        if isinstance(command, (list, tuple)):
            command = shlex.join(command)
        print_dry_run(f"ssh {self.config.target} {command}")

    def stage_build(self, ctx):
        app_dir = self.config.local_app_dir
        build_file = find_build_file(app_dir)
        if build_file is None:
            if ctx.simulate:
                print_dry_run("create default Containerfile (UBI9 nodejs-20 base, EXPOSE 8080, CMD npm start)")
                build_file = 'Containerfile'
            else:
                build_file = create_default_containerfile(app_dir)
        ctx.build_file = build_file

        request = BuildRequest(str(app_dir), build_file, self.config.image)
        if ctx.simulate:
            print_dry_run(shlex.join(self.builder.build_cmd(request)))
            return f"would build {self.config.image} from {build_file}"
        self.builder.build(request)
        return f"built {self.config.image} from {build_file}"

    def stage_export(self, ctx):
        name = artifact_name(self.config.app, self.config.tag, self.clock())
        destination = str(Path(self.config.local_archive_dir) / name)
        request = ExportRequest(self.config.image, destination)

        if ctx.simulate:
            print_dry_run(shlex.join(self.builder.export_cmd(request)))
            ctx.artifact = Artifact(
                name=name, local_path=destination,
                remote_path=f"{self.config.remote_app_dir}/{name}",
                checksum='', size=0,
            )
            return f"would export to {destination}"

        ctx.artifact = self.builder.export(request, self.config.remote_app_dir)
        return f"exported {ctx.artifact.name} ({ctx.artifact.size} bytes)"

    def stage_verify_local(self, ctx):
        artifact = ctx.artifact
        if ctx.simulate:
            print_dry_run(f"sha256sum {artifact.local_path} > {artifact.local_checksum_path}")
            print_dry_run(f"tar -tf {artifact.local_path}")
            return "would verify local archive"
        members = self.verifier.verify_local(artifact)
        return f"sha256: {artifact.checksum} ({members} entries readable)"

    def stage_transfer(self, ctx):
        artifact = ctx.artifact
        remote_dir = self.config.remote_app_dir
        if ctx.simulate:
            self._remote_dry_run(['mkdir', '-p', remote_dir])
            for path in (artifact.local_path, artifact.local_checksum_path):
                print_dry_run(f"transfer {path} -> {self.config.target}:{remote_dir}/")
            return "would transfer archive + checksum"

        backend = get_transfer_backend(self.config, self.ssh, self.local)
        transfer = Transfer(
            self.ssh, backend,
            RetryPolicy(self.config.retries, self.config.retry_delay, sleep=self.sleep),
        )
        transfer.prepare(remote_dir)
        transfer.transfer(artifact.local_path, remote_dir, self.config.retries)
        transfer.transfer(artifact.local_checksum_path, remote_dir, self.config.retries)
        return f"archive + checksum delivered via {backend.name}"

    def stage_verify_remote(self, ctx):
        artifact = ctx.artifact
        if ctx.simulate:
            self._remote_dry_run(['sha256sum', artifact.remote_path])
            self._remote_dry_run(f"tar -tf {shlex.quote(artifact.remote_path)} >/dev/null")
            return "would verify remote archive"
        self.verifier.verify_remote(artifact)
        return "remote checksum matches and archive is readable"

    def stage_activate(self, ctx):
        config = self.config
        engine = config.remote_engine
        if ctx.simulate:
            self._remote_dry_run(LoadRequest(ctx.artifact.remote_path).argv(engine))
            self._remote_dry_run(RootlessProbeRequest().argv(engine))
            self._remote_dry_run(InspectContainerRequest(config.container_name).argv(engine))
            self._remote_dry_run(RemoveContainerRequest(config.container_name).argv(engine))
            ctx.target = ActivationTarget(reference=config.image)
            ctx.rootless = True
            ctx.rollback_point = NO_ROLLBACK_POINT
            ctx.service_scope = resolve_scope(config.systemd_scope, ctx.rootless)
            request = activate_request_for(config, ctx.target.reference, ctx.artifact.name)
            self._remote_dry_run(request.argv(engine))
            return f"would start {config.container_name} from {config.image}"

        print_step("Loading image into remote podman...")
        ctx.target = self.activator.load(ctx.artifact)
        print_ok(f"image {ctx.target.reference} ({ctx.target.image_id})")

        ctx.rootless = self.activator.probe_rootless()
        ctx.service_scope = resolve_scope(config.systemd_scope, ctx.rootless)
        rootless_label = 'unknown' if ctx.rootless is None else str(ctx.rootless).lower()
        print_step(f"Remote podman rootless: {rootless_label}")
        print_step(f"Effective systemd scope: {ctx.service_scope}")

        print_step("Capturing previous container image (for rollback, if enabled)...")
        ctx.rollback_point = self.rollback.capture()

        print_step(f"Stopping/removing existing container (if any): {config.container_name}")
        ctx.torn_down = True
        self.activator.teardown()

        print_step("Starting container...")
        print(f"    {shlex.join(activate_request_for(config, ctx.target.reference, ctx.artifact.name).argv(engine))}")
        self.activator.start(ctx.target.reference, ctx.artifact.name)
        return f"started {config.container_name}"

    def stage_post_start(self, ctx):
        if ctx.simulate:
            self._remote_dry_run(
                f"{self.config.remote_engine} ps --filter name=^{self.config.container_name}$"
            )
            return "would verify container is running"
        if not self.activator.verify_running():
            raise ActivationFailure(
                f"Container {self.config.container_name} did not reach a running state "
                f"within {self.config.verify_checks} checks"
            )
        return f"{self.config.container_name} is running"

    STAGES = (
        (Stage.BUILDING, "Building image locally...", 'stage_build'),
        (Stage.EXPORTING, "Exporting image archive...", 'stage_export'),
        (Stage.LOCALLY_VERIFYING, "Local integrity checks...", 'stage_verify_local'),
        (Stage.TRANSFERRING, "Transferring archive + checksum to remote...", 'stage_transfer'),
        (Stage.REMOTELY_VERIFYING, "Verifying checksum and archive on remote...", 'stage_verify_remote'),
        (Stage.ACTIVATING, "Activating new image...", 'stage_activate'),
        (Stage.POST_START_VERIFYING, "Verifying container is running...", 'stage_post_start'),
    )

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    def handle_failure(self, ctx, stage, error):
        print_failed(f"{stage.value}: {error}")
        if ctx.completed:
            print(f"Completed stages: {', '.join(s.value for s in ctx.completed)}")

        if not ctx.torn_down:
            print("No remote mutation needed undoing; the previous deployment was left untouched.")
            return DeploymentResult(Outcome.FAILED_NO_ROLLBACK, str(error), stage)

        print("ERROR: New container did not start cleanly.")
        if not (self.config.rollback and self.rollback.available):
            print("No rollback performed (either rollback not enabled or no prior "
                  "container image available); previous state unknown.")
            print(f"Check logs:\n  {logs_hint(self.config)}")
            return DeploymentResult(Outcome.FAILED_NO_ROLLBACK, str(error), stage)

        ctx.stage = Stage.ROLLING_BACK
        try:
            self.rollback.restore()
        except RollbackFailure as e:
            print_failed(f"Rollback failed: {e}")
            print("MANUAL INTERVENTION REQUIRED: no container is known to be running.")
            print(f"Check logs:\n  {logs_hint(self.config)}")
            return DeploymentResult(Outcome.ROLLBACK_FAILED, f"{error}; rollback: {e}", stage)

        print("Rollback attempted and the previous image is running again. Check logs:")
        print(f"  {logs_hint(self.config)}")
        return DeploymentResult(Outcome.FAILED_ROLLED_BACK, str(error), stage)

    # ------------------------------------------------------------------
    # After success
    # ------------------------------------------------------------------

    def register_service(self, ctx):
        if not self.config.use_systemd:
            print_step("Skipping systemd setup (use_systemd disabled).")
            return
        ctx.stage = Stage.REGISTERING_SERVICE
        if ctx.simulate:
            print_dry_run(f"register {self.config.unit_name} ({ctx.service_scope} scope)")
            return
        self.supervisor.register(self.config.unit_name, ctx.service_scope)

    def prune(self, ctx):
        ctx.stage = Stage.PRUNING
        if ctx.simulate:
            print_dry_run(
                f"prune {self.config.remote_app_dir} (keep {self.config.keep_archives} archives) "
                f"and {self.config.image_repository} (keep {self.config.keep_images} images)"
            )
            return None
        return self.retention.prune(
            active_artifact=ctx.artifact.name,
            active_image=ctx.target.image_id,
            rollback_point=ctx.rollback_point,
        )

    def print_summary(self, ctx):
        c = self.config
        print()
        print_step("DONE")
        print(f"Remote app dir:  {c.remote_app_dir}")
        print(f"Build file:      {ctx.build_file}")
        print(f"Archive:         {ctx.artifact.name}")
        print(f"Image ref:       {ctx.target.reference}")
        print(f"Container:       {c.container_name}")
        print(f"Port mapping:    {c.port.host} -> {c.port.container}")
        rootless = 'unknown' if ctx.rootless is None else str(ctx.rootless).lower()
        print(f"Remote rootless: {rootless}")
        print(f"Systemd scope:   {ctx.service_scope}")
        if c.env_file:
            print(f"Env file:        {c.env_file}")
        if ctx.simulate:
            print("NOTE: dry-run mode enabled; no changes were made.")

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self):
        """Run one attempt and return its DeploymentResult."""
        ctx = AttemptContext(simulate=self.config.dry_run)
        # rollback point is scoped to one attempt
        self.rollback = RollbackManager(self.engine, self.activator, self.config)
        print_phase(f"DEPLOYMENT ({self.config.app} -> {self.config.target})")

        try:
            self.preflight()
        except ConfigError as e:
            print(f"ERROR: {e}")
            return DeploymentResult(Outcome.ABORTED, str(e), Stage.PLANNING, ctx.simulate)

        self.print_plan()
        if not (ctx.simulate or self.config.assume_yes):
            if not self.confirm_fn():
                print("Aborted.")
                return DeploymentResult(Outcome.ABORTED, "operator declined", Stage.PLANNING)

        for stage, message, method in self.STAGES:
            ctx.stage = stage
            print_step(message)
            try:
                detail = getattr(self, method)(ctx)
            except STAGE_ERRORS as e:
                return self.handle_failure(ctx, stage, e)
            print_ok(detail)
            ctx.completed.append(stage)

        try:
            self.register_service(ctx)
        except ServiceRegistrationError as e:
            print_failed(str(e))
            print(f"Container {self.config.container_name} is running but not supervised by systemd.")
            return DeploymentResult(Outcome.FAILED_NO_ROLLBACK, str(e), Stage.REGISTERING_SERVICE)

        self.prune(ctx)
        self.print_summary(ctx)
        return DeploymentResult(Outcome.SUCCEEDED, simulated=ctx.simulate)


def prune_command(config):
    """Run retention only, protecting the currently running container's image."""
    _, ssh = get_executors(config)
    engine = RemoteEngine(ssh, config.remote_engine)
    print_phase(f"PRUNE ({config.app} on {config.target})")

    stdout, _, returncode = engine.run(InspectContainerRequest(config.container_name))
    current = parse_inspect(stdout) if returncode == 0 else NO_ROLLBACK_POINT
    if config.dry_run:
        print_dry_run(f"prune keeping {current.artifact_name or '<none>'} / {current.image_id or '<none>'}")
        return Outcome.SUCCEEDED

    report = RetentionEngine(ssh, engine, config).prune(
        active_artifact=current.artifact_name, active_image=current.image_id,
    )
    print(f"Deleted {len(report.archives)} archives, {len(report.images)} images, "
          f"{len(report.warnings)} warnings")
    return Outcome.SUCCEEDED


def build_parser():
    parser = argparse.ArgumentParser(
        prog='ocideploy',
        description='Build, ship and activate a container image on a remote (air-gapped) host',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ocideploy deploy --app Team-Nexus --host dblvlecdd0000a --use-systemd --enable-linger --yes
  ocideploy deploy --app api --host rhel9 --systemd-scope system --use-systemd
  ocideploy plan --config config/deploy-config.yaml
  ocideploy prune --app api --host rhel9 --keep-images 2
        """
    )
    parser.add_argument('command', nargs='?', default='deploy',
                        choices=['deploy', 'plan', 'validate', 'prune'], help='Command (default: deploy)')
    parser.add_argument('--config', help='YAML config file (default: config/deploy-config.yaml if present)')

    parser.add_argument('--app', help='App directory name under --projects-dir')
    parser.add_argument('--host', help='Target host (DNS or IP)')
    parser.add_argument('--remote-user', help='SSH user on target')
    parser.add_argument('--projects-dir', help='Local base dir (default: ~/projects)')
    parser.add_argument('--remote-dir', help='Remote base dir (default: /home/<remote-user>/node)')
    parser.add_argument('--port', help='Port mapping host:container (default: 8080:8080)')
    parser.add_argument('--env-file', help='Remote env file for podman run')
    parser.add_argument('--engine', choices=['podman', 'docker'], help='Local build engine')
    parser.add_argument('--tag', help='Image tag (default: latest)')
    parser.add_argument('--restart-policy', help='Container restart policy (default: always)')

    parser.add_argument('--use-systemd', action='store_true', default=None)
    parser.add_argument('--systemd-scope', choices=['auto', 'user', 'system'])
    parser.add_argument('--enable-linger', action='store_true', default=None)

    parser.add_argument('--rollback', action='store_true', default=None,
                        help='Restore the previous image if the new container fails')
    parser.add_argument('--keep-archives', type=int, help='Keep newest N archives (0 disables)')
    parser.add_argument('--keep-images', type=int, help='Keep newest N images (0 disables)')

    parser.add_argument('--transfer', choices=['rsync', 'scp'])
    parser.add_argument('--retries', type=int, help='Transfer attempts (default: 2)')
    parser.add_argument('--ssh-port', type=int)
    parser.add_argument('--ssh-keepalive', type=int)
    parser.add_argument('--ssh-keepalive-count', type=int)
    parser.add_argument('--identity-file', help='SSH private key')

    parser.add_argument('--dry-run', action='store_true', default=None,
                        help='Print what would happen (no changes)')
    parser.add_argument('--yes', dest='assume_yes', action='store_true', default=None,
                        help='Skip confirmation prompt')
    return parser


def main(argv=None):
    """Main entry point - parse command line and run the requested command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides = {k: v for k, v in vars(args).items() if k not in ('command', 'config')}
    try:
        config = load_config(args.config, overrides)
    except ConfigError as e:
        print(f"ERROR: {e}")
        sys.exit(Outcome.ABORTED.exit_code)

    if args.command == 'validate':
        print("[OK] Configuration is valid")
        sys.exit(0)

    if args.command == 'plan':
        pipeline = Pipeline(config)
        pipeline.print_plan()
        sys.exit(0)

    if args.command == 'prune':
        try:
            outcome = prune_command(config)
        except DeploymentError as e:
            print(f"ERROR: {e}")
            outcome = Outcome.ABORTED
        sys.exit(outcome.exit_code)

    result = Pipeline(config).run()
    print(f"\nOutcome: {result.outcome.label}" + (f" ({result.reason})" if result.reason else ""))
    sys.exit(result.exit_code)


if __name__ == '__main__':
    main()
