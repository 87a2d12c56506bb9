#!/usr/bin/env python3
"""
Artifact integrity checks.

Both ends run the same two checks in order:
  1. SHA-256 of the archive equals the checksum recorded at export time
  2. the tar container reads end to end (catches truncated archives)
"""

import hashlib
import shlex
import tarfile

from .errors import ChecksumMismatch, CorruptArchive
from ..executors.ssh import RemoteCommandError

CHUNK_SIZE = 1024 * 1024
END_OF_ARCHIVE = 2 * tarfile.BLOCKSIZE


def sha256_file(path):
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
            digest.update(chunk)
    return digest.hexdigest()


def check_archive_readable(path):
    """
    Read every member of an uncompressed tar archive, then require the
    end-of-archive marker. Raises CorruptArchive on any short read.
    """
    try:
        with tarfile.open(path, 'r:') as tar:
            members = 0
            for member in tar:
                members += 1
                if member.isfile():
                    data = tar.extractfile(member)
                    while data.read(CHUNK_SIZE):
                        pass
            end_offset = tar.offset
    except (tarfile.TarError, EOFError, OSError) as e:
        raise CorruptArchive(f"Archive {path} is not readable: {e}")

    if members == 0:
        raise CorruptArchive(f"Archive {path} contains no entries")

    # a cut exactly on a member boundary still parses, so require the two zero blocks
    with open(path, 'rb') as f:
        f.seek(end_offset)
        trailer = f.read(END_OF_ARCHIVE)
    if len(trailer) < END_OF_ARCHIVE or trailer.strip(b'\0'):
        raise CorruptArchive(f"Archive {path} is truncated (missing end-of-archive marker)")
    return members


class IntegrityVerifier:
    """Checks an Artifact locally and on the remote host."""

    def __init__(self, ssh):
        self.ssh = ssh

    def verify_local(self, artifact):
        actual = sha256_file(artifact.local_path)
        if actual != artifact.checksum:
            raise ChecksumMismatch('local', artifact.checksum, actual)
        return check_archive_readable(artifact.local_path)

    def remote_checksum(self, artifact):
        try:
            stdout = self.ssh.ssh_exec_check(['sha256sum', artifact.remote_path])
        except RemoteCommandError as e:
            raise ChecksumMismatch('remote', artifact.checksum, None) from e
        fields = stdout.split()
        return fields[0] if fields else None

    def verify_remote(self, artifact):
        """
        Compares against the checksum recorded at export, not the transferred
        .sha256 file. A truncated transfer therefore surfaces as
        ChecksumMismatch; CorruptArchive here means the bytes match but tar
        cannot read them.
        """
        actual = self.remote_checksum(artifact)
        if actual != artifact.checksum:
            raise ChecksumMismatch('remote', artifact.checksum, actual)

        command = f"tar -tf {shlex.quote(artifact.remote_path)} >/dev/null"
        stdout, stderr, returncode = self.ssh.ssh_exec(command)
        if returncode != 0:
            raise CorruptArchive(
                f"Remote archive {artifact.remote_path} is not readable: {stderr.strip()}"
            )
