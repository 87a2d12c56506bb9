"""
ocideploy - ship container images to network-isolated hosts.

Builds an image locally, exports it as a single archive, transfers it to a
remote host over SSH, verifies integrity, activates it under podman and rolls
back to the previous image when the new container fails to come up.
"""

__version__ = "1.0.0"
