"""SSH key provisioning for remote build sessions."""

from __future__ import annotations

import getpass
import logging
import os
import stat
from pathlib import Path

from gce_imagegen.gcloud.runner import CommandRunner

logger = logging.getLogger(__name__)


def public_key_path(key_file: Path) -> Path:
    return key_file.with_name(key_file.name + ".pub")


def create_empty_ssh_key(
    key_file: Path,
    runner: CommandRunner,
    user: str | None = None,
) -> bool:
    """Generate a passphrase-less RSA key if ``key_file`` does not exist.

    The public key is rewritten as ``<user>:ssh-rsa ...`` so it can be fed
    straight into instance ``ssh-keys`` metadata.

    Args:
        key_file: Private key path.
        runner: Command runner used for ssh-keygen.
        user: Login name embedded in the public key (current user if None).

    Returns:
        True if a key was generated, False if one already existed.

    Raises:
        CommandError: If ssh-keygen fails.
    """
    if key_file.exists():
        logger.debug("Using existing SSH key %s", key_file)
        return False

    user = user or getpass.getuser()
    key_file.parent.mkdir(parents=True, exist_ok=True)
    runner.run(["ssh-keygen", "-q", "-N", "", "-t", "rsa", "-f", str(key_file), "-C", user])
    os.chmod(key_file, stat.S_IRUSR)

    pub_path = public_key_path(key_file)
    content = pub_path.read_text()
    if not content.startswith(f"{user}:"):
        pub_path.write_text(f"{user}:{content}")

    logger.info("Generated SSH key %s", key_file)
    return True


__all__ = ["create_empty_ssh_key", "public_key_path"]
