"""
Remote storage directory operations.

Every shell script envman runs on the storage host is built here and
sent through a Transport. Scripts are always wrapped in ``sh -c`` (with
``sudo`` when configured) so the remote login shell never interprets
their contents, and every interpolated value is ``shlex.quote``-d.

Layout on the storage side:
    <base_dir>/
    ├── db_2025_01_31_12_00_00.env
    ├── db_2025_02_01_08_30_00.env
    ├── unnamed_2025_02_02_10_00_00.env
    └── latest.env -> db_2025_02_01_08_30_00.env
"""

from __future__ import annotations

import logging
import posixpath
import shlex
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import TransferError
from .models import EnvmanConfig
from .naming import parse_filename
from .transport import RemoteResult, Transport

logger = logging.getLogger("envman.remote_store")

STAGING_PREFIX = "envman_upload_tmp"
PARTIAL_SUFFIX = ".partial"

# Exit status of the finalize script when the snapshot name is taken.
FINAL_EXISTS = 3


def _q(value: str) -> str:
    return shlex.quote(value)


@dataclass(frozen=True)
class PublishPlan:
    """Every remote path touched by one save."""

    filename: str
    staged_path: str
    final_path: str
    partial_path: str
    link_path: str
    link_tmp_path: str
    content_hash: str


class RemoteStore:
    """Shell-level view of the storage directory and the audit log.

    Args:
        config: envman configuration (paths, ownership, sudo).
        transport: How commands and files reach the storage host.
    """

    def __init__(self, config: EnvmanConfig, transport: Transport) -> None:
        self.config = config
        self.transport = transport
        self.base_dir = config.base_dir

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def wrap(self, script: str) -> str:
        """Wrap a script so it runs under ``sh -c``, elevated if configured."""
        shell = "sudo sh -c" if self.config.use_sudo else "sh -c"
        return f"{shell} {_q(script)}"

    def run_script(self, script: str) -> RemoteResult:
        return self.transport.run(self.wrap(script))

    def path_for(self, filename: str) -> str:
        """Absolute remote path of a file in the storage directory."""
        return posixpath.join(self.base_dir, filename)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_snapshot_files(self) -> list[str]:
        """Names of every snapshot file directly under the storage dir.

        A missing storage directory lists as empty. Anything that does not
        fully parse as a snapshot filename is dropped.

        Raises:
            TransferError: If the listing command fails.
        """
        base = _q(self.base_dir)
        script = (
            f"[ -d {base} ] || exit 0\n"
            f"find {base} -maxdepth 1 -type f -name '*.env' -printf '%f\\n'"
        )
        result = self.run_script(script)
        if not result.ok:
            raise TransferError(
                f"Error listing remote configs in {self.base_dir}: "
                f"{result.stderr.strip() or f'exit {result.returncode}'}",
                reason="error_find_prefix",
            )
        names = [line.strip() for line in result.text.splitlines() if line.strip()]
        return [name for name in names if parse_filename(name) is not None]

    def read_latest_link(self) -> Optional[str]:
        """Raw target of the latest pointer, or None if absent/unreadable."""
        result = self.run_script(f"readlink -- {_q(self.config.symlink_path)}")
        target = result.text.strip()
        if not result.ok or not target:
            return None
        return target

    def read_latest_target(self) -> Optional[str]:
        """Filename the latest pointer finally resolves to.

        The whole link chain is followed. None when the pointer is absent,
        is not a symlink, or ends anywhere but directly in the storage dir.
        """
        link = _q(self.config.symlink_path)
        script = "\n".join([
            f"[ -L {link} ] || exit 1",
            f"canon=$(readlink -f -- {link}) || exit 1",
            f"base=$(readlink -f -- {_q(self.base_dir)}) || exit 1",
            '[ "$(dirname -- "$canon")" = "$base" ] || exit 1',
            'basename -- "$canon"',
        ]) + "\n"
        result = self.run_script(script)
        target = result.text.strip()
        if not result.ok or not target:
            return None
        return target

    def is_file(self, path: str) -> bool:
        """True if ``path`` is a regular file and not a symlink to one."""
        p = _q(path)
        return self.run_script(f"[ -f {p} ] && [ ! -L {p} ]").ok

    def has_content(self, path: str) -> bool:
        """True if ``path`` exists and is non-empty.

        Raises:
            TransferError: If the check itself could not run.
        """
        result = self.run_script(f"test -s {_q(path)}")
        if result.returncode not in (0, 1):
            raise TransferError(
                f"Failed to check remote file {path}: "
                f"{result.stderr.strip() or f'exit {result.returncode}'}",
                target=path,
            )
        return result.ok

    def read_bytes(self, path: str) -> bytes:
        """Full content of a remote file.

        Raises:
            TransferError: If the file cannot be read.
        """
        result = self.run_script(f"cat -- {_q(path)}")
        if not result.ok:
            raise TransferError(
                f"Failed to read remote file {path}: "
                f"{result.stderr.strip() or f'exit {result.returncode}'}",
                target=path,
            )
        return result.stdout

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    def plan_publish(self, filename: str, content_hash: str) -> PublishPlan:
        """Choose the staging and temporary names for one save.

        The staged upload lives outside the storage directory under a
        unique name so a broken transfer can never look like a snapshot.
        """
        unique = uuid.uuid4().hex
        final_path = self.path_for(filename)
        return PublishPlan(
            filename=filename,
            staged_path=posixpath.join(
                self.config.staging_dir, f"{STAGING_PREFIX}_{unique}_{filename}"
            ),
            final_path=final_path,
            partial_path=final_path + PARTIAL_SUFFIX,
            link_path=self.config.symlink_path,
            link_tmp_path=self.path_for(f".{self.config.symlink_name}.{unique}"),
            content_hash=content_hash,
        )

    def upload(self, local_path: Path, plan: PublishPlan) -> None:
        """Copy the local file to the plan's staging path.

        Raises:
            TransferError: If the copy fails.
        """
        status = self.transport.copy_to_remote(local_path, plan.staged_path)
        if status != 0:
            raise TransferError(
                f"Upload of '{local_path}' to temporary location failed (exit {status})",
                target=str(local_path),
            )

    def finalize_script(self, plan: PublishPlan) -> str:
        """Shell script installing the staged file and repointing latest.

        The snapshot reaches its final name by a same-directory rename and
        the pointer is swapped by renaming a fresh link over the old one,
        so readers only ever see the old state or the new one. Any failed
        step rolls back everything done so far.
        """
        staged, partial = _q(plan.staged_path), _q(plan.partial_path)
        final, link_tmp = _q(plan.final_path), _q(plan.link_tmp_path)
        owner = self.config.owner
        mode = self.config.mode

        lines = [
            "placed=0",
            "rollback() {",
            f"  rm -f -- {staged} {partial} {link_tmp}",
            f'  if [ "$placed" = 1 ]; then rm -f -- {final}; fi',
            "  exit 1",
            "}",
            f"mkdir -p -- {_q(self.base_dir)} || rollback",
            f"if [ -e {final} ] || [ -L {final} ]; then",
            f"  echo {_q(f'snapshot {plan.filename} already exists')} >&2",
            f"  rm -f -- {staged}",
            f"  exit {FINAL_EXISTS}",
            "fi",
            f"mv -f -- {staged} {partial} || rollback",
        ]
        if owner:
            lines.append(f"chown {_q(owner)} {partial} || rollback")
        lines += [
            f"chmod {mode} {partial} || rollback",
            f"mv -f -- {partial} {final} || rollback",
            "placed=1",
            f"ln -s -- {_q(plan.filename)} {link_tmp} || rollback",
        ]
        if owner:
            lines.append(f"chown -h {_q(owner)} {link_tmp} || rollback")
        lines.append(f"mv -Tf -- {link_tmp} {_q(plan.link_path)} || rollback")
        return "\n".join(lines) + "\n"

    def finalize(self, plan: PublishPlan) -> RemoteResult:
        """Run the finalize script as one remote invocation."""
        return self.run_script(self.finalize_script(plan))

    def cleanup(self, plan: PublishPlan, remove_final: bool = True) -> bool:
        """Best-effort removal of leftovers from a failed save.

        With ``remove_final`` the final snapshot is removed too, but only
        when the pointer does not name it and its content is the one this
        save uploaded.
        """
        final = _q(plan.final_path)
        lines = [
            f"rm -f -- {_q(plan.staged_path)} {_q(plan.partial_path)} {_q(plan.link_tmp_path)}",
        ]
        if remove_final:
            lines += [
                f'if [ "$(readlink -- {_q(plan.link_path)} 2>/dev/null)" != {_q(plan.filename)} ] \\',
                f"   && [ -f {final} ] \\",
                f"   && [ \"$(sha256sum < {final} | cut -d' ' -f1)\" = {_q(plan.content_hash)} ]; then",
                f"  rm -f -- {final}",
                "fi",
            ]
        result = self.run_script("\n".join(lines) + "\n")
        if not result.ok:
            logger.warning(
                "Cleanup after failed save of %s did not complete: %s",
                plan.filename, result.stderr.strip(),
            )
        return result.ok

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def append_line(self, log_file: str, line: str) -> RemoteResult:
        """Append one line to a remote text file, creating its directory."""
        script = (
            f"mkdir -p -- {_q(posixpath.dirname(log_file))} && "
            f"printf '%s\\n' {_q(line)} >> {_q(log_file)}"
        )
        return self.run_script(script)
