"""
Bolt copy module

Copy files or inline content to the target.
"""

import time

from bolt.modules.base import Module, ModuleResult, quote, register_module
from bolt.modules.fileutil import (
    create_parent_dirs,
    ensure_attributes,
    make_backup,
    parse_mode,
    remote_checksum,
    resolve_source,
    sha256_hex,
)


@register_module
class CopyModule(Module):
    """
    Copy a controller-side file (``src``) or inline ``content`` to ``dest``.

    Supports:
    - Idempotency via sha256 comparison with the destination
    - mode/owner/group, applied only when they differ
    - backup of the previous file, validation before install
    """

    name = "copy"
    required_args = ["dest"]
    optional_args = {
        "src": None,
        "content": None,
        "mode": "0644",
        "owner": None,
        "group": None,
        "backup": False,
        "force": True,
        "create_dirs": False,
        "validate": None,
    }

    def validate_args(self) -> str | None:
        error = super().validate_args()
        if error:
            return error
        has_src = self.args.get("src") not in (None, "")
        has_content = self.args.get("content") is not None
        if not has_src and not has_content:
            return "either 'src' or 'content' parameter is required"
        if has_src and has_content:
            return "'src' and 'content' are mutually exclusive"
        return None

    async def run(self) -> ModuleResult:
        """Copy the file."""
        dest = self.get_str("dest")
        mode = self.get_arg("mode")
        owner = self.get_str("owner")
        group = self.get_str("group")
        validate = self.get_str("validate")

        content = self._source_content()
        checksum = sha256_hex(content)

        try:
            mode_bits = parse_mode(mode)
        except ValueError as e:
            raise self.fail(str(e))

        dest_exists, dest_checksum = await remote_checksum(self, dest)

        if dest_exists and checksum == dest_checksum:
            if await ensure_attributes(self, dest, mode, owner, group):
                return ModuleResult(changed=True, message="attributes updated", data={"dest": dest})
            return ModuleResult(
                changed=False,
                message="file already exists with correct content and attributes",
                data={"dest": dest, "checksum": checksum},
            )

        if dest_exists and not self.get_bool("force", True):
            return ModuleResult(changed=False, message="destination exists and force=false")

        if self.get_bool("create_dirs"):
            await create_parent_dirs(self, dest)

        data = {"dest": dest, "checksum": checksum}
        if dest_exists and self.get_bool("backup"):
            data["backup_file"] = await make_backup(self, dest)

        if validate:
            await self._install_validated(content, dest, mode_bits, validate)
        else:
            await self.connection.upload(content, dest, mode_bits, become_user=self.become_user)

        await ensure_attributes(self, dest, mode, owner, group)

        return ModuleResult(
            changed=True,
            message="file updated" if dest_exists else "file created",
            data=data,
        )

    def _source_content(self) -> bytes:
        content = self.get_arg("content")
        if content is not None:
            if isinstance(content, bytes):
                return content
            return str(content).encode("utf-8")

        src = resolve_source(self, self.get_str("src"), "files")
        try:
            return src.read_bytes()
        except OSError as e:
            raise self.fail(f"failed to read source file {src}: {e}")

    async def _install_validated(self, content: bytes, dest: str, mode_bits: int, validate: str) -> None:
        """Upload to a temporary path, run the validator, then move into place."""
        tmp_path = f"/tmp/bolt-copy-{time.time_ns()}"
        await self.connection.upload(content, tmp_path, mode_bits, become_user=self.become_user)

        result = await self.run_command(validate.replace("%s", quote(tmp_path)))
        if not result.success:
            await self.run_command(f"rm -f {quote(tmp_path)}")
            raise self.fail(f"validation failed: {result.stderr.strip()}", result)

        await self.check_command(f"mv {quote(tmp_path)} {quote(dest)}", "move validated file")
