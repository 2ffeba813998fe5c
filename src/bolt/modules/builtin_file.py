"""
Bolt file module

Manage files, directories and symlinks on the target.
"""

from typing import List

from bolt.modules.base import Module, ModuleResult, quote, register_module
from bolt.modules.fileutil import PathInfo, ensure_attributes, path_info


STATES = ("file", "directory", "link", "absent", "touch")


@register_module
class FileModule(Module):
    """
    Ensure a path is in the requested state.

    States:
    - file: the path must already be a regular file (attributes only)
    - directory: create it (with parents) if missing
    - link: symlink to ``src``; an existing path is replaced only with ``force``
    - absent: remove the path if present
    - touch: create the file or update its timestamp (always changed)
    """

    name = "file"
    required_args = ["path"]
    optional_args = {
        "state": "file",
        "mode": None,
        "owner": None,
        "group": None,
        "src": None,
        "recurse": False,
        "force": False,
    }

    def validate_args(self) -> str | None:
        error = super().validate_args()
        if error:
            return error
        state = self.get_str("state", "file")
        if state not in STATES:
            return f"invalid state '{state}': must be file, directory, link, absent, or touch"
        if state == "link" and not self.get_str("src"):
            return "'src' parameter is required when state=link"
        return None

    async def run(self) -> ModuleResult:
        path = self.get_str("path")
        state = self.get_str("state", "file")
        info = await path_info(self, path)

        messages: List[str] = []

        if state == "absent":
            if not info.exists:
                return ModuleResult(changed=False, message="path already absent", data={"path": path})
            flag = "-rf" if info.is_dir and not info.is_link else "-f"
            await self.check_command(f"rm {flag} {quote(path)}", "remove path")
            return ModuleResult(changed=True, message="path removed", data={"path": path})

        if state == "directory":
            if not info.exists:
                await self.check_command(f"mkdir -p {quote(path)}", "create directory")
                messages.append("directory created")
            elif not info.is_dir:
                raise self.fail(f"{path} exists but is not a directory")

        elif state == "file":
            if not info.exists:
                raise self.fail(f"{path} does not exist; use state=touch to create")
            if info.is_dir:
                raise self.fail(f"{path} is a directory, not a file")

        elif state == "touch":
            await self.check_command(f"touch {quote(path)}", "touch file")
            messages.append("file created" if not info.exists else "timestamp updated")

        elif state == "link":
            if await self._ensure_link(self.get_str("src"), path, info):
                messages.append("symlink created")

        # Attributes of a symlink are those of its target; leave them alone
        if state != "link":
            recurse = self.get_bool("recurse") and state == "directory"
            if await ensure_attributes(
                self,
                path,
                self.get_arg("mode"),
                self.get_str("owner"),
                self.get_str("group"),
                recurse=recurse,
            ):
                messages.append("attributes changed")

        if not messages:
            return ModuleResult(changed=False, message="no changes needed", data={"path": path, "state": state})
        return ModuleResult(changed=True, message=", ".join(messages), data={"path": path, "state": state})

    async def _ensure_link(self, src: str, dest: str, info: PathInfo) -> bool:
        if info.is_link and info.link_target == src:
            return False

        if info.exists:
            if not self.get_bool("force"):
                raise self.fail(f"{dest} exists and force=false")
            flag = "-rf" if info.is_dir and not info.is_link else "-f"
            await self.check_command(f"rm {flag} {quote(dest)}", "remove path")

        await self.check_command(f"ln -s {quote(src)} {quote(dest)}", "create symlink")
        return True
