"""
Shared helpers for modules that manage files on the target.

Everything here runs shell commands through the calling module so privilege
escalation applies.
"""

import hashlib
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple

from bolt.modules.base import Module, quote


# Marker lines printed by the probe scripts below
_NO_FILE = "NO_FILE"
_NO_SHA = "NO_SHA"


@dataclass
class PathInfo:
    """What exists at a path on the target."""

    exists: bool = False
    is_dir: bool = False
    is_link: bool = False
    link_target: str = ""
    mode: Optional[int] = None
    owner: str = ""
    group: str = ""


def parse_mode(mode: Any) -> int:
    """
    Parse a permission mode.

    Strings are octal ("0644", "755"). Integers are taken as the numeric mode,
    which is what YAML produces for an unquoted ``0644``.

    Raises:
        ValueError: If the mode is not octal
    """
    if isinstance(mode, bool):
        raise ValueError(f"invalid mode: {mode}")
    if isinstance(mode, int):
        value = mode
    else:
        text = str(mode).strip()
        if not text or any(c not in "01234567" for c in text):
            raise ValueError(f"invalid mode: {mode!r}")
        value = int(text, 8)
    if value > 0o7777:
        raise ValueError(f"invalid mode: {mode!r}")
    return value


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


async def remote_checksum(module: Module, path: str) -> Tuple[bool, Optional[str]]:
    """
    Return ``(exists, sha256)`` for a regular file on the target.

    The checksum is None when the file exists but no sha256 tool is
    available, in which case callers treat the content as different.
    """
    q = quote(path)
    script = (
        f"if [ -f {q} ]; then "
        f"if command -v sha256sum >/dev/null 2>&1; then sha256sum {q} | cut -d' ' -f1; "
        f"elif command -v shasum >/dev/null 2>&1; then shasum -a 256 {q} | cut -d' ' -f1; "
        f"else echo {_NO_SHA}; fi; "
        f"else echo {_NO_FILE}; fi"
    )
    result = await module.run_command(script)
    if not result.success:
        raise module.fail(f"failed to check {path}", result)

    output = result.stdout.strip()
    if output == _NO_FILE:
        return False, None
    if output == _NO_SHA or not output:
        return True, None
    return True, output


async def path_info(module: Module, path: str) -> PathInfo:
    """Inspect a path on the target (GNU and BSD stat are both handled)."""
    q = quote(path)
    script = (
        f"if [ -e {q} ] || [ -L {q} ]; then "
        f"t=file; [ -d {q} ] && t=dir; [ -L {q} ] && t=link; "
        f"l=''; [ -L {q} ] && l=$(readlink {q}); "
        f"stat -c '%a:%U:%G' {q} 2>/dev/null || stat -f '%Lp:%Su:%Sg' {q} 2>/dev/null; "
        f"echo \"$t:$l\"; "
        f"else echo NOTEXIST; fi"
    )
    result = await module.run_command(script)
    output = result.stdout.strip()
    if not result.success or not output or output == "NOTEXIST":
        return PathInfo()

    info = PathInfo(exists=True)
    lines = output.splitlines()
    if len(lines) >= 2:
        perms = lines[0].split(":")
        if len(perms) >= 3:
            try:
                info.mode = int(perms[0], 8)
            except ValueError:
                info.mode = None
            info.owner, info.group = perms[1], perms[2]
        kind, _, target = lines[-1].partition(":")
    else:
        kind, _, target = lines[0].partition(":")

    info.is_dir = kind == "dir"
    if kind == "link":
        info.is_link = True
        info.link_target = target
    return info


async def ensure_attributes(
    module: Module,
    path: str,
    mode: Any = None,
    owner: Optional[str] = None,
    group: Optional[str] = None,
    recurse: bool = False,
) -> bool:
    """
    Bring mode and ownership in line; return True if anything changed.

    Only the top-level path is compared. With ``recurse`` the change, when
    needed, is applied to the whole tree.
    """
    if mode is None and not owner and not group:
        return False

    info = await path_info(module, path)
    changed = False
    flag = "-R " if recurse else ""

    if mode is not None:
        try:
            wanted = parse_mode(mode)
        except ValueError as e:
            raise module.fail(str(e))
        if info.mode != wanted:
            await module.check_command(f"chmod {flag}{wanted:o} {quote(path)}", "chmod")
            changed = True

    owner_differs = bool(owner) and info.owner != owner
    group_differs = bool(group) and info.group != group
    if owner_differs or group_differs:
        if owner and group:
            ownership = f"{owner}:{group}"
        elif owner:
            ownership = owner
        else:
            ownership = f":{group}"
        await module.check_command(f"chown {flag}{quote(ownership)} {quote(path)}", "chown")
        changed = True

    return changed


async def create_parent_dirs(module: Module, path: str) -> None:
    await module.check_command(f"mkdir -p {quote(str(Path(path).parent))}", "mkdir")


async def make_backup(module: Module, path: str) -> str:
    """Copy ``path`` to a timestamped ``.bak`` file next to it."""
    backup_path = f"{path}.{time.strftime('%Y%m%d%H%M%S')}.bak"
    await module.check_command(f"cp -p {quote(path)} {quote(backup_path)}", "backup")
    return backup_path


def resolve_source(module: Module, src: str, subdir: str) -> Path:
    """
    Locate a controller-side source file.

    Relative paths are looked up in ``<role>/<subdir>`` for role tasks, then
    relative to the working directory.
    """
    path = Path(src)
    if not path.is_absolute() and module.role_path:
        candidate = Path(module.role_path) / subdir / src
        if candidate.exists():
            return candidate
    return path
