"""
Bolt Facts

Collect read-only system information from a play's target. The result is
exposed to tasks as the ``facts`` variable.
"""

import logging
import platform
from typing import Any, Dict

from bolt.connections.base import Connection


logger = logging.getLogger(__name__)

# distribution id -> (os_family, pkg_manager)
DISTRIBUTIONS = {
    "ubuntu": ("Debian", "apt"),
    "debian": ("Debian", "apt"),
    "linuxmint": ("Debian", "apt"),
    "pop": ("Debian", "apt"),
    "fedora": ("RedHat", "dnf"),
    "rhel": ("RedHat", "dnf"),
    "centos": ("RedHat", "dnf"),
    "rocky": ("RedHat", "dnf"),
    "almalinux": ("RedHat", "dnf"),
    "arch": ("Arch", "pacman"),
    "manjaro": ("Arch", "pacman"),
    "alpine": ("Alpine", "apk"),
    "opensuse": ("Suse", "zypper"),
    "sles": ("Suse", "zypper"),
}

ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
}

ENV_VARS = ("PATH", "SHELL", "LANG", "LC_ALL", "TERM", "EDITOR")


async def gather_facts(connection: Connection) -> Dict[str, Any]:
    """
    Gather facts through a connection.

    Commands that exit non-zero just leave their fact out; a transport
    failure (ConnectionError) propagates and aborts the play.
    """
    facts: Dict[str, Any] = {
        "python_platform": platform.system().lower(),
        "python_machine": platform.machine(),
    }

    facts.update(await _gather_os_info(connection))

    for key, command in (("hostname", "hostname"), ("user", "whoami"), ("home", "echo $HOME")):
        value = await _output(connection, command)
        if value is not None:
            facts[key] = value

    env: Dict[str, str] = {}
    for name in ENV_VARS:
        value = await _output(connection, f"echo ${name}")
        if value:
            env[name] = value
    facts["env"] = env

    logger.debug("Gathered %d facts from %s", len(facts), connection.describe())
    return facts


async def _gather_os_info(connection: Connection) -> Dict[str, Any]:
    """Operating system, distribution, architecture and kernel."""
    info: Dict[str, Any] = {}

    os_type = await _output(connection, "uname -s")
    if os_type is None:
        return info
    info["os_type"] = os_type

    if os_type == "Darwin":
        info["os_family"] = "Darwin"
        info["pkg_manager"] = "brew"
        version = await _output(connection, "sw_vers -productVersion")
        if version is not None:
            info["os_version"] = version
        name = await _output(connection, "sw_vers -productName")
        if name is not None:
            info["os_name"] = name

    elif os_type == "Linux":
        info["os_family"] = "Linux"
        os_release = await _output(connection, "cat /etc/os-release 2>/dev/null")
        if os_release:
            release = parse_os_release(os_release)
            if "ID" in release:
                info["distribution"] = release["ID"]
            if "VERSION_ID" in release:
                info["distribution_version"] = release["VERSION_ID"]
            if "PRETTY_NAME" in release:
                info["os_name"] = release["PRETTY_NAME"]

            family = DISTRIBUTIONS.get(info.get("distribution", ""))
            if family:
                info["os_family"], info["pkg_manager"] = family

    arch = await _output(connection, "uname -m")
    if arch is not None:
        info["architecture"] = arch
        info["arch"] = ARCH_ALIASES.get(arch, arch)

    kernel = await _output(connection, "uname -r")
    if kernel is not None:
        info["kernel"] = kernel

    return info


def parse_os_release(content: str) -> Dict[str, str]:
    """Parse ``/etc/os-release`` style ``KEY=value`` lines."""
    result: Dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if sep and key:
            result[key] = value.strip("\"'")
    return result


async def _output(connection: Connection, command: str):
    """Trimmed stdout of a successful command, or None."""
    result = await connection.run(command)
    if result.rc != 0:
        return None
    return result.stdout.strip()
