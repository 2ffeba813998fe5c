"""
Bolt command and shell modules

Run a command on the target.
"""

from bolt.modules.base import Module, ModuleResult, quote, register_module


@register_module
class CommandModule(Module):
    """
    Execute a command on the target.

    ``creates`` skips the command when the path exists and ``removes`` skips
    it when the path is missing, which makes one-off commands idempotent.
    A non-zero exit code fails the task.
    """

    name = "command"
    required_args = ["cmd"]
    optional_args = {
        "chdir": None,
        "creates": None,
        "removes": None,
    }

    def validate_args(self) -> str | None:
        cmd = self.args.get("cmd")
        if cmd is not None and not isinstance(cmd, str):
            return "parameter 'cmd' must be a string"
        return super().validate_args()

    async def run(self) -> ModuleResult:
        """Execute the command."""
        cmd = self.args["cmd"]
        chdir = self.get_str("chdir")
        creates = self.get_str("creates")
        removes = self.get_str("removes")

        # Check 'creates' - skip if path exists
        if creates and await self._path_exists(creates):
            return ModuleResult(changed=False, message=f"skipped, '{creates}' exists")

        # Check 'removes' - skip if path doesn't exist
        if removes and not await self._path_exists(removes):
            return ModuleResult(changed=False, message=f"skipped, '{removes}' does not exist")

        full_cmd = cmd
        if chdir:
            full_cmd = f"cd {quote(chdir)} && {cmd}"

        result = await self.run_command(full_cmd)

        if result.rc != 0:
            raise self.fail(f"command failed with exit code {result.rc}: {cmd}", result)

        return ModuleResult(
            changed=True,  # Commands always report changed
            message="command executed successfully",
            data={
                "cmd": cmd,
                "stdout": result.stdout.strip(),
                "stderr": result.stderr.strip(),
                "exit_code": result.rc,
            },
        )

    async def _path_exists(self, path: str) -> bool:
        result = await self.run_command(f"test -e {quote(path)}")
        return result.rc == 0


@register_module
class ShellModule(CommandModule):
    """
    Execute a command through the target's shell.

    Same parameters and behaviour as ``command``; both run via ``/bin/sh -c``
    so pipes and redirection work either way.
    """

    name = "shell"
