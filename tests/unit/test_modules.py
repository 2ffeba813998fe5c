"""
Tests for the built-in modules and the module registry.

File-managing modules run against the real local connection inside
``tmp_path``; escalation and failure paths use the in-memory connection.
"""

import os
import sys

import pytest

from bolt.connections.local import LocalConnection
from bolt.engine.context import PlayContext
from bolt.engine.errors import ModuleError
from bolt.engine.playbook import Play
from bolt.modules import Module, ModuleRegistry, ModuleResult, get_default_registry
from bolt.modules.builtin_command import CommandModule, ShellModule
from bolt.modules.builtin_copy import CopyModule
from bolt.modules.builtin_debug import DebugModule
from bolt.modules.builtin_file import FileModule
from bolt.modules.builtin_template import TemplateModule
from bolt.modules.fileutil import parse_mode


posix_only = pytest.mark.skipif(sys.platform == "win32", reason="requires a POSIX shell")


def local_context(**variables) -> PlayContext:
    ctx = PlayContext.for_play(Play(hosts="localhost"))
    ctx.vars.update(variables)
    ctx.connection = LocalConnection()
    return ctx


def mode_of(path) -> int:
    return os.stat(path).st_mode & 0o777


class TestRegistry:
    """Test module registration."""

    def test_builtins_registered(self):
        names = get_default_registry().names()
        for name in ("command", "shell", "copy", "file", "template", "debug"):
            assert name in names

    def test_names_sorted(self):
        names = get_default_registry().names()
        assert names == sorted(names)

    def test_duplicate_name_rejected(self):
        registry = ModuleRegistry()

        class First(Module):
            name = "dup"

            async def run(self) -> ModuleResult:
                return ModuleResult()

        class Second(First):
            pass

        registry.register(First)
        registry.register(First)  # same class again is fine
        with pytest.raises(ValueError, match="already registered"):
            registry.register(Second)

    def test_nameless_module_rejected(self):
        class Nameless(Module):
            async def run(self) -> ModuleResult:
                return ModuleResult()

        with pytest.raises(ValueError, match="has no name"):
            ModuleRegistry().register(Nameless)

    def test_lookup(self):
        registry = get_default_registry()
        assert registry.get("copy") is CopyModule
        assert registry.get("nosuch") is None
        assert "file" in registry
        assert len(registry) >= 6


class TestParseMode:
    """Test permission mode parsing."""

    def test_octal_strings(self):
        assert parse_mode("0644") == 0o644
        assert parse_mode("755") == 0o755

    def test_yaml_integer(self):
        # YAML 1.1 reads an unquoted 0644 as octal
        assert parse_mode(0o644) == 0o644

    @pytest.mark.parametrize("bad", ["0999", "rwx", "", True, "77777"])
    def test_invalid(self, bad):
        with pytest.raises(ValueError):
            parse_mode(bad)


@posix_only
class TestCommandModule:
    """Test command and shell."""

    @pytest.mark.asyncio
    async def test_runs_command(self):
        result = await CommandModule({"cmd": "echo hi"}, local_context()).run()
        assert result.changed
        assert result.data["stdout"] == "hi"
        assert result.data["exit_code"] == 0

    @pytest.mark.asyncio
    async def test_failure_raises(self):
        with pytest.raises(ModuleError, match="command failed with exit code 4") as exc_info:
            await CommandModule({"cmd": "echo bad >&2; exit 4"}, local_context()).run()
        assert exc_info.value.rc == 4
        assert exc_info.value.stderr.strip() == "bad"

    @pytest.mark.asyncio
    async def test_creates_skips(self, tmp_path):
        marker = tmp_path / "marker"
        marker.write_text("")
        module = CommandModule({"cmd": "exit 1", "creates": str(marker)}, local_context())
        result = await module.run()
        assert not result.changed

    @pytest.mark.asyncio
    async def test_removes_skips(self, tmp_path):
        module = CommandModule({"cmd": "exit 1", "removes": str(tmp_path / "gone")}, local_context())
        assert not (await module.run()).changed

    @pytest.mark.asyncio
    async def test_chdir(self, tmp_path):
        result = await ShellModule({"cmd": "pwd | cat", "chdir": str(tmp_path)}, local_context()).run()
        assert os.path.realpath(result.data["stdout"]) == os.path.realpath(str(tmp_path))

    def test_missing_cmd(self):
        assert CommandModule({}, local_context()).validate_args() == "required parameter 'cmd' is missing"

    def test_cmd_must_be_string(self):
        assert "must be a string" in CommandModule({"cmd": ["ls"]}, local_context()).validate_args()

    @pytest.mark.asyncio
    async def test_become_passed_to_connection(self, connection):
        ctx = PlayContext.for_play(Play(hosts="localhost"))
        ctx.connection = connection

        with ctx.escalation(True, "deploy"):
            await CommandModule({"cmd": "id"}, ctx).run()
        await CommandModule({"cmd": "id"}, ctx).run()

        assert connection.become_users == ["deploy", None]


@posix_only
class TestFileModule:
    """Test file states."""

    @pytest.mark.asyncio
    async def test_directory_created_once(self, tmp_path):
        path = tmp_path / "a" / "b"
        args = {"path": str(path), "state": "directory", "mode": "0750"}

        first = await FileModule(args, local_context()).run()
        second = await FileModule(args, local_context()).run()

        assert path.is_dir()
        assert mode_of(path) == 0o750
        assert first.changed
        assert not second.changed

    @pytest.mark.asyncio
    async def test_directory_over_file_fails(self, tmp_path):
        target = tmp_path / "f"
        target.write_text("")
        with pytest.raises(ModuleError, match="not a directory"):
            await FileModule({"path": str(target), "state": "directory"}, local_context()).run()

    @pytest.mark.asyncio
    async def test_absent(self, tmp_path):
        target = tmp_path / "tree"
        (target / "sub").mkdir(parents=True)

        first = await FileModule({"path": str(target), "state": "absent"}, local_context()).run()
        second = await FileModule({"path": str(target), "state": "absent"}, local_context()).run()

        assert not target.exists()
        assert first.changed
        assert not second.changed

    @pytest.mark.asyncio
    async def test_touch(self, tmp_path):
        target = tmp_path / "touched"
        result = await FileModule({"path": str(target), "state": "touch"}, local_context()).run()
        assert target.exists()
        assert result.changed

    @pytest.mark.asyncio
    async def test_file_state_requires_existing(self, tmp_path):
        with pytest.raises(ModuleError, match="does not exist"):
            await FileModule({"path": str(tmp_path / "nope")}, local_context()).run()

    @pytest.mark.asyncio
    async def test_file_mode(self, tmp_path):
        target = tmp_path / "f"
        target.write_text("x")
        os.chmod(target, 0o644)
        args = {"path": str(target), "mode": "0600"}

        first = await FileModule(args, local_context()).run()
        second = await FileModule(args, local_context()).run()

        assert mode_of(target) == 0o600
        assert first.changed
        assert not second.changed

    @pytest.mark.asyncio
    async def test_link(self, tmp_path):
        src = tmp_path / "real"
        src.write_text("x")
        link = tmp_path / "link"
        args = {"path": str(link), "src": str(src), "state": "link"}

        first = await FileModule(args, local_context()).run()
        second = await FileModule(args, local_context()).run()

        assert os.readlink(link) == str(src)
        assert first.changed
        assert not second.changed

    @pytest.mark.asyncio
    async def test_link_over_file_needs_force(self, tmp_path):
        src = tmp_path / "real"
        src.write_text("x")
        dest = tmp_path / "existing"
        dest.write_text("y")
        args = {"path": str(dest), "src": str(src), "state": "link"}

        with pytest.raises(ModuleError, match="force=false"):
            await FileModule(args, local_context()).run()

        await FileModule(dict(args, force=True), local_context()).run()
        assert os.path.islink(dest)

    def test_invalid_state(self):
        error = FileModule({"path": "/tmp/x", "state": "weird"}, local_context()).validate_args()
        assert "invalid state 'weird'" in error

    def test_link_requires_src(self):
        error = FileModule({"path": "/tmp/x", "state": "link"}, local_context()).validate_args()
        assert "'src' parameter is required" in error


@posix_only
class TestCopyModule:
    """Test copy idempotency and options."""

    @pytest.mark.asyncio
    async def test_content_idempotent(self, tmp_path):
        dest = tmp_path / "app.conf"
        args = {"content": "port=80\n", "dest": str(dest)}

        first = await CopyModule(args, local_context()).run()
        second = await CopyModule(args, local_context()).run()

        assert dest.read_text() == "port=80\n"
        assert mode_of(dest) == 0o644
        assert first.changed
        assert first.message == "file created"
        assert not second.changed

    @pytest.mark.asyncio
    async def test_changed_content_with_backup(self, tmp_path):
        dest = tmp_path / "app.conf"
        dest.write_text("old\n")

        result = await CopyModule(
            {"content": "new\n", "dest": str(dest), "backup": True}, local_context(),
        ).run()

        assert result.changed
        assert result.message == "file updated"
        assert dest.read_text() == "new\n"
        backup = result.data["backup_file"]
        assert backup.endswith(".bak")
        with open(backup) as f:
            assert f.read() == "old\n"

    @pytest.mark.asyncio
    async def test_src_from_role_files(self, tmp_path):
        role = tmp_path / "roles" / "web"
        (role / "files").mkdir(parents=True)
        (role / "files" / "motd").write_text("welcome\n")
        dest = tmp_path / "motd"

        module = CopyModule({"src": "motd", "dest": str(dest)}, local_context(), role_path=str(role))
        await module.run()

        assert dest.read_text() == "welcome\n"

    @pytest.mark.asyncio
    async def test_missing_src(self, tmp_path):
        with pytest.raises(ModuleError, match="failed to read source file"):
            await CopyModule({"src": str(tmp_path / "nope"), "dest": str(tmp_path / "d")}, local_context()).run()

    @pytest.mark.asyncio
    async def test_create_dirs(self, tmp_path):
        dest = tmp_path / "deep" / "er" / "file"
        await CopyModule({"content": "x", "dest": str(dest), "create_dirs": True}, local_context()).run()
        assert dest.read_text() == "x"

    @pytest.mark.asyncio
    async def test_force_false_keeps_existing(self, tmp_path):
        dest = tmp_path / "keep"
        dest.write_text("mine")
        result = await CopyModule({"content": "theirs", "dest": str(dest), "force": False}, local_context()).run()
        assert not result.changed
        assert dest.read_text() == "mine"

    @pytest.mark.asyncio
    async def test_validate_rejects(self, tmp_path):
        dest = tmp_path / "checked"
        with pytest.raises(ModuleError, match="validation failed"):
            await CopyModule(
                {"content": "bad", "dest": str(dest), "validate": "grep -q good %s"}, local_context(),
            ).run()
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_validate_accepts(self, tmp_path):
        dest = tmp_path / "checked"
        await CopyModule(
            {"content": "good", "dest": str(dest), "validate": "grep -q good %s"}, local_context(),
        ).run()
        assert dest.read_text() == "good"

    def test_src_or_content_required(self):
        error = CopyModule({"dest": "/tmp/x"}, local_context()).validate_args()
        assert error == "either 'src' or 'content' parameter is required"

    def test_src_and_content_exclusive(self):
        error = CopyModule({"dest": "/tmp/x", "src": "a", "content": "b"}, local_context()).validate_args()
        assert error == "'src' and 'content' are mutually exclusive"


@posix_only
class TestTemplateModule:
    """Test Jinja2 template rendering."""

    def _role(self, tmp_path, source: str):
        role = tmp_path / "roles" / "web"
        (role / "templates").mkdir(parents=True)
        (role / "templates" / "site.conf.j2").write_text(source)
        return str(role)

    @pytest.mark.asyncio
    async def test_renders_play_vars(self, tmp_path):
        role = self._role(tmp_path, "server {{ name }}:{{ port }}\n{{ pkgs | join(', ') }}\n")
        dest = tmp_path / "site.conf"
        ctx = local_context(name="web", port=8080, pkgs=["nginx", "redis"])
        args = {"src": "site.conf.j2", "dest": str(dest)}

        first = await TemplateModule(args, ctx, role_path=role).run()
        second = await TemplateModule(args, ctx, role_path=role).run()

        assert dest.read_text() == "server web:8080\nnginx, redis\n"
        assert first.changed
        assert not second.changed

    @pytest.mark.asyncio
    async def test_bool_filter_available(self, tmp_path):
        role = self._role(tmp_path, "{{ 'yes' | bool }}")
        dest = tmp_path / "out"
        await TemplateModule({"src": "site.conf.j2", "dest": str(dest)}, local_context(), role_path=role).run()
        assert dest.read_text() == "True"

    @pytest.mark.asyncio
    async def test_undefined_variable_fails(self, tmp_path):
        role = self._role(tmp_path, "{{ missing }}")
        with pytest.raises(ModuleError, match="failed to render template"):
            await TemplateModule(
                {"src": "site.conf.j2", "dest": str(tmp_path / "out")}, local_context(), role_path=role,
            ).run()

    @pytest.mark.asyncio
    async def test_missing_template(self, tmp_path):
        with pytest.raises(ModuleError, match="failed to read template file"):
            await TemplateModule(
                {"src": str(tmp_path / "nope.j2"), "dest": str(tmp_path / "out")}, local_context(),
            ).run()


class TestDebugModule:
    """Test debug output."""

    @pytest.mark.asyncio
    async def test_msg(self):
        result = await DebugModule({"msg": "hello"}, local_context()).run()
        assert result.message == "hello"
        assert not result.changed

    @pytest.mark.asyncio
    async def test_default_msg(self):
        result = await DebugModule({}, local_context()).run()
        assert result.message == "Hello world!"

    @pytest.mark.asyncio
    async def test_var(self):
        result = await DebugModule({"var": "facts.arch"}, local_context(facts={"arch": "amd64"})).run()
        assert result.message == "facts.arch: amd64"
        assert result.data == {"facts.arch": "amd64"}

    @pytest.mark.asyncio
    async def test_undefined_var(self):
        result = await DebugModule({"var": "nope"}, local_context()).run()
        assert result.message == "nope: VARIABLE IS NOT DEFINED!"
