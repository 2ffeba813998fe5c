"""
Bolt template module

Render a Jinja2 template on the controller and install it on the target.
"""

from jinja2 import Environment, StrictUndefined, TemplateError

from bolt.engine.templating import FILTERS
from bolt.modules.base import Module, ModuleResult, register_module
from bolt.modules.fileutil import (
    ensure_attributes,
    make_backup,
    parse_mode,
    remote_checksum,
    resolve_source,
    sha256_hex,
)


def make_environment() -> Environment:
    """Jinja2 environment used for template files."""
    env = Environment(
        undefined=StrictUndefined,
        # Don't auto-escape (we're not rendering HTML)
        autoescape=False,
        # Keep trailing newlines
        keep_trailing_newline=True,
    )
    # Jinja2's own filters win; ours fill the gaps (e.g. bool)
    for name, func in FILTERS.items():
        env.filters.setdefault(name, func)
    return env


@register_module
class TemplateModule(Module):
    """
    Template a file to the target.

    Relative ``src`` paths of role tasks resolve to ``<role>/templates``.
    All play variables (facts, registered results, loop item) are available
    in the template.
    """

    name = "template"
    required_args = ["src", "dest"]
    optional_args = {
        "mode": "0644",
        "owner": None,
        "group": None,
        "backup": False,
    }

    async def run(self) -> ModuleResult:
        """Render and copy the template."""
        src = self.get_str("src")
        dest = self.get_str("dest")
        mode = self.get_arg("mode")
        owner = self.get_str("owner")
        group = self.get_str("group")

        try:
            mode_bits = parse_mode(mode)
        except ValueError as e:
            raise self.fail(str(e))

        rendered = self.render(src)
        checksum = sha256_hex(rendered)

        dest_exists, dest_checksum = await remote_checksum(self, dest)

        if dest_exists and checksum == dest_checksum:
            if await ensure_attributes(self, dest, mode, owner, group):
                return ModuleResult(changed=True, message="attributes updated", data={"dest": dest})
            return ModuleResult(
                changed=False,
                message="template already rendered with correct content and attributes",
                data={"dest": dest, "checksum": checksum},
            )

        data = {"src": src, "dest": dest, "checksum": checksum}
        if dest_exists and self.get_bool("backup"):
            data["backup_file"] = await make_backup(self, dest)

        await self.connection.upload(rendered, dest, mode_bits, become_user=self.become_user)
        await ensure_attributes(self, dest, mode, owner, group)

        return ModuleResult(
            changed=True,
            message="template updated" if dest_exists else "template rendered",
            data=data,
        )

    def render(self, src: str) -> bytes:
        """Render the template file with the play's variables."""
        path = resolve_source(self, src, "templates")
        try:
            source = path.read_text(encoding="utf-8")
        except OSError as e:
            raise self.fail(f"failed to read template file '{path}': {e}")

        variables = dict(self.context.vars)
        variables.update(getattr(self.context, "registered", {}))

        try:
            rendered = make_environment().from_string(source).render(**variables)
        except TemplateError as e:
            raise self.fail(f"failed to render template {src}: {e}")

        return rendered.encode("utf-8")
