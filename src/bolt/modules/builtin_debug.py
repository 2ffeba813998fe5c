"""
Bolt debug module

Print debug messages during playbook execution.
"""

import json

from bolt.engine.templating import lookup_variable
from bolt.modules.base import Module, ModuleResult, register_module


@register_module
class DebugModule(Module):
    """
    Report a message or the value of a variable. Never changes anything.
    """

    name = "debug"
    required_args = []
    optional_args = {
        "msg": "Hello world!",
        "var": None,
    }

    async def run(self) -> ModuleResult:
        """Build the debug message."""
        var = self.get_str("var")

        if var:
            value = lookup_variable(var, self.context)
            if value is None:
                output = f"{var}: VARIABLE IS NOT DEFINED!"
            elif isinstance(value, (dict, list)):
                output = f"{var}: {json.dumps(value, indent=2, default=str)}"
            else:
                output = f"{var}: {value}"
            return ModuleResult(changed=False, message=output, data={var: value})

        msg = self.get_arg("msg")
        output = msg if isinstance(msg, str) else json.dumps(msg, default=str)
        return ModuleResult(changed=False, message=output, data={"msg": msg})
