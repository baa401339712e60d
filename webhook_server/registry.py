"""
Webhook action registry.

Maps endpoint names to the configured command template and execution
context. The registry is built once from configuration and never mutated.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .security import ConfigError
from .templating import check_template, referenced_parameters

DEFAULT_EXECUTION_TARGET = "webhook"


@dataclass(frozen=True)
class Action:
    """
    A named, configured command.

    - name: Unique identifier, also the endpoint path segment
    - command_template: Command with `{{name}}` placeholders
    - working_directory: Directory the runner executes the command in
    - execution_target: Runner group the task is added to
    """
    name: str
    command_template: str
    working_directory: str
    execution_target: str = DEFAULT_EXECUTION_TARGET

    @property
    def parameters(self) -> List[str]:
        return referenced_parameters(self.command_template)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "command": self.command_template,
            "cwd": self.working_directory,
            "pueue_group": self.execution_target,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Action':
        """Build an action from a `webhooks` entry of the config file."""
        if not isinstance(data, dict):
            raise ConfigError("webhooks", "entries must be mappings")
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ConfigError("webhooks.name", "is required")
        for key in ("command", "cwd"):
            if not isinstance(data.get(key), str) or not data[key]:
                raise ConfigError(f"webhooks.{name}.{key}", "is required")
        try:
            check_template(data["command"])
        except ValueError as e:
            raise ConfigError(f"webhooks.{name}.command", str(e)) from e
        group = data.get("pueue_group") or DEFAULT_EXECUTION_TARGET
        return cls(
            name=name,
            command_template=data["command"],
            working_directory=data["cwd"],
            execution_target=str(group),
        )


class ActionRegistry:
    """
    Read-only lookup of actions by exact, case-sensitive name.
    """

    def __init__(self, actions: Iterable[Action] = ()):
        table: Dict[str, Action] = {}
        for action in actions:
            if action.name in table:
                raise ConfigError("webhooks", f"duplicate webhook name '{action.name}'")
            table[action.name] = action
        self._actions: Mapping[str, Action] = MappingProxyType(table)

    def resolve(self, name: str) -> Optional[Action]:
        """Get the action registered under `name`, or None."""
        return self._actions.get(name)

    def list_actions(self) -> List[str]:
        """List all registered action names."""
        return list(self._actions.keys())

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, name: object) -> bool:
        return name in self._actions
