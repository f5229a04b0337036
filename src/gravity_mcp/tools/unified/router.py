"""Action routing for unified tools.

Each unified tool exposes a single ``action`` parameter; an ``ActionRouter``
maps the action name (or one of its aliases) to a handler and forwards the
remaining keyword arguments unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple


class ActionRouterError(ValueError):
    """Raised when an action is not registered on a router."""

    def __init__(self, message: str, *, allowed_actions: Iterable[str] = ()):
        super().__init__(message)
        self.allowed_actions: List[str] = list(allowed_actions)


@dataclass(frozen=True)
class ActionDefinition:
    """A named action and the handler that serves it."""

    name: str
    handler: Callable[..., Any]
    summary: str = ""
    aliases: Tuple[str, ...] = field(default_factory=tuple)


class ActionRouter:
    """Dispatch ``action`` strings to registered handlers."""

    def __init__(self, tool_name: str, actions: Iterable[ActionDefinition]):
        self.tool_name = tool_name
        self._actions: Dict[str, ActionDefinition] = {}
        self._lookup: Dict[str, ActionDefinition] = {}
        for definition in actions:
            for key in (definition.name, *definition.aliases):
                if key in self._lookup:
                    raise ValueError(f"Duplicate action '{key}' for tool '{tool_name}'")
                self._lookup[key] = definition
            self._actions[definition.name] = definition

    def allowed_actions(self) -> List[str]:
        return list(self._actions)

    def describe(self) -> Dict[str, str]:
        """Action name to summary, in registration order."""
        return {name: definition.summary for name, definition in self._actions.items()}

    def resolve(self, action: Optional[str]) -> ActionDefinition:
        key = action.strip().lower() if isinstance(action, str) else ""
        definition = self._lookup.get(key)
        if definition is None:
            raise ActionRouterError(
                f"Unsupported {self.tool_name} action '{action}'",
                allowed_actions=self.allowed_actions(),
            )
        return definition

    def dispatch(self, action: Optional[str], **kwargs: Any) -> Any:
        """Invoke the handler for ``action`` with ``kwargs``.

        Raises:
            ActionRouterError: If ``action`` is not registered
        """
        return self.resolve(action).handler(**kwargs)


__all__ = ["ActionDefinition", "ActionRouter", "ActionRouterError"]
