"""
Plugin registry for the decision evaluator.

A plugin is any object with a ``name``. Hooks are optional methods:

- ``on_config_update(bundle)``
- ``on_before_decision(context)``, may return a replacement context
- ``on_decision(decision)``
- ``on_resolve(assignments)``
- ``on_exposure(event)``, returning ``False`` cancels the exposure
- ``on_destroy()``

Hooks run in descending priority order. A failing hook is logged and
skipped; it never affects other plugins or the decision itself.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from shared.logging import get_logger
from ..models import ConfigBundle, Context, DecisionResult


@dataclass
class RegisteredPlugin:
    plugin: Any
    priority: int = 0


class PluginManager:
    """Manages plugin registration and hook execution."""

    def __init__(self):
        self._plugins: List[RegisteredPlugin] = []
        self.logger = get_logger("decisions.plugins")

    def register(self, plugin: Any, priority: int = 0) -> bool:
        """Register a plugin; returns ``False`` if the name is taken."""
        name = getattr(plugin, "name", None)
        if not name:
            raise ValueError("Plugin must define a name")

        if self.get(name) is not None:
            self.logger.warning("Plugin already registered, skipping", plugin=name)
            return False

        self._plugins.append(RegisteredPlugin(plugin=plugin, priority=priority))
        # Stable sort keeps registration order among equal priorities
        self._plugins.sort(key=lambda registered: registered.priority, reverse=True)
        return True

    def unregister(self, name: str) -> bool:
        for index, registered in enumerate(self._plugins):
            if registered.plugin.name == name:
                del self._plugins[index]
                return True
        return False

    def get(self, name: str) -> Optional[Any]:
        for registered in self._plugins:
            if registered.plugin.name == name:
                return registered.plugin
        return None

    def get_all(self) -> List[Any]:
        return [registered.plugin for registered in self._plugins]

    def _call(self, hook: str, *args):
        """Call ``hook`` on every plugin that defines it, yielding results."""
        for registered in list(self._plugins):
            handler = getattr(registered.plugin, hook, None)
            if handler is None:
                continue
            try:
                yield handler(*args)
            except Exception as e:
                self.logger.warning(
                    "Plugin hook failed",
                    plugin=registered.plugin.name,
                    hook=hook,
                    error=str(e)
                )

    def run_config_update(self, bundle: ConfigBundle):
        for _ in self._call("on_config_update", bundle):
            pass

    def run_before_decision(self, context: Context) -> Context:
        """Run context hooks in order; each sees the previous result."""
        result = context
        for registered in list(self._plugins):
            handler = getattr(registered.plugin, "on_before_decision", None)
            if handler is None:
                continue
            try:
                modified = handler(result)
            except Exception as e:
                self.logger.warning(
                    "Plugin hook failed",
                    plugin=registered.plugin.name,
                    hook="on_before_decision",
                    error=str(e)
                )
                continue
            if modified:
                result = modified
        return result

    def run_decision(self, decision: DecisionResult):
        for _ in self._call("on_decision", decision):
            pass

    def run_resolve(self, assignments: Dict[str, Any]):
        for _ in self._call("on_resolve", assignments):
            pass

    def run_exposure(self, event: Any) -> bool:
        """Returns ``False`` as soon as a plugin cancels the exposure."""
        for result in self._call("on_exposure", event):
            if result is False:
                return False
        return True

    def run_destroy(self):
        for _ in self._call("on_destroy"):
            pass
