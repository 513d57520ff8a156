"""Request context and runner for the request-plugin chain.

This module provides two core components:

* :class:`RequestContext` -- a mutable dataclass carrying per-request state
  through the plugin chain.
* :class:`PluginRunner` -- executes :meth:`RequestPlugin.process` across
  all registered plugins in registration order.

The chain follows a pipeline pattern: each plugin receives the output of
the previous plugin, enabling additive transformations (attaching
credentials, adding tracing headers, and so on). The first exception
aborts the chain.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from attach_credentials.exceptions import PluginError

if TYPE_CHECKING:
    from attach_credentials.plugins.base import RequestPlugin

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """Mutable context object threaded through the plugin chain.

    Attributes:
        method: HTTP method (e.g. ``"GET"``), if known.
        url: Target URL, if known.
        extra: Free-form state plugins may share with each other.
        applied: Names of the plugins that have processed the request so
            far, in order.
    """

    method: str = ""
    url: str = ""
    extra: dict[str, Any] = field(default_factory=dict)
    applied: list[str] = field(default_factory=list)


class PluginRunner:
    """Executes request plugins in registration order.

    Example::

        runner = PluginRunner()
        runner.register(attach_credentials_plugin({"provider_name": "github", ...}))
        params = await runner.run({"url": "/user", "user": "alice"})
    """

    def __init__(self, plugins: Optional[list[RequestPlugin]] = None) -> None:
        self._plugins: dict[str, RequestPlugin] = {}
        for plugin in plugins or []:
            self.register(plugin)

    def register(self, plugin: RequestPlugin) -> None:
        """Append *plugin* to the chain.

        Raises:
            PluginError: If a plugin with the same name is already registered.
        """
        if plugin.name in self._plugins:
            raise PluginError(f"Plugin '{plugin.name}' is already registered")
        self._plugins[plugin.name] = plugin
        logger.debug("Registered request plugin '%s'", plugin.name)

    def get_plugin(self, name: str) -> RequestPlugin:
        try:
            return self._plugins[name]
        except KeyError:
            raise PluginError(f"Plugin '{name}' is not registered") from None

    def list_plugins(self) -> list[str]:
        return list(self._plugins)

    async def run(
        self,
        params: Mapping[str, Any],
        request_context: Optional[RequestContext] = None,
    ) -> Mapping[str, Any]:
        """Run *params* through every plugin and return the final params."""
        ctx = request_context or RequestContext()
        for name, plugin in self._plugins.items():
            params = await plugin.process(ctx, params)
            ctx.applied.append(name)
        return params
