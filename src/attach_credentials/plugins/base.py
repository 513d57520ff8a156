"""Abstract base class for request plugins.

A request plugin sits between the caller building an HTTP request and the
HTTP client sending it. Each plugin exposes a :attr:`~RequestPlugin.name`
and one coroutine, :meth:`~RequestPlugin.process`, which receives the
request context and the current params and returns the params to hand to
the next plugin.

Example:
    Minimal plugin implementation::

        class UserAgentPlugin(RequestPlugin):
            @property
            def name(self) -> str:
                return "user-agent"

            async def process(self, request_context, params):
                return deep_merge(params, {"headers": {"user-agent": "me/1.0"}})
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from attach_credentials.plugins.hooks import RequestContext


class RequestPlugin(ABC):
    """Base class for all request plugins.

    Subclasses must implement :attr:`name` and :meth:`process`. Plugins are
    chained by :class:`~attach_credentials.plugins.hooks.PluginRunner` in
    registration order.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the unique plugin name used for registration and logging."""
        ...

    @property
    def description(self) -> str:
        return ""

    @abstractmethod
    async def process(
        self, request_context: RequestContext, params: Mapping[str, Any]
    ) -> Mapping[str, Any]:
        """Transform the outbound request params.

        Args:
            request_context: Per-request state shared by all plugins.
            params: The params produced by the previous plugin.

        Returns:
            The params for the next plugin. Implementations must not mutate
            *params* in place.

        Raises:
            AttachCredentialsError: To abort the request.
        """
        ...
