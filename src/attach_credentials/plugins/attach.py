"""The ``attach-credentials`` request plugin.

Wraps :class:`~attach_credentials.orchestrator.CredentialResolver` in the
:class:`~attach_credentials.plugins.base.RequestPlugin` interface so it can
run inside a :class:`~attach_credentials.plugins.hooks.PluginRunner` chain.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from attach_credentials.options import AttachCredentialsOptions
from attach_credentials.orchestrator import CredentialResolver
from attach_credentials.plugins.base import RequestPlugin
from attach_credentials.plugins.hooks import RequestContext

PLUGIN_NAME = "attach-credentials"


class AttachCredentialsPlugin(RequestPlugin):
    """Attach the request subject's provider credentials to the params."""

    def __init__(self, resolver: CredentialResolver) -> None:
        self.resolver = resolver

    @property
    def name(self) -> str:
        return PLUGIN_NAME

    @property
    def description(self) -> str:
        return f"Attach {self.resolver.provider} credentials of the request subject"

    async def process(
        self, request_context: RequestContext, params: Mapping[str, Any]
    ) -> Mapping[str, Any]:
        return await self.resolver.resolve(params)


def attach_credentials_plugin(
    options: AttachCredentialsOptions | Mapping[str, Any] | None = None,
    **overrides: Any,
) -> AttachCredentialsPlugin:
    """Create an :class:`AttachCredentialsPlugin` from options.

    Raises:
        ConfigError: If the options are invalid (e.g. ``provider_name`` is
            missing or not a string).
    """
    return AttachCredentialsPlugin(CredentialResolver(options, **overrides))
