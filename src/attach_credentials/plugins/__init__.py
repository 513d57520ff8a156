"""Request-plugin system for attach_credentials.

Key classes:

* :class:`RequestPlugin` -- Abstract base class that all plugins extend.
* :class:`PluginRunner` -- Executes plugins in registration order.
* :class:`RequestContext` -- Mutable dataclass carrying per-request state.
* :class:`AttachCredentialsPlugin` -- The credential-attach plugin.

Example::

    from attach_credentials.plugins import PluginRunner, attach_credentials_plugin

    runner = PluginRunner([attach_credentials_plugin(provider_name="github", ...)])
    params = await runner.run({"url": "/user", "user": alice})
"""

from attach_credentials.plugins.attach import (
    AttachCredentialsPlugin,
    attach_credentials_plugin,
)
from attach_credentials.plugins.base import RequestPlugin
from attach_credentials.plugins.hooks import PluginRunner, RequestContext

__all__ = [
    "AttachCredentialsPlugin",
    "PluginRunner",
    "RequestContext",
    "RequestPlugin",
    "attach_credentials_plugin",
]
