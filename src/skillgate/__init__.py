"""skillgate - progressive capability disclosure for MCP servers.

This package decides which registered tools, resources and prompts a request
may discover, synthesizes skill manuals for capabilities kept out of
discovery, and compiles routers into invokable meta-tools.

Exports:
    __version__: Package version string.
    SkillgateServer: Setup-time builder producing a DiscoveryFacade.
"""

from __future__ import annotations

from skillgate.server import SkillgateServer

__all__ = ["SkillgateServer", "__version__"]

__version__ = "0.3.0"
