"""Objects shared by every MCP tool handler."""

from dataclasses import dataclass

from ..config import Config
from ..core.client import ZoteroClient
from ..sync.engine import SyncOrchestrator
from ..sync.state import SyncStateStore


@dataclass
class ServerContext:
    """Long-lived state built once at server startup.

    Attributes:
        config: Resolved configuration.
        client: Blocking Zotero client (used directly by ``ping``).
        orchestrator: The single orchestrator; its single-flight guard
            covers every tool call.
        state_store: Where the orchestrator's state is persisted.
    """

    config: Config
    client: ZoteroClient
    orchestrator: SyncOrchestrator
    state_store: SyncStateStore
