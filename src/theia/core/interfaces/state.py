"""Session Store Protocol."""

from typing import Protocol

from theia.core.domain.models import OrchestratorState


class SessionStoreProtocol(Protocol):
    """
    Persistence of the orchestrator state for one session.

    ``save`` is best-effort: it returns False on failure and never raises.
    ``load`` returns None when there is nothing (or nothing readable) to restore.
    """

    async def save(self, state: OrchestratorState) -> bool:
        ...

    async def load(self) -> OrchestratorState | None:
        ...

    async def clear(self) -> None:
        ...
