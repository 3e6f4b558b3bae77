"""
Protocol-based interfaces for the collaborators of the verification cycle.
The orchestrator only depends on these contracts, so tests can inject fakes.
"""
from typing import Protocol, Optional, List, Iterable, Dict, runtime_checkable

from models.record import Record, StoreStatistics
from models.run import DispatchContext, ScrapeResult, VerificationRun
from models.session import Credential


@runtime_checkable
class IAuthenticator(Protocol):
    """Login mechanics for the remote portal."""

    async def login(self) -> Credential:
        """Performs a full login. Raises AuthenticationError on failure."""
        ...

    async def probe(self, credential: Credential) -> bool:
        """Cheap validity check; False when redirected to the login gate."""
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class IScraperAdapter(Protocol):
    """Turns an authenticated page into a list of observed records."""

    async def scrape(self, credential: Credential) -> ScrapeResult:
        """Raises ScrapeError (or SessionExpiredError) on hard failure."""
        ...


@runtime_checkable
class INotifier(Protocol):
    """Delivery channel. Sending twice for the same record must be harmless."""

    async def send(self, record: Record, context: DispatchContext) -> Optional[int]:
        """Returns the platform message ID. Raises NotifierError on failure."""
        ...


@runtime_checkable
class IStateStore(Protocol):
    """Record table plus append-only run history. Raises PersistenceError."""

    def get_record(self, number: str) -> Optional[Record]:
        ...

    def get_records(self, numbers: Iterable[str]) -> Dict[str, Record]:
        ...

    def upsert_record(self, record: Record) -> None:
        ...

    def append_run(self, run: VerificationRun) -> None:
        ...

    def get_pending_unsent(self) -> List[Record]:
        ...

    def get_all_records(self) -> List[Record]:
        ...

    def get_runs(self, limit: int = 20) -> List[VerificationRun]:
        ...

    def get_statistics(self) -> StoreStatistics:
        ...

    def reset_records(self) -> int:
        ...

    def close(self) -> None:
        ...
