"""
Session Orchestrator for SmartFinance

This module ties together the components for one user session:
1. Mode selection (demo vs live) and the backend that goes with it
2. The ledger store opened against that backend
3. Dashboard figures and AI advice on top of the store's view

DESIGN DECISION: The mode is decided ONCE, when the session starts.
- demo: in-memory backend seeded with sample data, nothing leaves the process
- live: remote-synced backend scoped to the signed-in user

A live request without a user id or without remote configuration falls
back to demo. Changing identity or mode means ending the session and
starting a new one; the store never switches backends underneath a caller.
"""

from datetime import date
from enum import Enum
from typing import Callable, NamedTuple, Optional

import structlog

from smartfinance.agents import FinancialAdvisorAgent
from smartfinance.audit import AuditLogger
from smartfinance.config import AppSettings, GoogleSheetsSettings, get_settings
from smartfinance.ledger.errors import BackendUnavailableError
from smartfinance.ledger.store import LedgerStore
from smartfinance.models.audit import AuditEventBuilder
from smartfinance.models.catalog import DEFAULT_CATEGORIES, demo_seed
from smartfinance.models.ledger import Category
from smartfinance.reports import DashboardSummary, build_dashboard
from smartfinance.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerBackend,
    InMemoryAuditStorage,
    LedgerBackend,
    LocalLedgerBackend,
)


logger = structlog.get_logger(__name__)


class SessionMode(str, Enum):
    """Which backend family a session runs on."""
    DEMO = "demo"
    LIVE = "live"


class BackendSelection(NamedTuple):
    """Outcome of mode selection."""
    mode: SessionMode
    user_id: str
    backend: LedgerBackend
    audit_storage: AuditStorageInterface
    fallback_reason: Optional[str] = None


RemoteFactory = Callable[[], tuple[LedgerBackend, AuditStorageInterface]]


class ModeSelector:
    """
    Chooses the backend for a new session.

    The remote backend is only offered when both a user id and a remote
    configuration (or an injected remote factory) are present.
    """

    def __init__(
        self,
        app_settings: Optional[AppSettings] = None,
        sheets_settings: Optional[GoogleSheetsSettings] = None,
        remote_factory: Optional[RemoteFactory] = None,
    ):
        self._app = app_settings or get_settings().app
        self._sheets = sheets_settings or get_settings().google_sheets
        self._remote_factory = remote_factory

    @property
    def remote_available(self) -> bool:
        return self._remote_factory is not None or self._sheets.is_configured

    def _google_sheets_factory(self) -> tuple[LedgerBackend, AuditStorageInterface]:
        client = GoogleSheetsClient(self._sheets)
        return GoogleSheetsLedgerBackend(client), GoogleSheetsAuditStorage(client)

    def select(
        self,
        requested: SessionMode,
        user_id: Optional[str] = None,
    ) -> BackendSelection:
        """Pick the backend for ``requested`` mode, falling back to demo."""
        fallback_reason = None
        if requested == SessionMode.LIVE:
            if not user_id:
                fallback_reason = "no signed-in user"
            elif not self.remote_available:
                fallback_reason = "remote storage not configured"
            else:
                factory = self._remote_factory or self._google_sheets_factory
                backend, audit_storage = factory()
                return BackendSelection(
                    mode=SessionMode.LIVE,
                    user_id=user_id,
                    backend=backend,
                    audit_storage=audit_storage,
                )
            logger.warning(
                "live_mode_unavailable",
                reason=fallback_reason,
                falling_back_to="demo",
            )

        seed = demo_seed() if self._app.seed_demo_data else None
        return BackendSelection(
            mode=SessionMode.DEMO,
            user_id=self._app.demo_user_id,
            backend=LocalLedgerBackend(seed=seed),
            audit_storage=InMemoryAuditStorage(),
            fallback_reason=fallback_reason,
        )


class LedgerSession:
    """
    One user's session: a fixed mode, a fixed identity and an open store.

    Usage:
        session = await LedgerSession.start(SessionMode.LIVE, user_id="uid-123")
        await session.store.record_transaction(...)
        summary = session.dashboard()
        await session.end()
    """

    def __init__(
        self,
        mode: SessionMode,
        user_id: str,
        store: LedgerStore,
        audit_logger: AuditLogger,
        advisor: Optional[FinancialAdvisorAgent] = None,
        selector: Optional[ModeSelector] = None,
    ):
        self._mode = mode
        self._user_id = user_id
        self._store = store
        self._audit = audit_logger
        self._advisor = advisor
        self._selector = selector
        self._ended = False

    @classmethod
    async def start(
        cls,
        mode: Optional[SessionMode] = None,
        user_id: Optional[str] = None,
        *,
        selector: Optional[ModeSelector] = None,
        advisor: Optional[FinancialAdvisorAgent] = None,
        categories: tuple[Category, ...] = DEFAULT_CATEGORIES,
    ) -> "LedgerSession":
        """
        Select a backend, open the ledger and return the running session.

        Raises:
            BackendUnavailableError: If the live backend handshake fails
        """
        selector = selector or ModeSelector()
        if mode is None:
            mode = SessionMode(get_settings().app.default_mode)
        selection = selector.select(mode, user_id)

        audit = AuditLogger(selection.audit_storage, user_id=selection.user_id)
        if selection.fallback_reason:
            await audit.log(
                AuditEventBuilder.mode_fallback(mode.value, selection.fallback_reason)
            )

        store = LedgerStore(
            selection.backend,
            categories=categories,
            user_id=selection.user_id,
            audit_logger=audit,
        )
        try:
            await store.open()
        except BackendUnavailableError as e:
            await audit.log(AuditEventBuilder.system_error(
                error_type="BackendUnavailableError",
                error_message=str(e),
                details={"backend": selection.backend.name},
            ))
            raise
        await audit.log(AuditEventBuilder.session_started(
            mode=selection.mode.value,
            user_id=selection.user_id,
            backend=selection.backend.name,
        ))
        return cls(
            mode=selection.mode,
            user_id=selection.user_id,
            store=store,
            audit_logger=audit,
            advisor=advisor,
            selector=selector,
        )

    @property
    def mode(self) -> SessionMode:
        return self._mode

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    @property
    def ended(self) -> bool:
        return self._ended

    async def end(self) -> None:
        """Close subscriptions and stop the store. Safe to call twice."""
        if self._ended:
            return
        self._ended = True
        await self._store.close()
        await self._audit.log(
            AuditEventBuilder.session_ended(self._mode.value, self._user_id)
        )

    async def restart(
        self,
        mode: SessionMode,
        user_id: Optional[str] = None,
    ) -> "LedgerSession":
        """End this session and start a new one for another mode or identity."""
        await self.end()
        return await LedgerSession.start(
            mode,
            user_id,
            selector=self._selector,
            advisor=self._advisor,
            categories=self._store.categories,
        )

    def dashboard(self, today: Optional[date] = None) -> DashboardSummary:
        """Dashboard figures for the month containing ``today``."""
        return build_dashboard(self._store.current_view(), self._store.categories, today)

    async def request_advice(self) -> str:
        """AI advice on the current ledger. Never raises."""
        advisor = self._advisor or FinancialAdvisorAgent()
        view = self._store.current_view()
        if not advisor.available:
            await self._audit.log(
                AuditEventBuilder.advice_unavailable(self._user_id, "missing API key")
            )
        else:
            await self._audit.log(
                AuditEventBuilder.advice_requested(self._user_id, len(view.transactions))
            )
        return await advisor.request_summary(
            view.transactions, view.accounts, self._store.categories
        )
