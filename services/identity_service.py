"""
Identity Service Module

This module decides whether the caller is identified. The IdentityGate is the
single source of truth for session readiness and the current principal; the
AccountService drives the external identity provider and mirrors its results
into the gate.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Callable, Awaitable, List, Any

from config import settings
from data.models import Principal
from services.protocols import IdentityProvider
from utils.exceptions import ValidationError
from utils.logger import get_logger

logger = get_logger(__name__)

PrincipalListener = Callable[[Optional[Principal]], None]


class GateState(Enum):
    UNINITIALIZED = "uninitialized"
    PENDING = "pending"
    SETTLED = "settled"


@dataclass(frozen=True)
class Settled:
    """Result of session restoration, shared by every caller of await_ready()."""
    principal: Optional[Principal]


@dataclass(frozen=True)
class Redirect:
    """Effect produced instead of a protected view when nobody is signed in."""
    to: str


class IdentityGate:
    """
    Tracks session readiness and the current principal.

    The gate moves UNINITIALIZED -> PENDING when start() launches the
    restoration routine and PENDING -> SETTLED exactly once, when that routine
    returns. Sign-in and sign-out afterwards replace the principal but never
    return the gate to PENDING. Subscribers are told about every change.
    """

    def __init__(self):
        self._state = GateState.UNINITIALIZED
        self._principal: Optional[Principal] = None
        self._settled: Optional[Settled] = None
        self._ready = asyncio.Event()
        self._listeners: List[PrincipalListener] = []
        self._restore_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def is_settled(self) -> bool:
        return self._state is GateState.SETTLED

    def start(self, restore: Callable[[], Awaitable[Optional[Principal]]]) -> asyncio.Task:
        """
        Launch the session-restoration routine. Must be called from a running loop.

        Args:
            restore: Coroutine function returning the restored principal or None.

        Returns:
            asyncio.Task: The restoration task.

        Raises:
            RuntimeError: If the gate was already started.
        """
        if self._state is not GateState.UNINITIALIZED:
            raise RuntimeError("Identity gate has already been started")
        self._state = GateState.PENDING
        self._restore_task = asyncio.ensure_future(self._restore(restore))
        return self._restore_task

    async def _restore(self, restore: Callable[[], Awaitable[Optional[Principal]]]) -> None:
        try:
            principal = await restore()
        except Exception as e:
            # No retry: the gate stays PENDING and callers keep showing the loading state
            logger.error(f"Session restoration failed, identity will never settle: {e}", exc_info=True)
            return
        self._settle(principal)

    def _settle(self, principal: Optional[Principal]) -> None:
        self._settled = Settled(principal)
        self._principal = principal
        self._state = GateState.SETTLED
        self._ready.set()
        logger.info(f"Session settled ({'signed in as ' + principal.id if principal else 'signed out'})")
        self._notify()

    async def await_ready(self) -> Settled:
        """Suspend until the session has been restored; immediate once settled."""
        await self._ready.wait()
        return self._settled

    def current_principal(self) -> Optional[Principal]:
        """Latest known principal; None while PENDING."""
        return self._principal

    def set_principal(self, principal: Optional[Principal]) -> None:
        """
        Record a sign-in (principal) or sign-out (None).

        Raises:
            RuntimeError: If the session has not been restored yet.
        """
        if self._state is not GateState.SETTLED:
            raise RuntimeError("Cannot change the principal before the session is restored")
        if principal == self._principal:
            return
        self._principal = principal
        self._notify()

    def subscribe(self, listener: PrincipalListener) -> Callable[[], None]:
        """
        Register a listener called with the principal after every change.

        Returns:
            Callable: Removes the listener when called.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._principal)
            except Exception as e:
                logger.error(f"Identity listener failed: {e}", exc_info=True)

    def require_identity(self, render: Callable[[Principal], Any]) -> Any:
        """
        Render a protected view, or redirect to the login route.

        This is a point-in-time check; use ProtectedView to follow changes.

        Args:
            render: Produces the view for a signed-in principal.

        Returns:
            The render output, or a Redirect when nobody is signed in.
        """
        principal = self.current_principal()
        if principal is None:
            return Redirect(settings.LOGIN_ROUTE)
        return render(principal)


class ProtectedView:
    """A protected view that is re-evaluated on every sign-in and sign-out."""

    def __init__(self, gate: IdentityGate, render: Callable[[Principal], Any],
                 on_change: Optional[Callable[[Any], None]] = None):
        self.gate = gate
        self.render = render
        self.on_change = on_change
        self.output = gate.require_identity(render)
        self._unsubscribe = gate.subscribe(self._reevaluate)

    def _reevaluate(self, principal: Optional[Principal]) -> None:
        self.output = self.gate.require_identity(self.render)
        if self.on_change:
            self.on_change(self.output)

    @property
    def redirected(self) -> bool:
        return isinstance(self.output, Redirect)

    def close(self) -> None:
        self._unsubscribe()


class AccountService:
    """Async facade over the identity provider that keeps the gate current."""

    def __init__(self, provider: IdentityProvider, gate: IdentityGate):
        self.provider = provider
        self.gate = gate

    async def restore_session(self) -> Optional[Principal]:
        return await asyncio.to_thread(self.provider.restore_session)

    def start(self) -> asyncio.Task:
        """Begin session restoration; the gate settles when it completes."""
        return self.gate.start(self.restore_session)

    async def sign_in(self, email: str, password: str) -> Principal:
        """
        Sign in and make the principal current.

        Raises:
            ValidationError: If email or password is empty.
            AuthError: If the provider rejects the credentials.
        """
        if not email or not password:
            raise ValidationError("Email and password are required")
        principal = await asyncio.to_thread(self.provider.sign_in, email, password)
        self.gate.set_principal(principal)
        return principal

    async def sign_up(self, display_name: str, email: str, password: str) -> Principal:
        """
        Create an account with a display name and make it current.

        Raises:
            ValidationError: If a field is empty.
            AuthError: If the account cannot be created.
        """
        if not display_name or not email or not password:
            raise ValidationError("Name, email and password are required")
        principal = await asyncio.to_thread(self.provider.sign_up, display_name, email, password)
        self.gate.set_principal(principal)
        return principal

    async def sign_out(self) -> None:
        await asyncio.to_thread(self.provider.sign_out)
        self.gate.set_principal(None)
