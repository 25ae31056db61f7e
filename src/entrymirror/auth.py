"""Authentication session for a repository connection."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from entrymirror.cache.manager import EntryCache
from entrymirror.entry import Entry, IdentityRepresentation
from entrymirror.exceptions import AuthError, MirrorError
from entrymirror.listeners import Listener, ListenerRegistry

logger = logging.getLogger(__name__)

LOGIN = "login"
LOGOUT = "logout"

GUEST_SUBJECT = "guest"


class AuthState(Enum):
    NO_SESSION = "no_session"
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class Identity:
    """Who the repository considers the current session to be.

    Attributes:
        subject: User name, 'guest' for anonymous sessions
        id: Entry id of the user's principal entry
        home_context: Entry id of the user's home context, if any
    """

    subject: str
    id: str
    home_context: Optional[str] = None

    @property
    def is_guest(self) -> bool:
        return self.subject == GUEST_SUBJECT

    @classmethod
    def from_representation(cls, rep: IdentityRepresentation) -> "Identity":
        """Build an identity from who-am-I information.

        Raises:
            AuthError: If the representation lacks the user name or id
        """
        try:
            return cls(subject=rep["user"], id=rep["id"], home_context=rep.get("homecontext"))
        except (KeyError, TypeError) as e:
            raise AuthError(f"Malformed identity information: {rep!r}") from e


GUEST = Identity(GUEST_SUBJECT, "_guest")


class AuthSession:
    """Tracks the authenticated identity and keeps the cache consistent with it.

    Identity lookups are single-flight: callers asking while a lookup is in
    progress share it instead of issuing their own request. Logging in or out
    invalidates every cached entry, since access rights may differ under the
    new identity, and supersedes lookups still in progress. Each lookup
    remembers the session generation it started in and only records its
    result if no login or logout happened meanwhile.

    Auth listeners are called as ``listener(topic, identity)`` with topic
    'login' or 'logout'.
    """

    def __init__(
        self,
        transport: Any,
        cache: EntryCache,
        load_identity_entry: Callable[[Identity], Awaitable[Entry]],
        max_age: int = 604800,
    ):
        """Initialize an auth session.

        Args:
            transport: Provides ``fetch_identity`` and ``perform_auth_exchange``
            cache: Entry cache of the repository connection
            load_identity_entry: Coroutine function loading an identity's entry
            max_age: Default session lifetime in seconds for ``login``
        """
        self._transport = transport
        self._cache = cache
        self._load_identity_entry = load_identity_entry
        self._max_age = max_age
        self._listeners = ListenerRegistry()

        self._identity: Optional[Identity] = None
        self._identity_entry: Optional[Entry] = None
        self._identity_lookup: Optional[asyncio.Future] = None
        self._identity_entry_lookup: Optional[asyncio.Future] = None
        self._generation = 0

    @property
    def identity(self) -> Optional[Identity]:
        """The last known identity, None before the first lookup."""
        return self._identity

    @property
    def state(self) -> AuthState:
        if self._identity is None:
            return AuthState.NO_SESSION
        if self._identity.is_guest:
            return AuthState.ANONYMOUS
        return AuthState.AUTHENTICATED

    async def get_current_identity(self, force_refresh: bool = False) -> Identity:
        """Get the identity of the current session.

        Args:
            force_refresh: Ask the repository even if the identity is known

        Returns:
            Current identity

        Raises:
            AuthError: If the lookup fails
        """
        if self._identity is not None and not force_refresh:
            return self._identity
        if self._identity_lookup is None:
            self._identity_lookup = asyncio.ensure_future(
                self._lookup_identity(self._generation)
            )
        # Shielded so one cancelled caller does not cancel the shared lookup
        return await asyncio.shield(self._identity_lookup)

    async def _lookup_identity(self, generation: int) -> Identity:
        try:
            rep = await self._transport.fetch_identity()
            identity = Identity.from_representation(rep)
        except Exception as e:
            if generation != self._generation:
                # Superseded by a login or logout, the failure predates it
                logger.debug(f"Discarding failed identity lookup superseded by login/logout: {e}")
                return await self.get_current_identity()
            if isinstance(e, MirrorError):
                raise
            logger.error(f"Identity lookup failed: {e}")
            raise AuthError(f"Identity lookup failed: {e}") from e
        finally:
            if generation == self._generation:
                self._identity_lookup = None

        if generation != self._generation:
            # Superseded by a login or logout, the result may predate it
            logger.debug("Discarding identity lookup superseded by login/logout")
            return await self.get_current_identity()
        self._identity = identity
        return identity

    async def get_current_identity_entry(self, force_refresh: bool = False) -> Entry:
        """Get the principal entry of the current identity.

        Args:
            force_refresh: Look up both the identity and its entry again

        Returns:
            Entry of the current user (or of the guest principal)

        Raises:
            AuthError: If the identity lookup fails
            FetchError: If the entry cannot be loaded
        """
        if self._identity_entry is not None and not force_refresh:
            return self._identity_entry
        if self._identity_entry_lookup is None:
            self._identity_entry_lookup = asyncio.ensure_future(
                self._lookup_identity_entry(self._generation, force_refresh)
            )
        return await asyncio.shield(self._identity_entry_lookup)

    async def _lookup_identity_entry(self, generation: int, force_refresh: bool) -> Entry:
        try:
            identity = await self.get_current_identity(force_refresh)
            entry = await self._load_identity_entry(identity)
        except Exception as e:
            if generation != self._generation:
                logger.debug(f"Discarding failed identity entry lookup superseded by login/logout: {e}")
                return await self.get_current_identity_entry()
            raise
        finally:
            if generation == self._generation:
                self._identity_entry_lookup = None

        if generation != self._generation:
            logger.debug("Discarding identity entry lookup superseded by login/logout")
            return await self.get_current_identity_entry()
        self._identity_entry = entry
        return entry

    async def login(
        self, subject: str, secret: str, max_age: Optional[int] = None
    ) -> Identity:
        """Authenticate as a user.

        Logging in as the user already signed in does nothing.

        Args:
            subject: User name
            secret: Password
            max_age: Session lifetime in seconds, defaults to the configured one

        Returns:
            The new identity

        Raises:
            AuthError: If authentication fails, the session is left unchanged
        """
        if self._identity is not None and self._identity.subject == subject:
            return await self.get_current_identity()

        credentials: Dict[str, Any] = {
            "user": subject,
            "password": secret,
            "max_age": max_age if max_age is not None else self._max_age,
        }
        try:
            rep = await self._transport.perform_auth_exchange(credentials)
        except MirrorError:
            logger.warning(f"Login as {subject} failed")
            raise
        except Exception as e:
            logger.error(f"Login as {subject} failed: {e}")
            raise AuthError(f"Login as {subject} failed: {e}") from e

        identity = Identity.from_representation(rep)
        self._switch_identity(identity, LOGIN)
        return identity

    async def logout(self) -> Identity:
        """Sign out, returning to the guest identity.

        Returns:
            The guest identity

        Raises:
            AuthError: If signing out fails, the session is left unchanged
        """
        if self._identity is not None and self._identity.is_guest:
            return await self.get_current_identity()

        try:
            await self._transport.perform_auth_exchange(None)
        except MirrorError:
            logger.warning("Logout failed")
            raise
        except Exception as e:
            logger.error(f"Logout failed: {e}")
            raise AuthError(f"Logout failed: {e}") from e

        self._switch_identity(GUEST, LOGOUT)
        return GUEST

    def _switch_identity(self, identity: Identity, topic: str) -> None:
        """Replace the identity, supersede pending lookups and invalidate the cache."""
        self._generation += 1
        self._identity_lookup = None
        self._identity_entry_lookup = None
        self._identity = identity
        self._identity_entry = None
        self._cache.invalidate_all()
        logger.info(f"{topic}: session is now {identity.subject}")
        self._listeners.notify(topic, identity)

    def subscribe(self, listener: Listener) -> Listener:
        """Register an auth listener, called as ``listener(topic, identity)``."""
        return self._listeners.add(listener)

    def unsubscribe(self, listener: Listener) -> None:
        """Remove an auth listener. Unknown listeners are ignored."""
        self._listeners.remove(listener)
