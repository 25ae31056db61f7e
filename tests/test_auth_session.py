"""Unit tests for the auth session."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import FakeTransport, make_entry, settle
from entrymirror.auth import GUEST, AuthSession, AuthState, Identity
from entrymirror.exceptions import AuthError


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def load_entry():
    """Loader returning a principal entry per identity."""
    return AsyncMock(side_effect=lambda identity: make_entry(identity.id))


@pytest.fixture
def session(transport, cache, load_entry):
    return AuthSession(transport, cache, load_entry)


@pytest.fixture
def populated(cache):
    """Cache holding 50 fresh entries."""
    entries = [make_entry(n) for n in range(50)]
    cache.put_all(entries)
    return entries


class TestIdentity:
    """Test identity values."""

    def test_from_representation(self):
        identity = Identity.from_representation(
            {"user": "alice", "id": "7", "homecontext": "3"}
        )
        assert identity == Identity("alice", "7", "3")
        assert identity.is_guest is False

    def test_guest(self):
        assert GUEST.is_guest is True

    def test_malformed(self):
        with pytest.raises(AuthError, match="Malformed"):
            Identity.from_representation({"id": "7"})


class TestCurrentIdentity:
    """Test who-am-I lookups."""

    @pytest.mark.asyncio
    async def test_lookup(self, session, transport):
        """Test the first call asks the repository."""
        identity = await session.get_current_identity()

        assert identity == GUEST
        assert transport.count("fetch_identity") == 1
        assert session.state is AuthState.ANONYMOUS

    @pytest.mark.asyncio
    async def test_known_identity_is_reused(self, session, transport):
        """Test later calls are answered locally."""
        await session.get_current_identity()
        await session.get_current_identity()

        assert transport.count("fetch_identity") == 1

    @pytest.mark.asyncio
    async def test_force_refresh(self, session, transport):
        """Test force_refresh asks again."""
        await session.get_current_identity()
        await session.get_current_identity(force_refresh=True)

        assert transport.count("fetch_identity") == 2

    @pytest.mark.asyncio
    async def test_single_flight(self, session, transport):
        """Test concurrent callers share one lookup."""
        transport.gate = asyncio.Event()
        first = asyncio.ensure_future(session.get_current_identity())
        second = asyncio.ensure_future(session.get_current_identity(force_refresh=True))
        await settle()
        transport.gate.set()

        results = await asyncio.gather(first, second)

        assert transport.count("fetch_identity") == 1
        assert results[0] == results[1] == GUEST

    @pytest.mark.asyncio
    async def test_pending_cleared_after_settling(self, session, transport):
        """Test a settled lookup is not reused for forced refreshes."""
        await session.get_current_identity()
        transport.identity = {"user": "carol", "id": "9"}

        assert (await session.get_current_identity(force_refresh=True)).subject == "carol"

    @pytest.mark.asyncio
    async def test_failure(self, session, transport):
        """Test lookup failures surface as AuthError and can be retried."""
        transport.fail = ConnectionError("down")
        with pytest.raises(AuthError, match="down"):
            await session.get_current_identity()
        assert session.state is AuthState.NO_SESSION

        transport.fail = None
        assert await session.get_current_identity() == GUEST

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_others(self, session, transport):
        """Test one waiter giving up leaves the shared lookup running."""
        transport.gate = asyncio.Event()
        first = asyncio.ensure_future(session.get_current_identity())
        second = asyncio.ensure_future(session.get_current_identity())
        await settle()
        first.cancel()
        transport.gate.set()

        assert await second == GUEST


class TestIdentityEntry:
    """Test the principal entry lookup."""

    @pytest.mark.asyncio
    async def test_entry(self, session, load_entry):
        entry = await session.get_current_identity_entry()

        assert entry.uri.endswith("/entry/_guest")
        load_entry.assert_awaited_once_with(GUEST)

    @pytest.mark.asyncio
    async def test_entry_single_flight(self, session, transport, load_entry):
        """Test concurrent entry lookups share one load."""
        transport.gate = asyncio.Event()
        first = asyncio.ensure_future(session.get_current_identity_entry())
        second = asyncio.ensure_future(session.get_current_identity_entry())
        await settle()
        transport.gate.set()

        a, b = await asyncio.gather(first, second)

        assert a is b
        assert load_entry.await_count == 1
        assert transport.count("fetch_identity") == 1

    @pytest.mark.asyncio
    async def test_entry_reset_by_login(self, session, load_entry):
        """Test the entry is looked up again for a new identity."""
        await session.get_current_identity_entry()
        await session.login("alice", "secret")
        entry = await session.get_current_identity_entry()

        assert entry.uri.endswith("/entry/id_alice")
        assert load_entry.await_count == 2


class TestLogin:
    """Test signing in."""

    @pytest.mark.asyncio
    async def test_login_invalidates_and_notifies(
        self, session, cache, populated, recorder
    ):
        """Test login marks all entries stale and notifies once afterwards."""
        cache_events = []
        cache.subscribe(lambda topic, entry: cache_events.append(topic))
        stale_when_notified = []

        def on_auth(topic, identity):
            recorder(topic, identity)
            stale_when_notified.append(all(cache.is_stale(e.uri) for e in populated))

        session.subscribe(on_auth)
        identity = await session.login("alice", "secret")

        assert identity.subject == "alice"
        assert identity.home_context == "ctx_alice"
        assert cache_events == ["allNeedRefresh"]
        assert all(cache.is_stale(e.uri) for e in populated)
        assert recorder.events == [("login", identity)]
        assert stale_when_notified == [True]
        assert session.state is AuthState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_max_age(self, session, transport):
        """Test the session lifetime is passed on, with a default."""
        await session.login("alice", "secret")
        await session.login("bob", "hunter2", max_age=60)

        credentials = [call[1] for call in transport.calls if call[0] == "perform_auth_exchange"]
        assert credentials[0]["max_age"] == 604800
        assert credentials[1]["max_age"] == 60

    @pytest.mark.asyncio
    async def test_relogin_same_subject_is_noop(self, session, cache, transport, recorder):
        """Test signing in again as the same user does nothing."""
        await session.login("alice", "secret")
        cache.put(make_entry(1))
        session.subscribe(recorder)

        identity = await session.login("alice", "secret")

        assert identity.subject == "alice"
        assert transport.count("perform_auth_exchange") == 1
        assert cache.is_stale(make_entry(1).uri) is False
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_login_as_other_user(self, session, cache, recorder):
        """Test switching users invalidates again."""
        await session.login("alice", "secret")
        cache.put(make_entry(1))
        session.subscribe(recorder)

        await session.login("bob", "hunter2")

        assert cache.is_stale(make_entry(1).uri) is True
        assert recorder.topics() == ["login"]

    @pytest.mark.asyncio
    async def test_failed_login_changes_nothing(
        self, session, cache, populated, transport, recorder
    ):
        """Test a rejected login leaves identity and cache alone."""
        await session.get_current_identity()
        session.subscribe(recorder)

        with pytest.raises(AuthError, match="bad credentials"):
            await session.login("alice", "wrong")

        assert session.identity == GUEST
        assert not any(cache.is_stale(e.uri) for e in populated)
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_login_supersedes_pending_lookup(self, session, transport):
        """Test a lookup started before login cannot overwrite the new identity."""
        release = asyncio.Event()

        async def slow_guest_lookup():
            await release.wait()
            return {"user": "guest", "id": "_guest"}

        transport.fetch_identity = slow_guest_lookup
        stale_lookup = asyncio.ensure_future(session.get_current_identity())
        await settle()

        await session.login("alice", "secret")
        release.set()
        result = await stale_lookup

        assert session.identity.subject == "alice"
        assert result.subject == "alice"
        assert (await session.get_current_identity()).subject == "alice"

    @pytest.mark.asyncio
    async def test_login_discards_failed_pending_lookup(self, session, transport):
        """Test a lookup failing after login answers with the new identity."""
        release = asyncio.Event()

        async def failing_lookup():
            await release.wait()
            raise ConnectionError("connection reset")

        transport.fetch_identity = failing_lookup
        stale_lookup = asyncio.ensure_future(session.get_current_identity())
        await settle()

        await session.login("alice", "secret")
        release.set()
        result = await stale_lookup

        assert result.subject == "alice"
        assert session.state == AuthState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_logout_discards_failed_pending_entry_lookup(
        self, session, transport, load_entry
    ):
        """Test a principal entry lookup failing after logout answers for the guest."""
        await session.login("alice", "secret")
        release = asyncio.Event()

        async def failing_load(identity):
            await release.wait()
            raise ConnectionError("connection reset")

        load_entry.side_effect = failing_load
        stale_lookup = asyncio.ensure_future(session.get_current_identity_entry())
        await settle()

        await session.logout()
        load_entry.side_effect = lambda identity: make_entry(identity.id)
        release.set()
        entry = await stale_lookup

        assert entry.uri.endswith("/entry/_guest")

    @pytest.mark.asyncio
    async def test_unsubscribe(self, session, recorder):
        session.subscribe(recorder)
        session.subscribe(recorder)
        session.unsubscribe(recorder)
        await session.login("alice", "secret")

        assert recorder.events == []


class TestLogout:
    """Test signing out."""

    @pytest.mark.asyncio
    async def test_logout(self, session, cache, transport, recorder):
        """Test logout returns to guest, invalidates and notifies."""
        await session.login("alice", "secret")
        cache.put(make_entry(1))
        session.subscribe(recorder)

        identity = await session.logout()

        assert identity == GUEST
        assert cache.is_stale(make_entry(1).uri) is True
        assert recorder.events == [("logout", GUEST)]
        assert transport.calls[-1] == ("perform_auth_exchange", None)
        assert session.state is AuthState.ANONYMOUS

    @pytest.mark.asyncio
    async def test_logout_as_guest_is_noop(self, session, cache, transport, recorder):
        """Test logging out while anonymous does nothing."""
        await session.get_current_identity()
        cache.put(make_entry(1))
        session.subscribe(recorder)

        assert await session.logout() == GUEST
        assert transport.count("perform_auth_exchange") == 0
        assert cache.is_stale(make_entry(1).uri) is False
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_failed_logout_changes_nothing(self, session, cache, transport):
        """Test a failed logout keeps the user signed in."""
        await session.login("alice", "secret")
        cache.put(make_entry(1))
        transport.fail = ConnectionError("down")

        with pytest.raises(AuthError):
            await session.logout()

        assert session.identity.subject == "alice"
        assert cache.is_stale(make_entry(1).uri) is False
