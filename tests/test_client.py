"""End-to-end tests for the PairChat client."""

import pytest
from pairchat.client import PairChatClient, PairChatConfig
from pairchat.identity import IdentityKeyManager
from pairchat.models import MessageTarget
from pairchat.transport import InMemoryBroadcastChannel, InMemoryEndpointDirectory
from pairchat.types import InvalidPublicKeyError, MissingIdentityError
from .test_vectors import ALICE_SEED_HEX, BOB_SEED_HEX, CAROL_SEED_HEX


@pytest.fixture
def channel():
    """A shared broadcast channel."""
    return InMemoryBroadcastChannel()


@pytest.fixture
def wallet(channel):
    """Client on the extension side."""
    return PairChatClient(
        PairChatConfig(name="Wallet", side=MessageTarget.EXTENSION),
        IdentityKeyManager.from_seed(bytes.fromhex(ALICE_SEED_HEX)),
        channel,
    )


@pytest.fixture
def dapp(channel):
    """Client on the page side."""
    return PairChatClient(
        PairChatConfig(name="DApp", side=MessageTarget.PAGE),
        IdentityKeyManager.from_seed(bytes.fromhex(BOB_SEED_HEX)),
        channel,
    )


@pytest.fixture
def stranger(channel):
    """An unrelated client sharing the channel."""
    return PairChatClient(
        PairChatConfig(name="Stranger", side=MessageTarget.EXTENSION),
        IdentityKeyManager.from_seed(bytes.fromhex(CAROL_SEED_HEX)),
        channel,
    )


class TestIdentity:
    """Test identity accessors."""

    @pytest.mark.asyncio
    async def test_handshake_info(self, wallet) -> None:
        """Handshake info carries name and public key."""
        await wallet.start()
        info = await wallet.get_handshake_info()

        assert info.name == "Wallet"
        assert info.public_key == await wallet.get_public_key()
        assert len(await wallet.get_public_key_hash()) == 64

    def test_config_counterpart(self) -> None:
        """The client sends to the opposite side."""
        assert PairChatConfig(name="x").counterpart is MessageTarget.EXTENSION
        assert PairChatConfig(name="x", side=MessageTarget.EXTENSION).counterpart is MessageTarget.PAGE


class TestPairing:
    """Test pairing through the client surface."""

    @pytest.mark.asyncio
    async def test_pairing_scenario(self, channel, wallet, dapp) -> None:
        """The dapp learns the wallet's identity exactly once."""
        paired = []
        await dapp.listen_for_channel_opening(paired.append)

        await wallet.open_channel(await dapp.get_public_key())
        await wallet.open_channel(await dapp.get_public_key())

        assert paired == [{"name": "Wallet", "publicKey": await wallet.get_public_key()}]

    @pytest.mark.asyncio
    async def test_duplicate_broadcast_ignored(self, channel, wallet, dapp) -> None:
        """Re-delivering the same sealed reply does not fire again."""
        paired = []
        listener = await dapp.listen_for_channel_opening(paired.append)

        await wallet.open_channel(await dapp.get_public_key())
        await channel.broadcast(channel.history[-1])

        assert len(paired) == 1
        assert await listener.wait_paired() == paired[0]

    @pytest.mark.asyncio
    async def test_open_channel_reaches_endpoints(self, channel, dapp) -> None:
        """Configured endpoints receive the sealed invitation."""
        endpoints = InMemoryEndpointDirectory(["tab-1"])
        wallet = PairChatClient(
            PairChatConfig(name="Wallet", side=MessageTarget.EXTENSION),
            IdentityKeyManager.generate(),
            channel,
            endpoints=endpoints,
        )

        envelope = await wallet.open_channel(await dapp.get_public_key())

        assert endpoints.delivered["tab-1"][0]["payload"] == envelope.payload

    @pytest.mark.asyncio
    async def test_other_peer_cannot_pair(self, channel, wallet, dapp, stranger) -> None:
        """A sealed invitation for someone else is ignored."""
        paired = []
        await dapp.listen_for_channel_opening(paired.append)

        await wallet.open_channel(await stranger.get_public_key())

        assert paired == []

    @pytest.mark.asyncio
    async def test_close_tears_down_listeners(self, channel, wallet, dapp) -> None:
        """close() drops handshake and message subscriptions."""
        paired = []
        await dapp.listen_for_channel_opening(paired.append)
        await dapp.listen_for_encrypted_message(await wallet.get_public_key(), print)
        assert channel.subscriber_count == 2

        await dapp.close()
        await wallet.open_channel(await dapp.get_public_key())

        assert channel.subscriber_count == 0
        assert paired == []


class TestEncryptedMessaging:
    """Test send/listen/unsubscribe."""

    @pytest.mark.asyncio
    async def test_send_and_receive(self, wallet, dapp) -> None:
        """Messages flow from sender to listener."""
        received = []
        await dapp.listen_for_encrypted_message(await wallet.get_public_key(), received.append)

        await wallet.send_message(await dapp.get_public_key(), "hello")
        await wallet.send_message(await dapp.get_public_key(), "world")

        assert received == ["hello", "world"]

    @pytest.mark.asyncio
    async def test_bidirectional(self, wallet, dapp) -> None:
        """Both sides can send and listen at the same time."""
        to_dapp = []
        to_wallet = []
        await dapp.listen_for_encrypted_message(await wallet.get_public_key(), to_dapp.append)
        await wallet.listen_for_encrypted_message(await dapp.get_public_key(), to_wallet.append)

        await wallet.send_message(await dapp.get_public_key(), "ping")
        await dapp.send_message(await wallet.get_public_key(), "pong")

        assert to_dapp == ["ping"]
        assert to_wallet == ["pong"]

    @pytest.mark.asyncio
    async def test_send_before_listen(self, channel, wallet, dapp, stranger) -> None:
        """Only decryptable messages from the session peer reach the callback."""
        await wallet.send_message(await dapp.get_public_key(), "hello")

        received = []
        await dapp.listen_for_encrypted_message(await wallet.get_public_key(), received.append)
        assert received == []

        # The transport re-delivers the earlier message
        await channel.broadcast(channel.history[0])
        await stranger.send_message(await dapp.get_public_key(), "unrelated")
        await wallet.send_message(await stranger.get_public_key(), "not for dapp")
        await wallet.send_message(await dapp.get_public_key(), "again")

        assert received == ["hello", "again"]

    @pytest.mark.asyncio
    async def test_unsubscribe_one(self, wallet, dapp, stranger) -> None:
        """After unsubscribing, later messages no longer reach the callback."""
        from_wallet = []
        from_stranger = []
        await dapp.listen_for_encrypted_message(await wallet.get_public_key(), from_wallet.append)
        await dapp.listen_for_encrypted_message(await stranger.get_public_key(), from_stranger.append)

        await wallet.send_message(await dapp.get_public_key(), "before")
        await dapp.unsubscribe_from_encrypted_message(await wallet.get_public_key())
        await wallet.send_message(await dapp.get_public_key(), "after")
        await stranger.send_message(await dapp.get_public_key(), "still here")

        assert from_wallet == ["before"]
        assert from_stranger == ["still here"]

    @pytest.mark.asyncio
    async def test_unsubscribe_all(self, wallet, dapp) -> None:
        """unsubscribe_from_encrypted_messages removes every entry."""
        received = []
        await dapp.listen_for_encrypted_message(await wallet.get_public_key(), received.append)

        await dapp.unsubscribe_from_encrypted_messages()
        await wallet.send_message(await dapp.get_public_key(), "dropped")

        assert received == []
        assert len(dapp.registry) == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_unknown_is_noop(self, dapp) -> None:
        """Removing a peer that was never registered does nothing."""
        await dapp.unsubscribe_from_encrypted_message("ab" * 32)
        await dapp.unsubscribe_from_encrypted_message(b"\x01" * 32)

    @pytest.mark.asyncio
    async def test_unsubscribe_from_callback(self, wallet, dapp) -> None:
        """A callback may unsubscribe itself; later messages are not delivered."""
        received = []

        async def once(text: str) -> None:
            received.append(text)
            await dapp.unsubscribe_from_encrypted_message(await wallet.get_public_key())

        await dapp.listen_for_encrypted_message(await wallet.get_public_key(), once)
        await wallet.send_message(await dapp.get_public_key(), "first")
        await wallet.send_message(await dapp.get_public_key(), "second")

        assert received == ["first"]

    @pytest.mark.asyncio
    async def test_uppercase_peer_key(self, wallet, dapp) -> None:
        """Peer keys are normalized, so case does not matter."""
        received = []
        await dapp.listen_for_encrypted_message((await wallet.get_public_key()).upper(), received.append)

        await wallet.send_message(await dapp.get_public_key(), "normalized")
        await dapp.unsubscribe_from_encrypted_message((await wallet.get_public_key()).upper())
        await wallet.send_message(await dapp.get_public_key(), "dropped")

        assert received == ["normalized"]

    @pytest.mark.asyncio
    async def test_padded_peer_key(self, wallet, dapp) -> None:
        """Unsubscribe matches the same key form that listen accepted."""
        padded = " " + await wallet.get_public_key() + " "
        received = []
        await dapp.listen_for_encrypted_message(padded, received.append)

        await dapp.unsubscribe_from_encrypted_message(padded)
        await wallet.send_message(await dapp.get_public_key(), "dropped")

        assert received == []
        assert len(dapp.registry) == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_invalid_key_is_noop(self, wallet, dapp) -> None:
        """An unparseable key on unsubscribe leaves listeners alone."""
        received = []
        await dapp.listen_for_encrypted_message(await wallet.get_public_key(), received.append)

        await dapp.unsubscribe_from_encrypted_message("not a key")
        await dapp.unsubscribe_from_encrypted_message(b"\x01" * 31)
        await wallet.send_message(await dapp.get_public_key(), "kept")

        assert received == ["kept"]

    @pytest.mark.asyncio
    async def test_unsubscribe_drops_cached_sessions(self, wallet, dapp, stranger) -> None:
        """Cached sessions go away with their listeners."""
        await dapp.listen_for_encrypted_message(await wallet.get_public_key(), print)
        await dapp.listen_for_encrypted_message(await stranger.get_public_key(), print)
        assert len(dapp._sessions) == 2

        await dapp.unsubscribe_from_encrypted_message(await wallet.get_public_key())
        assert len(dapp._sessions) == 1

        await dapp.unsubscribe_from_encrypted_messages()
        assert len(dapp._sessions) == 0

    @pytest.mark.asyncio
    async def test_without_session_cache(self, channel, wallet) -> None:
        """Recomputing sessions gives the same result as caching them."""
        dapp = PairChatClient(
            PairChatConfig(name="DApp", cache_sessions=False),
            IdentityKeyManager.from_seed(bytes.fromhex(BOB_SEED_HEX)),
            channel,
        )
        received = []
        await dapp.listen_for_encrypted_message(await wallet.get_public_key(), received.append)

        await wallet.send_message(await dapp.get_public_key(), "uncached")

        assert received == ["uncached"]

    @pytest.mark.asyncio
    async def test_single_transport_subscription(self, channel, wallet, dapp, stranger) -> None:
        """Any number of peer listeners share one subscription."""
        await dapp.listen_for_encrypted_message(await wallet.get_public_key(), print)
        await dapp.listen_for_encrypted_message(await stranger.get_public_key(), print)

        assert channel.subscriber_count == 1


class TestErrors:
    """Test surfaced errors."""

    @pytest.mark.asyncio
    async def test_missing_identity(self, channel, dapp) -> None:
        """Every operation needing a key pair fails fast without touching the channel."""
        client = PairChatClient(PairChatConfig(name="Empty"), IdentityKeyManager(), channel)
        peer = await dapp.get_public_key()

        with pytest.raises(MissingIdentityError):
            await client.send_message(peer, "x")
        with pytest.raises(MissingIdentityError):
            await client.listen_for_encrypted_message(peer, print)
        with pytest.raises(MissingIdentityError):
            await client.open_channel(peer)
        with pytest.raises(MissingIdentityError):
            await client.listen_for_channel_opening(print)

        assert channel.history == []
        assert channel.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_invalid_peer_key(self, channel, wallet) -> None:
        """Invalid caller-supplied keys are surfaced."""
        with pytest.raises(InvalidPublicKeyError):
            await wallet.send_message("bogus", "x")
        with pytest.raises(InvalidPublicKeyError):
            await wallet.listen_for_encrypted_message("00" * 31, print)

        assert channel.history == []
