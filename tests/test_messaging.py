"""Tests for messaging/ module."""

import asyncio
import os

import pytest


def make_message(**overrides):
    from messaging.models import InboundMessage

    fields = dict(sender_id="123@c.us", body="hello", timestamp=1700000000)
    fields.update(overrides)
    return InboundMessage(**fields)


class TestMessagingModels:
    """Test messaging models."""

    def test_contact_name_prefers_display_name(self):
        """ContactInfo.name falls back to the push name."""
        from messaging.models import ContactInfo

        assert ContactInfo(number="1", display_name="Ana", push_name="A").name == "Ana"
        assert ContactInfo(number="1", push_name="A").name == "A"
        assert ContactInfo(number="1").name is None

    def test_relay_envelope_payload(self):
        """RelayEnvelope carries the fields the webhook expects."""
        from messaging.models import ContactInfo, RelayEnvelope

        envelope = RelayEnvelope.build(
            make_message(), ContactInfo(number="123", push_name="Ana")
        )
        payload = envelope.to_payload()

        assert payload["from"] == "123@c.us"
        assert payload["body"] == "hello"
        assert payload["timestamp"] == 1700000000
        assert payload["isGroup"] is False
        assert payload["type"] == "chat"
        assert payload["contact"] == {"name": "Ana", "number": "123"}
        assert payload["receivedAt"]

    def test_reply_directive_skips_missing_segments(self):
        """Absent segments keep the order of present ones."""
        from messaging.models import ReplyDirective

        directive = ReplyDirective(part1="one", part3="three")
        assert list(directive.segments()) == [(1, "one"), (3, "three")]
        assert ReplyDirective().is_empty() is True

    def test_status_snapshot_labels(self):
        """StatusSnapshot exposes the login status labels."""
        from messaging.models import SessionState, StatusSnapshot

        waiting = StatusSnapshot(
            state=SessionState.AWAITING_LOGIN, has_login_challenge=True, login_challenge="qr"
        )
        ready = StatusSnapshot(state=SessionState.READY, account_id="5511")
        idle = StatusSnapshot(state=SessionState.UNINITIALIZED)

        assert waiting.login_status == "waiting"
        assert ready.login_status == "connected"
        assert idle.login_status == "initializing"
        assert ready.to_dict()["phone"] == "5511"


class TestMessagingBase:
    """Test MessagingDriver ABC."""

    def test_driver_is_abstract(self):
        """Verify MessagingDriver cannot be instantiated."""
        from messaging.base import MessagingDriver

        with pytest.raises(TypeError):
            MessagingDriver()


class TestAdmissionFilter:
    """Test the inbound admission rules."""

    @pytest.mark.parametrize(
        "overrides, reason",
        [
            ({"sender_id": "status@broadcast"}, "status broadcast"),
            ({"is_status_update": True}, "status update"),
            ({"is_self_sent": True}, "sent by this account"),
            ({"is_group_chat": True}, "group chat"),
            ({"sender_id": "12036302@g.us"}, "group sender"),
            ({"body": ""}, "empty body"),
            ({"body": "  \n\t "}, "empty body"),
        ],
    )
    def test_rejections(self, overrides, reason):
        from messaging.filters import is_admissible, rejection_reason

        message = make_message(**overrides)
        assert rejection_reason(message) == reason
        assert is_admissible(message) is False

    def test_private_text_is_admitted(self):
        from messaging.filters import is_admissible

        assert is_admissible(make_message()) is True

    def test_media_with_caption_is_admitted(self):
        from messaging.filters import is_admissible

        message = make_message(has_non_text_payload=True, message_type="image")
        assert is_admissible(message) is True


class TestSessionStore:
    """Test SessionStore."""

    def test_new_path_is_unique(self, tmp_path):
        """Consecutive paths never repeat."""
        from messaging.session import SessionStore

        store = SessionStore(root=str(tmp_path))
        paths = [store.new_path() for _ in range(100)]
        assert len(set(paths)) == 100
        assert all(p.startswith(str(tmp_path)) for p in paths)

    def test_latest_path(self, tmp_path):
        """The newest existing session directory is resumed."""
        from messaging.session import SessionStore

        store = SessionStore(root=str(tmp_path))
        assert store.latest_path() is None

        older = store.new_path()
        newer = store.new_path()
        os.makedirs(older)
        os.makedirs(newer)
        (tmp_path / "unrelated").mkdir()

        assert store.latest_path() == newer

    def test_new_path_after_resume_is_newer(self, tmp_path):
        from messaging.session import SessionStore

        future = tmp_path / "session-9000000000000000000"
        future.mkdir()
        store = SessionStore(root=str(tmp_path))
        assert store.latest_path() == str(future)
        assert store.new_path() == str(tmp_path / "session-9000000000000000001")

    @pytest.mark.asyncio
    async def test_erase_removes_artifacts(self, tmp_path):
        from messaging.session import EraseResult, SessionStore

        store = SessionStore(root=str(tmp_path), backoff=0)
        path = store.new_path()
        os.makedirs(os.path.join(path, "Default", "Cache"))
        locked = os.path.join(path, "Default", "creds.json")
        with open(locked, "w") as f:
            f.write("{}")
        os.chmod(locked, 0o444)

        result = await store.erase(path)

        assert result is EraseResult.SUCCESS
        assert not os.path.exists(path)

    @pytest.mark.asyncio
    async def test_erase_missing_path_succeeds(self, tmp_path):
        from messaging.session import EraseResult, SessionStore

        store = SessionStore(root=str(tmp_path), backoff=0)
        assert await store.erase(str(tmp_path / "nope")) is EraseResult.SUCCESS

    @pytest.mark.asyncio
    async def test_erase_exhausts_after_five_attempts(self, tmp_path):
        """A persistently locked path is reported, not raised, after 5 tries."""
        from messaging.session import EraseResult, SessionStore

        store = SessionStore(root=str(tmp_path), backoff=0)
        attempts = []

        def locked(path):
            attempts.append(path)
            raise PermissionError("file in use")

        store._remove = locked
        result = await asyncio.wait_for(store.erase("/locked"), timeout=5)

        assert result is EraseResult.EXHAUSTED
        assert len(attempts) == 5

    @pytest.mark.asyncio
    async def test_erase_retries_until_unlocked(self, tmp_path):
        from messaging.session import EraseResult, SessionStore

        store = SessionStore(root=str(tmp_path), backoff=0)
        attempts = []

        def flaky(path):
            attempts.append(path)
            if len(attempts) < 3:
                raise PermissionError("file in use")

        store._remove = flaky
        assert await store.erase("/flaky") is EraseResult.SUCCESS
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_concurrent_erase_is_deduplicated(self, tmp_path):
        """Overlapping erase calls for one path share one attempt sequence."""
        from messaging.session import EraseResult, SessionStore

        store = SessionStore(root=str(tmp_path), backoff=0)
        calls = []

        def remove(path):
            calls.append(path)

        store._remove = remove
        results = await asyncio.gather(store.erase("/same"), store.erase("/same"))

        assert results == [EraseResult.SUCCESS, EraseResult.SUCCESS]
        assert calls == ["/same"]
        assert store.is_erasing("/same") is False


class TestSenderQueueManager:
    """Test SenderQueueManager."""

    def test_queue_manager_init(self):
        from messaging.queue import SenderQueueManager

        mgr = SenderQueueManager()
        assert mgr._queues == {}
        assert mgr.is_sender_busy("nonexistent") is False
        assert mgr.get_queue_size("nonexistent") == 0

    @pytest.mark.asyncio
    async def test_same_sender_is_sequential(self):
        """Messages from one sender are processed one at a time, in order."""
        from messaging.queue import SenderQueueManager

        mgr = SenderQueueManager()
        log = []
        gate = asyncio.Event()

        async def processor(sender, msg):
            log.append(("start", msg.body))
            if msg.body == "first":
                await gate.wait()
            log.append(("end", msg.body))

        assert await mgr.enqueue("a", make_message(body="first"), processor) is False
        assert await mgr.enqueue("a", make_message(body="second"), processor) is True
        await asyncio.sleep(0)
        assert mgr.is_sender_busy("a") is True
        assert mgr.get_queue_size("a") == 1

        gate.set()
        await mgr.drain()

        assert log == [
            ("start", "first"),
            ("end", "first"),
            ("start", "second"),
            ("end", "second"),
        ]
        assert mgr.is_sender_busy("a") is False

    @pytest.mark.asyncio
    async def test_different_senders_run_concurrently(self):
        from messaging.queue import SenderQueueManager

        mgr = SenderQueueManager()
        started = []
        gate = asyncio.Event()

        async def processor(sender, msg):
            started.append(sender)
            await gate.wait()

        await mgr.enqueue("a", make_message(sender_id="a"), processor)
        await mgr.enqueue("b", make_message(sender_id="b"), processor)
        await asyncio.sleep(0)

        assert sorted(started) == ["a", "b"]
        gate.set()
        await mgr.drain()

    @pytest.mark.asyncio
    async def test_processor_error_does_not_stall_queue(self):
        from messaging.queue import SenderQueueManager

        mgr = SenderQueueManager()
        done = []

        async def processor(sender, msg):
            if msg.body == "bad":
                raise RuntimeError("boom")
            done.append(msg.body)

        await mgr.enqueue("a", make_message(body="bad"), processor)
        await mgr.enqueue("a", make_message(body="good"), processor)
        await mgr.drain()

        assert done == ["good"]

    @pytest.mark.asyncio
    async def test_cancel_sender(self):
        from messaging.queue import SenderQueueManager

        mgr = SenderQueueManager()
        gate = asyncio.Event()

        async def processor(sender, msg):
            await gate.wait()

        await mgr.enqueue("a", make_message(body="one"), processor)
        await mgr.enqueue("a", make_message(body="two"), processor)
        await asyncio.sleep(0)

        cancelled = mgr.cancel_sender("a")
        await mgr.drain()

        assert [m.body for m in cancelled] == ["one", "two"]
        assert mgr.cancel_sender("a") == []
