from infrastructure.services.realtime import RealtimePublisher, chat_topic


class FakeSocket:
    def __init__(self, broken=False):
        self.broken = broken
        self.received = []

    async def send_json(self, message):
        if self.broken:
            raise RuntimeError("connection closed")
        self.received.append(message)


class TestRealtimePublisher:

    async def test_publish_to_topic_subscribers(self):
        hub = RealtimePublisher()
        listener, other = FakeSocket(), FakeSocket()
        await hub.subscribe(chat_topic(1), listener)
        await hub.subscribe(chat_topic(2), other)

        delivered = await hub.publish(chat_topic(1), {"text": "hi"})

        assert delivered == 1
        assert listener.received == [{"text": "hi"}]
        assert other.received == []

    async def test_dead_socket_dropped(self):
        hub = RealtimePublisher()
        await hub.subscribe(chat_topic(1), FakeSocket(broken=True))
        await hub.subscribe(chat_topic(1), FakeSocket())

        assert await hub.publish(chat_topic(1), {"text": "hi"}) == 1
        assert hub.subscriber_count(chat_topic(1)) == 1

    async def test_unsubscribe_last_removes_topic(self):
        hub = RealtimePublisher()
        socket = FakeSocket()
        await hub.subscribe(chat_topic(3), socket)
        await hub.unsubscribe(chat_topic(3), socket)

        assert hub.subscriber_count(chat_topic(3)) == 0
        assert await hub.publish(chat_topic(3), {"text": "hi"}) == 0
