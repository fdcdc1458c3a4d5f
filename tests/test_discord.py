import unittest

from pypresence.exceptions import DiscordNotFound, PipeClosed, ServerError

from helpers import FakePresence
from komrpc.discord import DiscordPresence
from komrpc.errors import ErrorKind, TransportError


class TestDiscordPresence(unittest.TestCase):
    def setUp(self):
        self.created = []

        def factory(client_id, pipe=0):
            rpc = FakePresence(client_id, pipe)
            self.created.append(rpc)
            return rpc

        self.channel = DiscordPresence("1387202171270861033", presence_factory=factory)
        self.channel.connect()
        self.rpc = self.created[0]

    def test_set_sends_fields(self):
        self.channel.set("Foo (Page 42)", "A. Author", "https://i.imgur.com/x.jpg", "Volume 1")
        update = self.rpc.updates[0]
        self.assertEqual(update["details"], "Foo (Page 42)")
        self.assertEqual(update["state"], "A. Author")
        self.assertEqual(update["large_image"], "https://i.imgur.com/x.jpg")
        self.assertEqual(update["large_text"], "Volume 1")

    def test_set_is_idempotent(self):
        self.channel.set("Foo", "A. Author")
        self.channel.set("Foo", "A. Author")
        self.assertEqual(len(self.rpc.updates), 1)
        self.assertNotIn("large_image", self.rpc.updates[0])

        self.channel.set("Foo (Page 43)", "A. Author")
        self.assertEqual(len(self.rpc.updates), 2)

    def test_clear_is_idempotent_but_always_sent_first(self):
        self.channel.clear()
        self.channel.clear()
        self.assertEqual(self.rpc.clears, 1)

        self.channel.set("Foo", "A. Author")
        self.channel.clear()
        self.assertEqual(self.rpc.clears, 2)

    def test_short_text_is_padded(self):
        self.channel.set("X", "Y")
        self.assertEqual(len(self.rpc.updates[0]["details"]), 2)
        self.channel.set("a" * 300, "b")
        self.assertEqual(len(self.rpc.updates[1]["details"]), 128)

    def test_fallback_image(self):
        self.channel.fallback_image = "komga"
        self.channel.set("Foo", "Bar")
        self.assertEqual(self.rpc.updates[0]["large_image"], "komga")

    def test_pipe_closed_is_pipe_error(self):
        self.rpc.fail_next = PipeClosed()
        with self.assertRaises(TransportError) as ctx:
            self.channel.set("Foo", "Bar")
        self.assertIs(ctx.exception.kind, ErrorKind.PIPE)
        self.assertFalse(self.channel.is_connected)

    def test_broken_pipe_oserror_is_pipe_error(self):
        self.rpc.fail_next = BrokenPipeError(32, "Broken pipe")
        with self.assertRaises(TransportError) as ctx:
            self.channel.clear()
        self.assertIs(ctx.exception.kind, ErrorKind.PIPE)

    def test_other_errors_are_not_pipe_errors(self):
        self.rpc.fail_next = ServerError("invalid payload")
        with self.assertRaises(TransportError) as ctx:
            self.channel.set("Foo", "Bar")
        self.assertIs(ctx.exception.kind, ErrorKind.OTHER)
        self.assertTrue(self.channel.is_connected)

    def test_failed_set_is_retried(self):
        self.rpc.fail_next = ServerError("hiccup")
        with self.assertRaises(TransportError):
            self.channel.set("Foo", "Bar")
        self.channel.set("Foo", "Bar")
        self.assertEqual(len(self.rpc.updates), 1)

    def test_disconnected_channel_asks_for_reconnect(self):
        self.channel.close()
        self.assertTrue(self.rpc.closed)
        with self.assertRaises(TransportError) as ctx:
            self.channel.set("Foo", "Bar")
        self.assertIs(ctx.exception.kind, ErrorKind.PIPE)

    def test_connect_failure(self):
        channel = DiscordPresence("1", presence_factory=lambda cid, pipe=0: FakePresence(cid, pipe, DiscordNotFound()))
        with self.assertRaises(TransportError) as ctx:
            channel.connect()
        self.assertIs(ctx.exception.kind, ErrorKind.PIPE)
        self.assertFalse(channel.is_connected)

    def test_context_manager_clears_and_closes(self):
        with self.channel as channel:
            channel.set("Foo", "Bar")
        rpc = self.created[-1]
        self.assertEqual(len(rpc.updates), 1)
        self.assertEqual(rpc.clears, 1)
        self.assertTrue(rpc.closed)
        self.assertFalse(channel.is_connected)


if __name__ == '__main__':
    unittest.main()
