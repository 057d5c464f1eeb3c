"""Tests for issuing, resolving and expiring OTP records."""

import asyncio
import itertools
import random
import unittest

from helpers import FakeClock

from otp.models import FileDescriptor
from otp.registry import OtpRegistry, generate_code
from signaling.errors import NotFound

MOVIE = FileDescriptor(name="movie.mp4", size=104857600, mime_type="video/mp4")
NOTES = FileDescriptor(name="notes.txt", size=0, mime_type="text/plain")


class TestAnnounceAndResolve(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.registry = OtpRegistry(ttl=300, clock=self.clock)

    def test_generated_codes_are_six_digits(self):
        for _ in range(500):
            code = generate_code()
            self.assertEqual(len(code), 6)
            self.assertTrue(code.isdigit())
            self.assertNotEqual(code[0], "0")

    def test_resolve_returns_what_was_announced(self):
        code = self.registry.announce(MOVIE, "owner-1")
        record = self.registry.resolve(code)
        self.assertEqual(record.code, code)
        self.assertEqual(record.file, MOVIE)
        self.assertEqual(record.owner_ref, "owner-1")
        self.assertEqual(record.announced_at, self.clock.now)

    def test_resolve_is_repeatable_until_expiry(self):
        code = self.registry.announce(MOVIE, "owner-1")
        for _ in range(3):
            self.assertEqual(self.registry.resolve(code).file, MOVIE)
        self.assertEqual(len(self.registry), 1)

    def test_unknown_code_is_not_found(self):
        self.registry.announce(MOVIE, "owner-1")
        with self.assertRaises(NotFound):
            self.registry.resolve("000000")

    def test_lookups_do_not_renew_ttl(self):
        code = self.registry.announce(MOVIE, "owner-1")
        self.clock.advance(200)
        self.registry.resolve(code)
        self.clock.advance(101)
        with self.assertRaises(NotFound):
            self.registry.resolve(code)
        self.assertNotIn(code, self.registry)

    def test_reannounce_same_file_replaces_code(self):
        first = self.registry.announce(MOVIE, "owner-1")
        second = self.registry.announce(MOVIE, "owner-1")
        self.assertEqual(self.registry.codes_owned_by("owner-1"), [second])
        if first != second:
            with self.assertRaises(NotFound):
                self.registry.resolve(first)

    def test_different_files_keep_separate_codes(self):
        a = self.registry.announce(MOVIE, "owner-1")
        b = self.registry.announce(NOTES, "owner-1")
        self.assertNotEqual(a, b)
        self.assertEqual(sorted(self.registry.codes_owned_by("owner-1")), sorted([a, b]))

    def test_reannounce_in_place_requires_owner(self):
        code = self.registry.announce(MOVIE, "owner-1")
        self.clock.advance(100)
        self.assertFalse(self.registry.reannounce(code, NOTES, "intruder"))
        self.assertEqual(self.registry.resolve(code).file, MOVIE)

        self.assertTrue(self.registry.reannounce(code, NOTES, "owner-1"))
        record = self.registry.resolve(code)
        self.assertEqual(record.file, NOTES)
        self.assertEqual(record.announced_at, self.clock.now)


class TestRebind(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.registry = OtpRegistry(clock=self.clock)

    def test_rebind_changes_only_owner(self):
        code = self.registry.announce(MOVIE, "http-provisional", provisional=True)
        before = self.registry.resolve(code)
        self.clock.advance(30)

        self.assertTrue(self.registry.rebind_owner(code, "socket-1"))
        after = self.registry.resolve(code)
        self.assertEqual(after.owner_ref, "socket-1")
        self.assertEqual(after.code, before.code)
        self.assertEqual(after.file, before.file)
        self.assertEqual(after.announced_at, before.announced_at)

    def test_rebind_absent_code_is_noop(self):
        self.assertFalse(self.registry.rebind_owner("123456", "socket-1"))
        self.assertEqual(len(self.registry), 0)

    def test_rebind_checks_expected_owner(self):
        code = self.registry.announce(MOVIE, "http-provisional", provisional=True)
        self.assertFalse(self.registry.rebind_owner(code, "socket-1", expected_owner_ref="guess"))
        self.assertEqual(self.registry.resolve(code).owner_ref, "http-provisional")

    def test_rebind_happens_only_once(self):
        code = self.registry.announce(MOVIE, "http-provisional", provisional=True)
        self.assertTrue(self.registry.resolve(code).provisional)
        self.assertTrue(self.registry.rebind_owner(code, "socket-1", expected_owner_ref="http-provisional"))
        self.assertFalse(self.registry.resolve(code).provisional)

        self.assertFalse(self.registry.rebind_owner(code, "socket-2", expected_owner_ref="socket-1"))
        self.assertFalse(self.registry.rebind_owner(code, "socket-2"))
        self.assertEqual(self.registry.resolve(code).owner_ref, "socket-1")

    def test_live_announcement_cannot_be_rebound(self):
        code = self.registry.announce(MOVIE, "socket-1")
        self.assertFalse(self.registry.rebind_owner(code, "socket-2", expected_owner_ref="socket-1"))
        self.assertEqual(self.registry.resolve(code).owner_ref, "socket-1")


class TestExpiry(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.registry = OtpRegistry(ttl=300, clock=self.clock)

    def test_sweep_boundary(self):
        code = self.registry.announce(MOVIE, "owner-1")
        announced_at = self.clock.now

        self.assertEqual(self.registry.sweep(announced_at + 300 - 0.001), [])
        self.assertIn(code, self.registry)

        self.assertEqual(self.registry.sweep(announced_at + 300 + 0.001), [code])
        with self.assertRaises(NotFound):
            self.registry.resolve(code)

    def test_sweep_keeps_fresh_records(self):
        old = self.registry.announce(MOVIE, "owner-1")
        self.clock.advance(200)
        fresh = self.registry.announce(NOTES, "owner-2")
        self.registry.sweep(self.clock.now + 150)
        self.assertNotIn(old, self.registry)
        self.assertIn(fresh, self.registry)

    def test_expire_owner_leaves_other_owners(self):
        mine = [self.registry.announce(MOVIE, "owner-1"), self.registry.announce(NOTES, "owner-1")]
        theirs = self.registry.announce(MOVIE, "owner-2")

        self.assertEqual(sorted(self.registry.expire_owner("owner-1")), sorted(mine))
        for code in mine:
            with self.assertRaises(NotFound):
                self.registry.resolve(code)
        self.assertEqual(self.registry.resolve(theirs).owner_ref, "owner-2")

    def test_removal_callbacks_report_reason(self):
        seen = []
        self.registry.on_removed(lambda code, reason: seen.append((code, reason)))
        a = self.registry.announce(MOVIE, "owner-1")
        b = self.registry.announce(MOVIE, "owner-2")
        self.registry.expire_owner("owner-1")
        self.registry.sweep(self.clock.now + 301)
        self.assertEqual(seen, [(a, "owner_disconnected"), (b, "expired")])

    def test_active_count_ignores_unswept_records(self):
        self.registry.announce(MOVIE, "owner-1")
        self.clock.advance(200)
        self.registry.announce(NOTES, "owner-2")
        self.clock.advance(101)
        self.assertEqual(len(self.registry), 2)
        self.assertEqual(self.registry.active_count(), 1)

    def test_is_active_does_not_consume(self):
        registry = OtpRegistry(clock=self.clock, single_use=True)
        code = registry.announce(MOVIE, "owner-1")
        self.assertTrue(registry.is_active(code))
        self.assertTrue(registry.is_active(code))
        self.assertFalse(registry.is_active("999999"))


class TestSingleUse(unittest.TestCase):

    def test_peek_does_not_consume(self):
        registry = OtpRegistry(single_use=True, clock=FakeClock())
        code = registry.announce(MOVIE, "owner-1")
        self.assertEqual(registry.peek(code).file, MOVIE)
        self.assertEqual(registry.peek(code).file, MOVIE)
        registry.resolve(code)
        with self.assertRaises(NotFound):
            registry.peek(code)

    def test_resolve_consumes_code(self):
        registry = OtpRegistry(single_use=True, clock=FakeClock())
        code = registry.announce(MOVIE, "owner-1")
        self.assertEqual(registry.resolve(code).file, MOVIE)
        with self.assertRaises(NotFound):
            registry.resolve(code)


class TestCollisions(unittest.TestCase):

    def test_retries_until_unused_code(self):
        space = ["100000", "100001", "100002", "100003", "100004"]
        rng = random.Random(7)
        registry = OtpRegistry(clock=FakeClock(), code_factory=lambda: rng.choice(space))

        codes = [
            registry.announce(FileDescriptor(name=f"f{i}", size=i, mime_type="x/y"), f"owner-{i}")
            for i in range(len(space))
        ]
        self.assertEqual(sorted(codes), space)

    def test_exhausted_space_raises(self):
        registry = OtpRegistry(clock=FakeClock(), code_factory=itertools.repeat("100000").__next__)
        registry.announce(MOVIE, "owner-1")
        with self.assertRaises(RuntimeError):
            registry.announce(MOVIE, "owner-2")
        self.assertEqual(registry.resolve("100000").owner_ref, "owner-1")

    def test_concurrent_announces_never_share_a_code(self):
        space = [str(100000 + i) for i in range(20)]
        rng = random.Random(11)
        registry = OtpRegistry(clock=FakeClock(), code_factory=lambda: rng.choice(space))

        async def announce(i):
            await asyncio.sleep(0)
            return registry.announce(MOVIE, f"owner-{i}")

        async def run():
            return await asyncio.gather(*(announce(i) for i in range(len(space))))

        codes = asyncio.run(run())
        self.assertEqual(len(set(codes)), len(space))
        for i, code in enumerate(codes):
            self.assertEqual(registry.resolve(code).owner_ref, f"owner-{i}")


class TestSweepTask(unittest.IsolatedAsyncioTestCase):

    async def test_background_sweep_removes_expired(self):
        clock = FakeClock()
        registry = OtpRegistry(ttl=300, sweep_interval=0.01, clock=clock)
        code = registry.announce(MOVIE, "owner-1")
        await registry.start()
        try:
            clock.advance(301)
            for _ in range(100):
                if code not in registry:
                    break
                await asyncio.sleep(0.01)
            self.assertNotIn(code, registry)
        finally:
            await registry.stop()


if __name__ == "__main__":
    unittest.main()
