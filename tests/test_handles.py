# -*- coding: utf-8 -*-

from __future__ import annotations

import random
import unittest

from mealtracker.errors import NotFoundError
from mealtracker.meals.handles import HandleTable
from mealtracker.meals.models import HandleOrigin


class TestHandleTable(unittest.TestCase):
    def setUp(self) -> None:
        self.table = HandleTable()

    def test_acquire_and_resolve(self) -> None:
        token = self.table.acquire(b"jpeg-bytes")
        self.assertTrue(token.startswith("blob:"))
        self.assertIn(token, self.table)
        self.assertEqual(self.table.resolve(token), b"jpeg-bytes")
        self.assertEqual(self.table.get(token).origin, HandleOrigin.persisted)

    def test_same_payload_gets_distinct_handles(self) -> None:
        a = self.table.to_handle(b"same")
        b = self.table.to_handle(b"same")
        self.assertNotEqual(a, b)
        self.table.release(a)
        self.assertEqual(self.table.resolve(b), b"same")

    def test_release_is_idempotent(self) -> None:
        token = self.table.acquire(b"x")
        self.assertTrue(self.table.release(token))
        self.assertFalse(self.table.release(token))
        self.assertFalse(self.table.release("blob:unknown"))
        self.assertEqual(self.table.live_count, 0)

    def test_resolve_after_release_fails(self) -> None:
        token = self.table.acquire(b"x")
        self.table.release(token)
        with self.assertRaises(NotFoundError):
            self.table.resolve(token)
        self.assertIsNone(self.table.get(token))

    def test_live_count_returns_to_zero_in_any_release_order(self) -> None:
        tokens = [self.table.acquire(bytes([i])) for i in range(50)]
        self.assertEqual(self.table.live_count, 50)
        rng = random.Random(7)
        order = tokens + rng.sample(tokens, 20)
        rng.shuffle(order)
        for token in order:
            self.table.release(token)
        self.assertEqual(self.table.live_count, 0)
        self.assertEqual(len(self.table), 0)

    def test_release_owner_cancels_edit_buffer(self) -> None:
        pending = [
            self.table.acquire(b"raw-1", origin=HandleOrigin.pending, owner="edit-1"),
            self.table.acquire(b"raw-2", origin=HandleOrigin.pending, owner="edit-1"),
        ]
        other = self.table.acquire(b"raw-3", origin=HandleOrigin.pending, owner="edit-2")
        shown = self.table.acquire(b"stored")

        self.assertEqual(len(self.table.live_handles(HandleOrigin.pending)), 3)
        self.assertEqual(len(self.table.live_handles(HandleOrigin.persisted)), 1)

        self.assertEqual(self.table.release_owner("edit-1"), 2)
        self.assertEqual(self.table.release_owner("edit-1"), 0)
        for token in pending:
            self.assertNotIn(token, self.table)
        self.assertIn(other, self.table)
        self.assertIn(shown, self.table)

    def test_payload_must_be_bytes(self) -> None:
        with self.assertRaises(TypeError):
            self.table.acquire("not bytes")  # type: ignore[arg-type]

    def test_release_all(self) -> None:
        for i in range(3):
            self.table.acquire(b"p%d" % i)
        self.assertEqual(self.table.release_all(), 3)
        self.assertEqual(self.table.live_count, 0)


if __name__ == "__main__":
    unittest.main()
