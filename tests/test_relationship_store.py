#!/usr/bin/env python3
"""
Tests for RelationshipStore against an in-memory SQLite database.

Run with:
    python -m pytest tests/test_relationship_store.py
"""
import os
import random
import sys
import unittest
from collections import Counter
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from squadlink.database import (
    Base, CancelledFriendshipRecord, FriendshipRecord, create_db_engine,
    make_session_factory, utcnow,
)
from squadlink.errors import Conflict, Forbidden, NotFound
from squadlink.models import EdgeStatus
from squadlink.repositories import RelationshipStore


# ---------------------------------------------------------------------------
# In-memory DB helper
# ---------------------------------------------------------------------------

def _make_session_factory():
    engine = create_db_engine('sqlite://')
    Base.metadata.create_all(engine)
    return make_session_factory(engine)


class StoreTestCase(unittest.TestCase):

    def setUp(self):
        self.session_factory = _make_session_factory()
        self.store = RelationshipStore(self.session_factory)

    def _rows(self):
        db = self.session_factory()
        try:
            return db.scalars(select(FriendshipRecord)).all()
        finally:
            db.close()


# ===========================================================================
# find_edge / get_edge
# ===========================================================================

class TestFindEdge(StoreTestCase):

    def test_missing_pair_returns_none(self):
        self.assertIsNone(self.store.find_edge('alice', 'bob'))

    def test_same_user_returns_none(self):
        self.assertIsNone(self.store.find_edge('alice', 'alice'))

    def test_found_from_either_side(self):
        edge = self.store.create_pending('alice', 'bob')
        self.assertEqual(self.store.find_edge('alice', 'bob'), edge)
        self.assertEqual(self.store.find_edge('bob', 'alice'), edge)

    def test_get_edge_by_id(self):
        edge = self.store.create_pending('alice', 'bob')
        self.assertEqual(self.store.get_edge(edge.id), edge)
        self.assertIsNone(self.store.get_edge('no-such-edge'))


# ===========================================================================
# create_pending
# ===========================================================================

class TestCreatePending(StoreTestCase):

    def test_creates_pending_edge(self):
        edge = self.store.create_pending('alice', 'bob')
        self.assertIs(edge.status, EdgeStatus.PENDING)
        self.assertEqual(edge.requester_id, 'alice')
        self.assertEqual(edge.recipient_id, 'bob')
        self.assertEqual(len(self._rows()), 1)

    def test_self_request_raises_value_error(self):
        with self.assertRaises(ValueError):
            self.store.create_pending('alice', 'alice')
        self.assertEqual(self._rows(), [])

    def test_second_request_same_direction_conflicts(self):
        first = self.store.create_pending('alice', 'bob')
        with self.assertRaises(Conflict) as ctx:
            self.store.create_pending('alice', 'bob')
        self.assertEqual(ctx.exception.edge, first)
        self.assertEqual(len(self._rows()), 1)

    def test_reverse_request_conflicts(self):
        first = self.store.create_pending('alice', 'bob')
        with self.assertRaises(Conflict) as ctx:
            self.store.create_pending('bob', 'alice')
        self.assertEqual(ctx.exception.edge.requester_id, 'alice')
        self.assertEqual(ctx.exception.edge.id, first.id)

    def test_accepted_pair_conflicts(self):
        edge = self.store.create_pending('alice', 'bob')
        self.store.transition(edge.id, 'bob', EdgeStatus.ACCEPTED)
        with self.assertRaises(Conflict) as ctx:
            self.store.create_pending('bob', 'alice')
        self.assertIs(ctx.exception.edge.status, EdgeStatus.ACCEPTED)

    def test_declined_edge_is_revived_in_place(self):
        edge = self.store.create_pending('alice', 'bob')
        self.store.transition(edge.id, 'bob', EdgeStatus.DECLINED)
        revived = self.store.create_pending('alice', 'bob')
        self.assertEqual(revived.id, edge.id)
        self.assertIs(revived.status, EdgeStatus.PENDING)
        self.assertEqual(len(self._rows()), 1)

    def test_decliner_can_request_back(self):
        edge = self.store.create_pending('alice', 'bob')
        self.store.transition(edge.id, 'bob', EdgeStatus.DECLINED)
        revived = self.store.create_pending('bob', 'alice')
        self.assertEqual(revived.requester_id, 'bob')
        self.assertEqual(revived.recipient_id, 'alice')

    def test_revive_refreshes_timestamps(self):
        edge = self.store.create_pending('alice', 'bob')
        declined = self.store.transition(edge.id, 'bob', EdgeStatus.DECLINED)
        revived = self.store.create_pending('alice', 'bob')
        self.assertGreaterEqual(revived.updated_at, declined.updated_at)
        self.assertGreaterEqual(revived.created_at, edge.created_at)


# ===========================================================================
# transition
# ===========================================================================

class TestTransition(StoreTestCase):

    def setUp(self):
        super().setUp()
        self.edge = self.store.create_pending('alice', 'bob')

    def test_recipient_accepts(self):
        edge = self.store.transition(self.edge.id, 'bob', EdgeStatus.ACCEPTED)
        self.assertIs(edge.status, EdgeStatus.ACCEPTED)
        self.assertEqual(edge.id, self.edge.id)

    def test_recipient_declines(self):
        edge = self.store.transition(self.edge.id, 'bob', 'declined')
        self.assertIs(edge.status, EdgeStatus.DECLINED)

    def test_requester_cannot_accept(self):
        with self.assertRaises(Forbidden):
            self.store.transition(self.edge.id, 'alice', EdgeStatus.ACCEPTED)
        self.assertTrue(self.store.get_edge(self.edge.id).is_pending)

    def test_stranger_cannot_decline(self):
        with self.assertRaises(Forbidden):
            self.store.transition(self.edge.id, 'carol', EdgeStatus.DECLINED)

    def test_unknown_edge(self):
        with self.assertRaises(NotFound):
            self.store.transition('missing', 'bob', EdgeStatus.ACCEPTED)

    def test_second_resolution_conflicts(self):
        self.store.transition(self.edge.id, 'bob', EdgeStatus.ACCEPTED)
        with self.assertRaises(Conflict) as ctx:
            self.store.transition(self.edge.id, 'bob', EdgeStatus.DECLINED)
        self.assertIs(ctx.exception.edge.status, EdgeStatus.ACCEPTED)

    def test_resolved_edge_conflicts_even_for_stranger(self):
        self.store.transition(self.edge.id, 'bob', EdgeStatus.DECLINED)
        with self.assertRaises(Conflict):
            self.store.transition(self.edge.id, 'carol', EdgeStatus.ACCEPTED)

    def test_pending_target_is_rejected(self):
        with self.assertRaises(ValueError):
            self.store.transition(self.edge.id, 'bob', EdgeStatus.PENDING)


# ===========================================================================
# cancel
# ===========================================================================

class TestCancel(StoreTestCase):

    def setUp(self):
        super().setUp()
        self.edge = self.store.create_pending('alice', 'bob')

    def test_requester_cancels(self):
        self.assertIsNone(self.store.cancel(self.edge.id, 'alice'))
        self.assertIsNone(self.store.get_edge(self.edge.id))
        self.assertEqual(self._rows(), [])

    def test_recipient_cannot_cancel(self):
        with self.assertRaises(Forbidden):
            self.store.cancel(self.edge.id, 'bob')
        self.assertIsNotNone(self.store.get_edge(self.edge.id))

    def test_cancel_after_accept_conflicts(self):
        self.store.transition(self.edge.id, 'bob', EdgeStatus.ACCEPTED)
        with self.assertRaises(Conflict):
            self.store.cancel(self.edge.id, 'alice')
        self.assertIs(self.store.get_edge(self.edge.id).status, EdgeStatus.ACCEPTED)

    def test_cancel_twice_conflicts(self):
        self.store.cancel(self.edge.id, 'alice')
        with self.assertRaises(Conflict):
            self.store.cancel(self.edge.id, 'alice')

    def test_resolving_cancelled_edge_conflicts(self):
        self.store.cancel(self.edge.id, 'alice')
        for target in (EdgeStatus.ACCEPTED, EdgeStatus.DECLINED):
            with self.assertRaises(Conflict):
                self.store.transition(self.edge.id, 'bob', target)

    def test_cancelled_id_is_recorded(self):
        self.store.cancel(self.edge.id, 'alice')
        db = self.session_factory()
        try:
            record = db.get(CancelledFriendshipRecord, self.edge.id)
        finally:
            db.close()
        self.assertEqual(record.requester_id, 'alice')

    def test_failed_cancel_records_nothing(self):
        with self.assertRaises(Forbidden):
            self.store.cancel(self.edge.id, 'bob')
        db = self.session_factory()
        try:
            self.assertIsNone(db.get(CancelledFriendshipRecord, self.edge.id))
        finally:
            db.close()

    def test_unknown_id_is_still_not_found(self):
        with self.assertRaises(NotFound):
            self.store.cancel('missing', 'alice')

    def test_pair_can_be_requested_again_after_cancel(self):
        self.store.cancel(self.edge.id, 'alice')
        edge = self.store.create_pending('bob', 'alice')
        self.assertNotEqual(edge.id, self.edge.id)


# ===========================================================================
# list_edges_for_user
# ===========================================================================

class TestListEdgesForUser(StoreTestCase):

    def test_lists_both_directions_and_all_statuses(self):
        e1 = self.store.create_pending('alice', 'bob')
        e2 = self.store.create_pending('carol', 'alice')
        self.store.transition(e2.id, 'alice', EdgeStatus.DECLINED)
        self.store.create_pending('bob', 'carol')
        ids = {e.id for e in self.store.list_edges_for_user('alice')}
        self.assertEqual(ids, {e1.id, e2.id})

    def test_status_filter(self):
        e1 = self.store.create_pending('alice', 'bob')
        self.store.create_pending('alice', 'carol')
        self.store.transition(e1.id, 'bob', EdgeStatus.ACCEPTED)
        accepted = list(self.store.list_edges_for_user('alice', EdgeStatus.ACCEPTED))
        self.assertEqual([e.id for e in accepted], [e1.id])

    def test_listing_is_restartable(self):
        self.store.create_pending('alice', 'bob')
        listing = self.store.list_edges_for_user('alice')
        self.assertEqual(list(listing), list(listing))

    def test_listing_reflects_later_writes(self):
        edge = self.store.create_pending('alice', 'bob')
        listing = self.store.list_edges_for_user('alice')
        self.store.transition(edge.id, 'bob', EdgeStatus.ACCEPTED)
        self.assertIs(next(iter(listing)).status, EdgeStatus.ACCEPTED)

    def test_newest_update_first(self):
        older = self.store.create_pending('alice', 'bob')
        newer = self.store.create_pending('alice', 'carol')
        db = self.session_factory()
        try:
            db.get(FriendshipRecord, older.id).updated_at = utcnow() - timedelta(hours=1)
            db.commit()
        finally:
            db.close()
        ids = [e.id for e in self.store.list_edges_for_user('alice')]
        self.assertEqual(ids, [newer.id, older.id])

    def test_unknown_user_lists_nothing(self):
        self.assertEqual(list(self.store.list_edges_for_user('nobody')), [])


# ===========================================================================
# Pair uniqueness under arbitrary operation sequences
# ===========================================================================

class TestPairUniqueness(StoreTestCase):

    USERS = ['alice', 'bob', 'carol', 'dave']

    def _random_step(self, rng):
        a, b = rng.sample(self.USERS, 2)
        op = rng.choice(['send', 'accept', 'decline', 'cancel'])
        try:
            if op == 'send':
                self.store.create_pending(a, b)
                return
            edge = self.store.find_edge(a, b)
            if edge is None:
                return
            actor = rng.choice([edge.requester_id, edge.recipient_id])
            if op == 'cancel':
                self.store.cancel(edge.id, actor)
            else:
                target = EdgeStatus.ACCEPTED if op == 'accept' else EdgeStatus.DECLINED
                self.store.transition(edge.id, actor, target)
        except (Conflict, Forbidden, NotFound):
            pass

    def test_at_most_one_edge_per_pair(self):
        rng = random.Random(20261018)
        for _ in range(300):
            self._random_step(rng)
        pairs = Counter((r.user_low_id, r.user_high_id) for r in self._rows())
        self.assertTrue(pairs)
        self.assertTrue(all(count == 1 for count in pairs.values()))
        for row in self._rows():
            self.assertNotEqual(row.requester_id, row.recipient_id)


if __name__ == '__main__':
    unittest.main()
