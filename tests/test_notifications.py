"""
Unit tests for realtime notification events.
"""
import datetime
import logging
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tournament.notifications import MATCH_FINALIZED, POOLS_UPDATED, Notifier, build_event


class TestBuildEvent:
    """Tests for event payloads."""

    def test_payload_shape(self):
        """Events carry the public code, type, data and timestamp."""
        now = datetime.datetime(2026, 5, 2, 9, 30, tzinfo=datetime.timezone.utc)
        event = build_event('ABC123', MATCH_FINALIZED, {'match_id': 'm1'}, now=now)
        assert event == {
            'tournament_code': 'ABC123',
            'type': 'MATCH_FINALIZED',
            'data': {'match_id': 'm1'},
            'ts': '2026-05-02T09:30:00+00:00',
        }

    def test_unknown_type(self):
        """Only known event types can be built."""
        with pytest.raises(ValueError):
            build_event('ABC123', 'SOMETHING_ELSE')


class TestNotifier:
    """Tests for delivery."""

    def test_emit_all_in_order(self):
        """Events reach the sink in the order given."""
        received = []
        notifier = Notifier(received.append)
        delivered = notifier.emit_all('ABC123', [(POOLS_UPDATED, {'stage_key': 'pool_play_1'}),
                                                 (MATCH_FINALIZED, {'match_id': 'm1'})])
        assert delivered == 2
        assert [event['type'] for event in received] == [POOLS_UPDATED, MATCH_FINALIZED]

    def test_failing_sink_is_logged(self, caplog):
        """A broken sink never raises."""
        def broken(event):
            raise ConnectionError('relay down')

        with caplog.at_level(logging.WARNING):
            assert Notifier(broken).emit('ABC123', POOLS_UPDATED) is False
        assert 'Failed to deliver POOLS_UPDATED' in caplog.text

    def test_no_code_or_sink(self):
        """Nothing is sent without a code or a sink."""
        assert Notifier().emit('ABC123', POOLS_UPDATED) is False
        assert Notifier(lambda event: None).emit('', POOLS_UPDATED) is False
