"""
Tests for nonce sequencing across overlapping record ticks.
"""

import pytest

from wrkoracle.nonce import NonceSequencer


class TestNonceSequencer:
    def test_seeded_from_first_observation(self):
        seq = NonceSequencer()
        assert not seq.seeded
        assert seq.next(7) == 7
        assert seq.seeded

    def test_same_pending_nonce_twice_gives_consecutive_nonces(self):
        """The ledger has not caught up yet; the second send must not reuse N."""
        seq = NonceSequencer()
        assert seq.next(12) == 12
        assert seq.next(12) == 13
        assert seq.next(12) == 14

    def test_ledger_ahead_moves_forward(self):
        """An external send from the same account pushes the pending nonce on."""
        seq = NonceSequencer()
        seq.next(3)
        assert seq.next(10) == 10
        assert seq.next(None) == 11

    def test_ledger_behind_is_ignored(self):
        seq = NonceSequencer(seed=20)
        assert seq.next(5) == 20
        assert seq.next(5) == 21

    def test_unseeded_without_observation_raises(self):
        with pytest.raises(RuntimeError):
            NonceSequencer().next()

    def test_strictly_increasing(self):
        seq = NonceSequencer()
        observed = [4, 4, 5, 9, 9, 2, 11, 11]
        issued = [seq.next(n) for n in observed]
        assert issued == sorted(set(issued))
        assert len(set(issued)) == len(issued)


class TestRelease:
    def test_release_latest_reuses_it(self):
        seq = NonceSequencer()
        nonce = seq.next(8)
        assert seq.release(nonce) is True
        assert seq.next(8) == 8

    def test_release_older_nonce_is_refused(self):
        seq = NonceSequencer()
        first = seq.next(8)
        seq.next(8)
        assert seq.release(first) is False
        assert seq.next(8) == 10

    def test_release_before_seed(self):
        assert NonceSequencer().release(0) is False
