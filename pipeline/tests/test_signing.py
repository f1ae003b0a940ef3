"""
Tests for HMAC signing, verification and replay protection.
"""
import hashlib
import hmac

from django.core.cache import cache
from hypothesis import given, settings
import hypothesis.strategies as st

from pipeline.services.signing import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    ReplayGuard,
    sign,
    signature_headers,
    verify,
)

NOW = 1_700_000_000
BODY = '{"az_tx_id":"AZ-1","status":"approved","payout":25.0}'


class TestSign:

    def test_matches_reference_hmac(self):
        expected = hmac.new(b's1', f"{NOW}:{BODY}".encode('utf-8'), hashlib.sha256).hexdigest()
        assert sign('s1', NOW, BODY) == expected

    def test_headers_carry_algorithm_prefix(self):
        headers = signature_headers('s1', BODY, now=NOW)
        assert headers[TIMESTAMP_HEADER] == str(NOW)
        assert headers[SIGNATURE_HEADER] == f"sha256={sign('s1', NOW, BODY)}"


class TestVerify:

    def setup_method(self):
        headers = signature_headers('s1', BODY, now=NOW)
        self.timestamp = headers[TIMESTAMP_HEADER]
        self.signature = headers[SIGNATURE_HEADER]

    def test_roundtrip(self):
        assert verify('s1', self.timestamp, BODY, self.signature, now=NOW) is True

    def test_within_tolerance(self):
        assert verify('s1', self.timestamp, BODY, self.signature, now=NOW + 300) is True

    def test_stale_timestamp(self):
        assert verify('s1', self.timestamp, BODY, self.signature, now=NOW + 301) is False

    def test_future_timestamp(self):
        assert verify('s1', self.timestamp, BODY, self.signature, now=NOW - 301) is False

    def test_wrong_secret(self):
        assert verify('s2', self.timestamp, BODY, self.signature, now=NOW) is False

    def test_wrong_algorithm_prefix(self):
        digest = hmac.new(b's1', f"{NOW}:{BODY}".encode('utf-8'), hashlib.sha1).hexdigest()
        assert verify('s1', self.timestamp, BODY, f"sha1={digest}", now=NOW) is False

    def test_missing_algorithm_prefix(self):
        bare = self.signature.split('=', 1)[1]
        assert verify('s1', self.timestamp, BODY, bare, now=NOW) is False

    def test_non_numeric_timestamp(self):
        assert verify('s1', 'yesterday', BODY, self.signature, now=NOW) is False

    def test_none_signature(self):
        assert verify('s1', self.timestamp, BODY, None, now=NOW) is False

    @settings(max_examples=100)
    @given(data=st.data())
    def test_any_body_mutation_fails(self, data):
        index = data.draw(st.integers(min_value=0, max_value=len(BODY) - 1))
        replacement = data.draw(st.characters(min_codepoint=32, max_codepoint=126).filter(lambda c: c != BODY[index]))
        mutated = BODY[:index] + replacement + BODY[index + 1:]
        assert verify('s1', self.timestamp, mutated, self.signature, now=NOW) is False

    @settings(max_examples=100)
    @given(data=st.data())
    def test_any_signature_mutation_fails(self, data):
        index = data.draw(st.integers(min_value=len('sha256='), max_value=len(self.signature) - 1))
        replacement = data.draw(st.sampled_from('0123456789abcdef').filter(lambda c: c != self.signature[index]))
        mutated = self.signature[:index] + replacement + self.signature[index + 1:]
        assert verify('s1', self.timestamp, BODY, mutated, now=NOW) is False

    @settings(max_examples=50)
    @given(delta=st.integers(min_value=1, max_value=300))
    def test_timestamp_mutation_fails(self, delta):
        # Still inside the tolerance window, so only the digest can reject it
        assert verify('s1', str(NOW + delta), BODY, self.signature, now=NOW) is False


class TestReplayGuard:

    def test_first_use_accepted(self):
        guard = ReplayGuard()
        assert guard.is_replay(NOW, 'sha256=abc') is False

    def test_second_use_rejected(self):
        guard = ReplayGuard()
        guard.is_replay(NOW, 'sha256=abc')
        assert guard.is_replay(NOW, 'sha256=abc') is True

    def test_pairs_are_independent(self):
        guard = ReplayGuard()
        guard.is_replay(NOW, 'sha256=abc')
        assert guard.is_replay(NOW + 1, 'sha256=abc') is False
        assert guard.is_replay(NOW, 'sha256=abd') is False

    def test_shared_across_instances(self):
        ReplayGuard().is_replay(NOW, 'sha256=abc')
        assert ReplayGuard().is_replay(NOW, 'sha256=abc') is True

    def test_key_expires_with_ttl(self):
        guard = ReplayGuard(ttl=300)
        guard.is_replay(NOW, 'sha256=abc')
        cache.delete(guard._key(NOW, 'sha256=abc'))
        assert guard.is_replay(NOW, 'sha256=abc') is False
