"""Tests for cache key generation."""

import base64

import pytest

from callflow.cache.keys import (
    CacheKeys,
    decode_id,
    encode_id,
    record_fingerprint,
    request_fingerprint,
)
from callflow.errors import TriggerEvaluationError
from callflow.models.questions import CombinationRequest


def b64(value: str) -> str:
    return base64.urlsafe_b64encode(value.encode()).decode("ascii").rstrip("=")


def request(**overrides: object) -> CombinationRequest:
    data: dict[str, object] = {
        "business_context_id": "acme",
        "max_duration_seconds": 60,
        "available_questions": ["q1", "q2", "q3"],
        "priority_weights": {"q1": 2.0, "q2": 1.0},
    }
    data.update(overrides)
    return CombinationRequest.model_validate(data)


class TestEncoding:
    """Test identifier encoding."""

    def test_encode_matches_base64url(self) -> None:
        """Identifiers are Base64URL without padding."""
        assert encode_id("acme") == b64("acme")
        assert "=" not in encode_id("a")

    def test_decode_reverses_encode(self) -> None:
        """Encoded ids decode back, including non-ASCII."""
        for value in ("acme", "a", "tenant/42:eu", "café"):
            assert decode_id(encode_id(value)) == value


class TestCacheKeys:
    """Test cache key generation."""

    def test_combination_key(self) -> None:
        """Combination key has correct format."""
        req = request()
        key = CacheKeys().combination(req)
        assert key == f"callflow:combinations:{b64('acme')}:{request_fingerprint(req)}"

    def test_trigger_definition_key(self) -> None:
        """Trigger definition key has correct format."""
        key = CacheKeys().trigger_definition("acme", "t-1")
        assert key == f"callflow:trigger_defs:{b64('acme')}:{b64('t-1')}"

    def test_trigger_evaluation_key(self) -> None:
        """Evaluation keys extend the trigger's evaluation prefix."""
        keys = CacheKeys()
        record = {"spend": 120}
        key = keys.trigger_evaluation("acme", "t-1", record, ["spend"])

        prefix = keys.trigger_evaluations("acme", "t-1")
        assert prefix == f"callflow:trigger_eval:{b64('acme')}:{b64('t-1')}:"
        assert key == prefix + record_fingerprint(record, ["spend"])

    def test_custom_namespace(self) -> None:
        """The namespace is configurable."""
        keys = CacheKeys("staging")
        assert keys.concern_prefix(CacheKeys.COMBINATIONS) == "staging:combinations:"

    def test_business_prefixes_do_not_overlap(self) -> None:
        """One business context's prefix never matches another's keys."""
        keys = CacheKeys()
        acme = keys.business_prefix(CacheKeys.COMBINATIONS, "acme")
        other = keys.combination(request(business_context_id="acme2"))
        assert not other.startswith(acme)

    def test_parse_valid_key(self) -> None:
        """Valid key is parsed correctly."""
        keys = CacheKeys()
        result = keys.parse_key(keys.trigger_definition("acme", "t-1"))
        assert result is not None
        assert result["namespace"] == "callflow"
        assert result["concern"] == "trigger_defs"
        assert result["business_context_id"] == "acme"
        assert result["identity"] == b64("t-1")

    def test_parse_invalid_key_returns_none(self) -> None:
        """Invalid key returns None."""
        keys = CacheKeys()
        assert keys.parse_key("invalid") is None
        assert keys.parse_key("other:combinations:YWNtZQ:x") is None
        assert keys.parse_key("callflow:unknown:YWNtZQ:x") is None


class TestFingerprints:
    """Test request and record fingerprints."""

    def test_question_order_ignored(self) -> None:
        """Reordering candidate ids does not change the fingerprint."""
        assert request_fingerprint(request()) == request_fingerprint(
            request(available_questions=["q3", "q1", "q2"])
        )

    def test_weight_order_ignored(self) -> None:
        """Weight map ordering does not change the fingerprint."""
        assert request_fingerprint(request()) == request_fingerprint(
            request(priority_weights={"q2": 1.0, "q1": 2.0})
        )

    def test_semantic_change_changes_fingerprint(self) -> None:
        """Duration, weights and exclusions are part of the identity."""
        base = request_fingerprint(request())
        assert request_fingerprint(request(max_duration_seconds=90)) != base
        assert request_fingerprint(request(priority_weights={"q1": 3.0})) != base
        assert request_fingerprint(request(exclude_questions=["q2"])) != base
        assert request_fingerprint(request(topic_preferences={"A": 2.0})) != base

    def test_record_fingerprint_only_reads_referenced_fields(self) -> None:
        """Unreferenced fields do not affect the record fingerprint."""
        fields = ["spend", "customer.tier"]
        one = {"spend": 10, "customer": {"tier": "gold"}, "session": "abc"}
        two = {"spend": 10, "customer": {"tier": "gold"}, "session": "xyz"}
        three = {"spend": 10, "customer": {"tier": "silver"}, "session": "abc"}

        assert record_fingerprint(one, fields) == record_fingerprint(two, fields)
        assert record_fingerprint(one, fields) != record_fingerprint(three, fields)

    def test_record_fingerprint_field_order_ignored(self) -> None:
        """Field list order does not matter."""
        record = {"a": 1, "b": 2}
        assert record_fingerprint(record, ["a", "b"]) == record_fingerprint(record, ["b", "a"])

    def test_record_fingerprint_non_string_keys(self) -> None:
        """Referenced sub-mappings with non-string keys still fingerprint."""
        record = {"scores": {1: "a", 2: "b"}}

        assert len(record_fingerprint(record, ["scores"])) == 32

    def test_record_fingerprint_unencodable_value(self) -> None:
        """A value with no JSON form raises a trigger evaluation error."""
        with pytest.raises(TriggerEvaluationError):
            record_fingerprint({"spend": 10**20}, ["spend"])
