"""Cache key schema for the callflow engine.

Key format: {namespace}:{concern}:{business_b64}:{identity...}

Where:
- namespace: "callflow" by default (shared Redis)
- concern: "combinations", "trigger_defs" or "trigger_eval"
- business_b64: Base64URL encoded business context id
- identity: request fingerprint, or trigger id (+ record fingerprint)

Business ids are encoded so that one context's scope prefix can never match
another context's keys, and so they are safe inside SCAN MATCH patterns.
"""

from __future__ import annotations

import base64
import hashlib
from collections.abc import Iterable, Mapping
from typing import Any, Literal

import orjson

from callflow.core.executor import lookup
from callflow.errors import TriggerEvaluationError
from callflow.models.questions import CombinationRequest

Concern = Literal["combinations", "trigger_defs", "trigger_eval"]

FINGERPRINT_LENGTH = 32


def encode_id(value: str) -> str:
    """Encode identifier to Base64URL without padding."""
    return base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii").rstrip("=")


def decode_id(value: str) -> str:
    padded = value + "=" * ((4 - len(value) % 4) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")


def _digest(payload: Any) -> str:
    canonical = orjson.dumps(
        payload, option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS, default=str
    )
    return hashlib.sha256(canonical).hexdigest()[:FINGERPRINT_LENGTH]


def request_fingerprint(request: CombinationRequest) -> str:
    """Stable hash of a combination request's semantic identity.

    Question order and weight-map ordering do not change the fingerprint.
    """
    return _digest(
        {
            "business": request.business_context_id,
            "duration": request.max_duration_seconds,
            "questions": sorted(request.available_questions),
            "priority_weights": request.priority_weights,
            "topic_preferences": request.topic_preferences,
            "exclude": sorted(request.exclude_questions),
        }
    )


def record_fingerprint(record: Mapping[str, Any], fields: Iterable[str]) -> str:
    """Hash of the record fields a trigger actually reads.

    Raises:
        TriggerEvaluationError: If a referenced value has no canonical JSON form
    """
    try:
        return _digest({name: lookup(record, name) for name in sorted(fields)})
    except orjson.JSONEncodeError as exc:
        raise TriggerEvaluationError(f"record cannot be fingerprinted: {exc}") from exc


class CacheKeys:
    """Cache key generator following consistent naming convention."""

    COMBINATIONS: Concern = "combinations"
    TRIGGER_DEFS: Concern = "trigger_defs"
    TRIGGER_EVAL: Concern = "trigger_eval"

    def __init__(self, namespace: str = "callflow"):
        self.namespace = namespace

    def concern_prefix(self, concern: Concern) -> str:
        """Prefix covering every key of a concern, across businesses."""
        return f"{self.namespace}:{concern}:"

    def business_prefix(self, concern: Concern, business_context_id: str) -> str:
        """Prefix covering one business context's keys of a concern."""
        return f"{self.namespace}:{concern}:{encode_id(business_context_id)}:"

    def combination(self, request: CombinationRequest) -> str:
        """Key for an optimized combination."""
        return (
            self.business_prefix(self.COMBINATIONS, request.business_context_id)
            + request_fingerprint(request)
        )

    def trigger_definition(self, business_context_id: str, trigger_id: str) -> str:
        """Key for a compiled trigger."""
        return self.business_prefix(self.TRIGGER_DEFS, business_context_id) + encode_id(
            trigger_id
        )

    def trigger_evaluations(self, business_context_id: str, trigger_id: str) -> str:
        """Prefix covering every cached evaluation of one trigger."""
        return (
            self.business_prefix(self.TRIGGER_EVAL, business_context_id)
            + encode_id(trigger_id)
            + ":"
        )

    def trigger_evaluation(
        self,
        business_context_id: str,
        trigger_id: str,
        record: Mapping[str, Any],
        fields: Iterable[str],
    ) -> str:
        """Key for one trigger's verdict on one record."""
        return self.trigger_evaluations(business_context_id, trigger_id) + record_fingerprint(
            record, fields
        )

    def parse_key(self, key: str) -> dict[str, str] | None:
        """Parse a cache key into its components.

        Returns None if the key doesn't match the expected format.
        """
        parts = key.split(":")
        if len(parts) < 4 or parts[0] != self.namespace:
            return None
        if parts[1] not in (self.COMBINATIONS, self.TRIGGER_DEFS, self.TRIGGER_EVAL):
            return None

        try:
            business = decode_id(parts[2])
        except (ValueError, UnicodeDecodeError):
            return None

        return {
            "namespace": parts[0],
            "concern": parts[1],
            "business_context_id": business,
            "identity": ":".join(parts[3:]),
        }
