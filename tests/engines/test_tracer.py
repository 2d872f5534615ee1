"""
Tests for the engine tracer.

Covers:
- Deterministic input fingerprints
- INCENTIVE_ENGINE_TRACE records emitted by decorated calculators
"""

from decimal import Decimal

from incentive_engines.multiplier import resolve_multiplier
from incentive_engines.tracer import compute_input_fingerprint, traced_engine
from tests.builders import metric


class TestFingerprint:
    """Tests for compute_input_fingerprint."""

    def test_sixteen_hex_characters(self):
        fp = compute_input_fingerprint(("a",), {"a": Decimal("1")})

        assert len(fp) == 16
        int(fp, 16)

    def test_decimal_normalized(self):
        """1.0 and 1.00 describe the same input."""
        assert compute_input_fingerprint(("a",), {"a": Decimal("1.0")}) == \
            compute_input_fingerprint(("a",), {"a": Decimal("1.00")})

    def test_dict_key_order_irrelevant(self):
        left = compute_input_fingerprint(("m",), {"m": {"x": 1, "y": 2}})
        right = compute_input_fingerprint(("m",), {"m": {"y": 2, "x": 1}})

        assert left == right

    def test_different_inputs_differ(self):
        assert compute_input_fingerprint(("a",), {"a": 1}) != \
            compute_input_fingerprint(("a",), {"a": 2})

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("a",), {}) == \
            compute_input_fingerprint(("a",), {"a": None})


class TestTracedEngine:
    """Tests for the decorator."""

    def test_trace_record_emitted(self, captured_logs):
        resolve_multiplier(Decimal("110"), metric())

        traces = [r for r in captured_logs() if r["message"] == "INCENTIVE_ENGINE_TRACE"]
        assert traces
        trace = traces[-1]
        assert trace["engine_name"] == "multiplier"
        assert trace["engine_version"] == "1.0"
        assert len(trace["input_fingerprint"]) == 16
        assert trace["function"] == "resolve_multiplier"

    def test_result_and_metadata_preserved(self):
        @traced_engine("demo", "2.1", fingerprint_fields=("x",))
        def double(x):
            """Doubles."""
            return x * 2

        assert double(Decimal("4")) == Decimal("8")
        assert double.__name__ == "double"
        assert double.__doc__ == "Doubles."

    def test_keyword_arguments_fingerprinted_like_positional(self, captured_logs):
        @traced_engine("demo", "1.0", fingerprint_fields=("x",))
        def ident(x):
            return x

        ident(Decimal("5"))
        ident(x=Decimal("5"))

        fps = [
            r["input_fingerprint"] for r in captured_logs()
            if r.get("engine_name") == "demo"
        ]
        assert len(fps) == 2
        assert fps[0] == fps[1]
