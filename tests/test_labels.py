import random

from rpk8s.labels import (
    decode_boolean,
    decode_double,
    decode_int,
    decode_long,
    select_array,
    select_indexed_array,
    select_subset,
)


class TestScalarDecoders:
    def test_decode_boolean(self):
        assert decode_boolean("true") is True
        assert decode_boolean("false") is False
        assert decode_boolean("TRUE") is True

        # Must reject everything else.
        for value in ("", "potato", "1", "0", "yes", " true"):
            assert decode_boolean(value) is None

    def test_decode_double(self):
        assert decode_double("0.") == 0
        assert decode_double("0") == 0
        assert decode_double("1.234") == 1.234
        assert decode_double("-1.234") == -1.234
        assert decode_double("1e3") == 1000

        # Must reject malformed values, including those Python's `float`
        # would accept.
        invalid = ("", "potato", "0.potato", "nan", "inf", "1_000", " 1", "1e400")
        for value in invalid:
            assert decode_double(value) is None

    def test_decode_int(self):
        assert decode_int("0") == 0
        assert decode_int("12345") == 12345
        assert decode_int("-12") == -12
        assert decode_int(str(-(2**31))) == -(2**31)
        assert decode_int(str(2**31 - 1)) == 2**31 - 1

        # Must reject fractions, malformed values and values out of range.
        invalid = ("", "potato", "0.potato", "0.", "1.234", "1_000", " 1", "1e3")
        for value in invalid:
            assert decode_int(value) is None
        assert decode_int(str(2**31)) is None
        assert decode_int(str(-(2**31) - 1)) is None

    def test_decode_long(self):
        assert decode_long("0") == 0
        assert decode_long("12345") == 12345
        assert decode_long(str(-(2**63))) == -(2**63)
        assert decode_long(str(2**63 - 1)) == 2**63 - 1
        assert decode_long(str(2**31)) == 2**31

        for value in ("", "potato", "0.potato", "0.", "1.234"):
            assert decode_long(value) is None
        assert decode_long(str(2**63)) is None


class TestSelectArray:
    def test_simple_array(self):
        labels = {"com.testing.1": "world", "com.testing.0": "hello"}
        assert select_array(labels, "com.testing") == [{"": "hello"}, {"": "world"}]

    def test_nested_map(self):
        labels = {
            "com.testing.1.name": "jake",
            "com.testing.0.name": "steve",
            "com.testing.0.color": "red",
            "com.testing.1.color": "yellow",
        }
        assert select_array(labels, "com.testing") == [
            {"name": "steve", "color": "red"},
            {"name": "jake", "color": "yellow"},
        ]

    def test_numeric_order(self):
        """Elements must be sorted numerically, not lexicographically."""
        items = [(f"com.testing.{i}", str(i)) for i in range(12)]
        random.shuffle(items)

        out = select_array(dict(items), "com.testing")
        assert out == [{"": str(i)} for i in range(12)]

    def test_gaps_and_garbage(self):
        labels = {
            "com.testing.5": "five",
            "com.testing.2": "two",
            "com.testing.x": "not an index",
            "com.testing.-1": "negative",
            "com.testingother.0": "other prefix",
            "com.testing": "no index",
        }
        assert select_array(labels, "com.testing") == [{"": "two"}, {"": "five"}]

    def test_empty(self):
        assert select_array({}, "com.testing") == []
        assert select_array({"foo": "bar"}, "com.testing") == []


class TestSelectSubset:
    def test_basic(self):
        labels = {
            "com.testing.name": "world",
            "com.testing.color": "yellow",
            "com.testingother.color": "red",
        }
        assert select_subset(labels, "com.testing") == {
            "name": "world",
            "color": "yellow",
        }

    def test_nested_keys(self):
        labels = {"com.testing.args.0": "a", "com.testing.args.1": "b", "x.y": "z"}
        assert select_subset(labels, "com.testing") == {"args.0": "a", "args.1": "b"}

    def test_empty(self):
        assert select_subset({}, "com.testing") == {}
        assert select_subset({"com.testing": "exact"}, "com.testing") == {}


class TestSelectIndexedArray:
    def test_indices_survive_gaps(self):
        labels = {
            "com.testing.7.name": "seven",
            "com.testing.2.name": "two",
            "com.testing.10.name": "ten",
        }
        assert select_indexed_array(labels, "com.testing") == [
            (2, {"name": "two"}),
            (7, {"name": "seven"}),
            (10, {"name": "ten"}),
        ]
