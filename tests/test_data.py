"""Tests for features, key functions and the libffm reader."""

import pytest

from sparseffm.data.libffm import iter_examples, parse_line, read_libffm
from sparseffm.features import Feature, hash_feature, interaction_key


class TestInteractionKey:
    def test_injective(self):
        num_fields = 5
        keys = {
            interaction_key(index, field, num_fields)
            for index in range(200)
            for field in range(num_fields)
        }
        assert len(keys) == 200 * num_fields

    def test_deterministic(self):
        assert interaction_key(7, 1, 3) == interaction_key(7, 1, 3) == 22

    def test_field_out_of_range(self):
        with pytest.raises(ValueError, match="Field"):
            interaction_key(1, 3, 3)
        with pytest.raises(ValueError, match="Field"):
            interaction_key(1, -1, 3)

    def test_negative_index(self):
        with pytest.raises(ValueError, match="non-negative"):
            interaction_key(-1, 0, 3)

    def test_overflow(self):
        with pytest.raises(ValueError, match="32-bit"):
            interaction_key(2**30, 3, 4)


class TestHashFeature:
    def test_range_and_determinism(self):
        for name in ("user=1", "item=abc", ""):
            h = hash_feature(name, 1000)
            assert 0 <= h < 1000
            assert h == hash_feature(name, 1000)

    def test_seed(self):
        assert hash_feature("x", 2**20, seed=1) != hash_feature("x", 2**20, seed=2)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            hash_feature("x", 0)


class TestFeature:
    def test_defaults_and_str(self):
        x = Feature(index=3, field=1)
        assert x.value == 1.0
        assert str(x) == "1:3:1.0"
        assert str(Feature(3, 1, 0.5, name="age")) == "1:age:0.5"


class TestParseLine:
    def test_numeric_features(self):
        ex = parse_line("1 0:3:1.0 1:17:0.5", num_features=100, num_fields=2)
        assert ex.label == 1.0
        assert ex.features == [
            Feature(3, 0, 1.0, name="3"),
            Feature(17, 1, 0.5, name="17"),
        ]

    def test_hashed_feature(self):
        ex = parse_line("0 0:user_42:1", num_features=1000, num_fields=1)
        assert ex.features[0].index == hash_feature("user_42", 1000)
        assert ex.features[0].name == "user_42"

    def test_default_value(self):
        ex = parse_line("-1 2:5", num_features=10, num_fields=3)
        assert ex.label == -1.0
        assert ex.features[0].value == 1.0

    def test_blank_and_comment(self):
        assert parse_line("   ", 10, 2) is None
        assert parse_line("# header", 10, 2) is None

    def test_label_only(self):
        ex = parse_line("1", 10, 2)
        assert ex.features == []

    @pytest.mark.parametrize(
        "line, message",
        [
            ("x 0:1:1", "label"),
            ("1 0-1-1", "field:feature"),
            ("1 a:1:1", "malformed"),
            ("1 0:1:abc", "malformed"),
            ("1 5:1:1", "field 5"),
            ("1 0:10:1", "feature index"),
        ],
    )
    def test_errors(self, line, message):
        with pytest.raises(ValueError, match=message):
            parse_line(line, num_features=10, num_fields=2, lineno=4)

    def test_error_names_line(self):
        with pytest.raises(ValueError, match="line 4"):
            parse_line("1 9:1:1", num_features=10, num_fields=2, lineno=4)


class TestReader:
    def test_iter_skips_blank_lines(self):
        lines = ["1 0:1:1", "", "# comment", "0 1:2:1"]
        examples = list(iter_examples(lines, 10, 2))
        assert [ex.label for ex in examples] == [1.0, 0.0]

    def test_error_reports_physical_line(self):
        lines = ["1 0:1:1", "", "1 0:99:1"]
        with pytest.raises(ValueError, match="line 3"):
            list(iter_examples(lines, 10, 2))

    def test_read_file(self, tmp_path):
        path = tmp_path / "train.ffm"
        path.write_text("1 0:1:1 1:5:2\n0 0:2:1 1:6:1\n")
        examples = read_libffm(path, 10, 2)
        assert len(examples) == 2
        assert examples[0].features[1].value == 2.0
