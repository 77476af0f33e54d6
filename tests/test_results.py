import dataclasses

import pytest

from subbreaker.results import BreakerInfo, BreakerResult


def make_result(**overrides):
    kwargs = dict(
        ciphertext="siaa", plaintext="flee", key="zebrascdfghijklmnopqtuvwxy",
        alphabet="abcdefghijklmnopqrstuvwxyz", fitness=1234.0,
        nbr_keys=1000, nbr_rounds=3, seconds=2.0,
    )
    kwargs.update(overrides)
    return BreakerResult.from_run(**kwargs)


class TestBreakerResult:
    """Test suite for BreakerResult"""

    def test_keys_per_second(self):
        assert make_result().keys_per_second == 500.0

    def test_keys_per_second_without_elapsed_time(self):
        assert make_result(seconds=0.0).keys_per_second == 0.0

    def test_str(self):
        assert str(make_result()) == "key = zebrascdfghijklmnopqtuvwxy"

    def test_immutable(self):
        result = make_result()
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.key = "other"

    def test_to_dict(self):
        data = make_result().to_dict()
        assert data["nbr_rounds"] == 3
        assert data["plaintext"] == "flee"
        assert set(data) == {
            "ciphertext", "plaintext", "key", "alphabet", "fitness",
            "nbr_keys", "nbr_rounds", "keys_per_second", "seconds",
        }


class TestBreakerInfo:
    """Test suite for BreakerInfo"""

    def test_str_lists_fields(self):
        info = BreakerInfo("abc", 10, "abca", 900.0, 12.5)
        text = str(info)
        assert "most_frequent_quadgram = abca" in text
        assert "nbr_quadgrams = 10" in text
        assert info.to_dict()["average_fitness"] == 12.5
