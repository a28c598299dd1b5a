import pytest

from nft_market_monitor import config
from nft_market_monitor.errors import ConfigError


def test_defaults_when_unset(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.delenv("SOME_INT", raising=False)
    assert config.get_int("SOME_INT", 30) == 30
    assert config.get_str_list("SOME_INT", ["0xa"]) == ["0xa"]


def test_numbers_are_parsed(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv("SOME_INT", "1800")
    monkeypatch.setenv("SOME_FLOAT", "0.25")
    assert config.get_int("SOME_INT", 0) == 1800
    assert config.get_float("SOME_FLOAT", 0.1) == 0.25


def test_bad_number_raises(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv("SOME_INT", "soon")
    with pytest.raises(ConfigError):
        config.get_int("SOME_INT", 0)


def test_contract_list_is_lowercased(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv("CONTRACTS", '["0xABC", " 0xDef ", ""]')
    assert config.get_str_list("CONTRACTS", []) == ["0xabc", "0xdef"]


def test_contract_list_must_be_json_array(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv("CONTRACTS", "0xabc,0xdef")
    with pytest.raises(ConfigError):
        config.get_str_list("CONTRACTS", [])


def test_toggles_merge_over_defaults(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv("TOGGLES", '{"sales": false}')
    assert config.get_bool_map("TOGGLES", {"floor": True, "sales": True}) == {"floor": True, "sales": False}

    monkeypatch.setenv("TOGGLES", '{"sales": "no"}')
    with pytest.raises(ConfigError):
        config.get_bool_map("TOGGLES", {})
