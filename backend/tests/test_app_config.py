"""
tests/test_app_config.py
─────────────────────────
Validation and migration of the replicated :class:`AppConfig`.
"""

import pytest
from pydantic import ValidationError

from schemas.app_config import (
    GENERAL_LIST_ID,
    PERFORMANCE_LIST_ID,
    PERMANENT_LIST_IDS,
    TO_ATH_LIST_ID,
    AppConfig,
)


class TestDefaults:
    """A config nobody has touched."""

    def test_permanent_lists_exist(self) -> None:
        config = AppConfig()
        assert {f.id for f in config.favorite_lists} == PERMANENT_LIST_IDS
        assert config.active_list_id == GENERAL_LIST_ID

    def test_never_mutated_timestamp_is_zero(self) -> None:
        assert AppConfig().logical_timestamp == 0

    def test_display_defaults(self) -> None:
        config = AppConfig()
        assert config.grid_columns == 3
        assert config.theme == "light"
        assert config.timeframe == "M"
        assert config.chart_scale == "log"


class TestMigration:
    """Legacy payloads and missing lists."""

    def test_legacy_flat_favorites_fold_into_general(self) -> None:
        config = AppConfig.model_validate({"favorites": ["bitcoin", "solana"], "lastUpdated": 5})

        assert config.get_list(GENERAL_LIST_ID).item_ids == ["bitcoin", "solana"]
        assert config.get_list(TO_ATH_LIST_ID).item_ids == []
        assert config.get_list(PERFORMANCE_LIST_ID).item_ids == []
        assert config.logical_timestamp == 5

    def test_legacy_favorites_ignored_when_general_exists(self) -> None:
        config = AppConfig.model_validate(
            {
                "favorites": ["dogecoin"],
                "favoriteLists": [{"id": GENERAL_LIST_ID, "name": "General", "coinIds": ["bitcoin"]}],
            }
        )
        assert config.get_list(GENERAL_LIST_ID).item_ids == ["bitcoin"]

    def test_missing_permanent_lists_are_added(self) -> None:
        config = AppConfig.model_validate(
            {"favoriteLists": [{"id": "list_user_x", "name": "Alts", "coinIds": ["sol"]}]}
        )
        ids = [f.id for f in config.favorite_lists]
        assert ids[0] == "list_user_x"
        assert set(ids) == PERMANENT_LIST_IDS | {"list_user_x"}

    def test_duplicate_ids_removed(self) -> None:
        config = AppConfig.model_validate(
            {
                "hiddenCoins": ["a", "b", "a"],
                "favoriteLists": [{"id": GENERAL_LIST_ID, "name": "General", "coinIds": ["x", "x"]}],
            }
        )
        assert config.hidden_item_ids == ["a", "b"]
        assert config.get_list(GENERAL_LIST_ID).item_ids == ["x"]


class TestWireFormat:
    """Persisted camelCase keys."""

    def test_to_wire_uses_camel_case(self) -> None:
        wire = AppConfig(hidden_item_ids=["x"], logical_timestamp=7).to_wire()

        assert wire["hiddenCoins"] == ["x"]
        assert wire["lastUpdated"] == 7
        assert "coinIds" in wire["favoriteLists"][0]
        assert wire["restoredGlobalCoins"] == []

    def test_round_trip_through_wire(self) -> None:
        config = AppConfig(theme="dark", show_all_charts=True)
        assert AppConfig.model_validate(config.to_wire()) == config

    def test_invalid_preference_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig.model_validate({"timeframe": "5m"})

    def test_unknown_list_lookup_raises(self) -> None:
        with pytest.raises(KeyError):
            AppConfig().get_list("missing")

    def test_is_favorite(self) -> None:
        config = AppConfig.model_validate({"favorites": ["bitcoin"]})
        assert config.is_favorite("bitcoin")
        assert not config.is_favorite("ethereum")
