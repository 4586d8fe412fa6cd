import pytest

from cs2_maps import CS2_MAPS, UNKNOWN_MAP, get_map_name, normalize_map_name


class TestGetMapName:

    def test_by_engine_name(self):
        assert get_map_name("de_mirage") == "Mirage"

    def test_by_display_name_case_insensitive(self):
        assert get_map_name("  INFERNO ") == "Inferno"

    def test_unknown(self):
        assert get_map_name("de_cache") is None
        assert get_map_name("") is None

    def test_catalogue_names_are_unique(self):
        names = list(CS2_MAPS.values())
        assert len(names) == len(set(names))


class TestNormalizeMapName:

    @pytest.mark.parametrize("raw,expected", [
        ("de_mirage", "Mirage"),
        ("Mirage", "Mirage"),
        ("DE_DUST2", "Dust2"),
        ("cs_office", "Office"),
        ("de_cache", "Cache"),
        ("ar_shoots", "Shoots"),
        ("thera", "Thera"),
        ("", UNKNOWN_MAP),
        ("   ", UNKNOWN_MAP),
        (None, UNKNOWN_MAP),
        ("de_", UNKNOWN_MAP),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_map_name(raw) == expected
