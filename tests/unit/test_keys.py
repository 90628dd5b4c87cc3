"""
Unit tests for cache key builders.
"""

import pytest

from carmarket.core.cache.keys import (
    filter_options_key,
    listing_key,
    listings_key,
    user_listings_key,
)


class TestListingsKey:
    def test_stable_under_filter_order(self):
        first = listings_key({"brand": "Audi", "page": 2, "fuel": "diesel"})
        second = listings_key({"page": 2, "fuel": "diesel", "brand": "Audi"})

        assert first == second

    def test_canonical_form(self):
        assert listings_key({"page": 1, "brand": "Audi"}) == 'listings:{"brand":"Audi","page":1}'

    def test_none_filters_ignored(self):
        assert listings_key({"brand": "Audi", "model": None}) == listings_key({"brand": "Audi"})

    def test_no_filters(self):
        assert listings_key() == "listings:{}"
        assert listings_key({}) == "listings:{}"

    def test_different_filters_differ(self):
        assert listings_key({"page": 1}) != listings_key({"page": 2})


class TestEntityKeys:
    def test_filter_options(self):
        assert filter_options_key() == "filters:options"

    def test_user_listings(self):
        assert user_listings_key(42) == "users:42:listings"

    def test_listing(self):
        assert listing_key("a1b2") == "listing:a1b2"

    @pytest.mark.parametrize("bad", [None, "", "   "])
    def test_empty_ids_rejected(self, bad):
        with pytest.raises(ValueError):
            listing_key(bad)
        with pytest.raises(ValueError):
            user_listings_key(bad)
