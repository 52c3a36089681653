"""Unit tests for URL composition."""

from connectors_sdk.urlbuilder import URL


def test_joins_paths_and_drops_trailing_slashes():
    url = URL.new("https://api.example.com/v2/", "contacts/")
    assert str(url) == "https://api.example.com/v2/contacts"


def test_query_params_sorted_and_encoded():
    url = URL.new("https://api.example.com", "search")
    url.with_query_param("q", "name is ada")
    url.with_query_param("limit", "100")
    assert str(url) == "https://api.example.com/search?limit=100&q=name+is+ada"


def test_unencoded_param_kept_verbatim():
    url = URL.new("https://api.example.com", "search")
    url.with_unencoded_query_param("filter", "a:b")
    assert str(url).endswith("?filter=a:b")


def test_encoding_exceptions():
    url = URL.new("https://api.example.com", "items")
    url.with_query_param("since", "2024-01-01T00:00:00Z")
    url.add_encoding_exceptions({"%3A": ":"})
    assert str(url).endswith("?since=2024-01-01T00:00:00Z")


def test_existing_query_is_preserved():
    url = URL.new("https://api.example.com/items?page=2")
    assert url.get_first_query_param("page") == "2"
    url.remove_query_param("page")
    assert not url.has_query_param("page")


def test_equals_ignores_host_case_and_value_order():
    a = URL.new("https://API.example.com", "x").with_query_param_list("id", ["1", "2"])
    b = URL.new("https://api.example.com", "x").with_query_param_list("id", ["2", "1"])
    assert a == b
