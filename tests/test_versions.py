import pytest

from mcp_toolchain_manager.versions import compare_versions, sort_newest_first


@pytest.mark.parametrize(
    "a,b,expected",
    [
        ("1.2.0", "1.10.0", 1),
        ("1.10.0", "1.2.0", -1),
        ("1.2.0", "1.2.0", 0),
        ("v1.3.0", "1.2.0", -1),
        ("banana", "apple", -1),
        ("apple", "banana", 1),
    ],
)
def test_compare_versions(a, b, expected):
    assert compare_versions(a, b) == expected


def test_sort_newest_first():
    items = [{"v": "1.0.0"}, {"v": "2.0.0"}, {"v": "1.5.0"}]
    assert [i["v"] for i in sort_newest_first(items, key=lambda i: i["v"])] == [
        "2.0.0",
        "1.5.0",
        "1.0.0",
    ]
