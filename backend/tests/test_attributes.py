import pytest

from storefront.attributes import AttributeMap


def test_keys_are_normalized_and_values_stripped():
    attrs = AttributeMap({" Size ": " 500ml ", "COLOR": "Black"})
    assert list(attrs) == ["size", "color"]
    assert attrs["SIZE"] == "500ml"
    assert "Color" in attrs
    assert attrs.to_dict() == {"size": "500ml", "color": "Black"}


def test_equality_ignores_order_and_accepts_plain_dicts():
    a = AttributeMap([("size", "500ml"), ("color", "black")])
    b = AttributeMap({"color": "black", "size": "500ml"})
    assert a == b
    assert hash(a) == hash(b)
    assert a == {"Size": "500ml", "color": "black"}
    assert a != AttributeMap({"size": "500ml"})


def test_values_keep_case():
    assert AttributeMap({"color": "Black"}) != AttributeMap({"color": "black"})


def test_matches():
    attrs = AttributeMap({"size": "500ml"})
    assert attrs.matches("Size", "500ml")
    assert not attrs.matches("size", "350ml")
    assert not attrs.matches("color", "black")
    assert attrs.matches(None, None)


@pytest.mark.parametrize("data", [{"size": None}, {"": "x"}, {None: "x"}])
def test_rejects_null_or_blank(data):
    with pytest.raises(ValueError):
        AttributeMap(data)


def test_joined_values():
    assert AttributeMap({"size": "500ml", "color": "Black"}).joined_values() == "500ml Black"
