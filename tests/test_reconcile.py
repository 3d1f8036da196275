"""Tests for update_in_place — list reconciliation by id."""

from dataclasses import dataclass

from storefx import update_in_place


@dataclass
class Item:
    id: str
    value: int
    section: int = 0


def _ids(items):
    return [item.id for item in items]


class TestUpdateInPlace:
    def test_reuses_creates_and_drops(self):
        a, b, d = Item("1", 1), Item("2", 2), Item("4", 4)
        items = [a, b, d]
        created = []

        def create(index, new_id):
            created.append((index, new_id))
            return Item(new_id, index)

        update_in_place(items, ["2", "3", "1"], create, new_item_id=lambda key: key)

        assert _ids(items) == ["2", "3", "1"]
        assert items[0] is b
        assert items[2] is a
        assert created == [(1, "3")]
        assert d not in items

    def test_no_change_creates_nothing(self):
        items = [Item("a", 1), Item("b", 2)]
        before = list(items)
        update_in_place(items, ["a", "b"], lambda i, k: Item(k, -1), new_item_id=lambda k: k)
        assert all(x is y for x, y in zip(items, before))

    def test_from_empty(self):
        items = []
        update_in_place(items, ["x", "y"], lambda i, k: Item(k, i), new_item_id=lambda k: k)
        assert items == [Item("x", 0), Item("y", 1)]

    def test_to_empty(self):
        items = [Item("x", 0), Item("y", 1)]
        update_in_place(items, [], lambda i, k: Item(k, i), new_item_id=lambda k: k)
        assert items == []

    def test_default_id_attribute_on_both_sides(self):
        old = Item("a", 1)
        items = [old]
        update_in_place(items, [Item("b", 9), Item("a", 9)], lambda i, new: Item(new.id, new.value))
        assert _ids(items) == ["b", "a"]
        assert items[1] is old
        assert items[1].value == 1

    def test_custom_item_id(self):
        items = [("k1", "old")]
        update_in_place(
            items,
            ["k2", "k1"],
            lambda i, k: (k, "new"),
            item_id=lambda pair: pair[0],
            new_item_id=lambda k: k,
        )
        assert items == [("k2", "new"), ("k1", "old")]


class TestIncludeFilter:
    """Updating one section of a sectioned list leaves the others alone."""

    def _sectioned(self):
        return [
            Item("a", 1, 0), Item("b", 2, 0), Item("c", 3, 0),
            Item("d", 4, 1), Item("e", 5, 1), Item("f", 6, 1),
            Item("g", 7, 2), Item("h", 8, 2), Item("i", 9, 2),
        ]

    def _update(self, items, section, keys):
        update_in_place(
            items,
            keys,
            lambda index, key: Item(key, index, section),
            new_item_id=lambda key: key,
            include=lambda item: item.section == section,
        )

    def test_replace_within_section(self):
        items = self._sectioned()
        self._update(items, 1, ["d", "e", "ff"])
        assert [(x.id, x.value) for x in items] == [
            ("a", 1), ("b", 2), ("c", 3),
            ("d", 4), ("e", 5), ("ff", 5),
            ("g", 7), ("h", 8), ("i", 9),
        ]

    def test_grow_section(self):
        items = self._sectioned()
        self._update(items, 0, ["b", "a", "c", "cc", "ccc"])
        assert [(x.id, x.value) for x in items][:6] == [
            ("b", 2), ("a", 1), ("c", 3), ("cc", 3), ("ccc", 4), ("d", 4),
        ]
        assert _ids(items)[5:] == ["d", "e", "f", "g", "h", "i"]

    def test_shrink_section(self):
        items = self._sectioned()
        i = items[8]
        self._update(items, 2, ["i"])
        assert _ids(items) == ["a", "b", "c", "d", "e", "f", "i"]
        assert items[-1] is i

    def test_other_sections_untouched(self):
        items = self._sectioned()
        outside = [x for x in items if x.section != 1]
        self._update(items, 1, [])
        assert items == outside
        assert all(x is y for x, y in zip(items, outside))

    def test_same_id_outside_filter_is_not_reused(self):
        items = [Item("x", 1, 0), Item("y", 2, 1)]
        self._update(items, 1, ["x"])
        assert [(x.id, x.section) for x in items] == [("x", 0), ("x", 1)]
