"""
Tests for local cart storage
"""
import json

from storefront.cart.models import CartLine
from storefront.cart.storage import FileStorage, LocalCartStore, MemoryStorage, StorageKeys


class TestLocalCartStore:
    def test_missing_cart_is_empty(self, local_store):
        assert local_store.get_local_cart() == []

    def test_save_and_load(self, local_store):
        lines = [CartLine("a", 2, 100), CartLine("b", 1, 250)]
        local_store.save_local_cart(lines)
        assert local_store.get_local_cart() == lines

    def test_corrupt_json_reads_as_empty(self, storage, local_store):
        storage.set_item(StorageKeys.CART_ITEMS, "{not json")
        assert local_store.get_local_cart() == []

    def test_invalid_line_reads_as_empty(self, storage, local_store):
        storage.set_json(StorageKeys.CART_ITEMS, [{"product_id": "a", "quantity": -1}])
        assert local_store.get_local_cart() == []

    def test_clear_cart_removes_lines_and_cart_id(self, local_store):
        local_store.save_local_cart([CartLine("a", 1, 100)])
        local_store.set_cart_id("cart_1")
        local_store.set_auth_token("token")

        local_store.clear_cart()

        assert local_store.get_local_cart() == []
        assert local_store.get_cart_id() is None
        assert local_store.get_auth_token() == "token"

    def test_auth_token_is_json_encoded(self, storage, local_store):
        local_store.set_auth_token("abc")
        assert storage.get_item(StorageKeys.AUTH_TOKEN) == '"abc"'

    def test_duplicate_stored_lines_collapse(self, storage, local_store):
        storage.set_json(
            StorageKeys.CART_ITEMS,
            [
                {"product_id": "a", "quantity": 1, "unit_price": 100},
                {"product_id": "b", "quantity": 1, "unit_price": 250},
                {"product_id": "a", "quantity": 2, "unit_price": 100},
            ],
        )

        assert [(l.product_id, l.quantity) for l in local_store.get_local_cart()] == [("a", 3), ("b", 1)]

    def test_unsynced_flag(self, local_store):
        assert not local_store.has_unsynced_changes()

        local_store.mark_unsynced()
        assert local_store.has_unsynced_changes()

        local_store.clear_unsynced()
        assert not local_store.has_unsynced_changes()

    def test_clear_cart_drops_unsynced_flag(self, local_store):
        local_store.save_local_cart([CartLine("a", 1, 100)])
        local_store.mark_unsynced()

        local_store.clear_cart()

        assert not local_store.has_unsynced_changes()
        local_store.clear_auth_token()
        assert local_store.get_auth_token() is None

    def test_failed_write_is_swallowed(self):
        class BrokenStorage(MemoryStorage):
            def set_item(self, key, value):
                raise OSError("quota exceeded")

        store = LocalCartStore(BrokenStorage())
        store.save_local_cart([CartLine("a", 1, 100)])
        store.set_cart_id("cart_1")

        assert store.get_local_cart() == []


class TestFileStorage:
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "state" / "storage.json"
        LocalCartStore(FileStorage(path)).save_local_cart([CartLine("a", 3, 100)])

        reloaded = LocalCartStore(FileStorage(path)).get_local_cart()

        assert reloaded == [CartLine("a", 3, 100)]
        assert StorageKeys.CART_ITEMS in json.loads(path.read_text())

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("garbage")
        storage = FileStorage(path)

        assert storage.get_item(StorageKeys.CART_ID) is None
        storage.set_item(StorageKeys.CART_ID, "cart_9")
        assert storage.get_item(StorageKeys.CART_ID) == "cart_9"

    def test_remove_item(self, tmp_path):
        storage = FileStorage(tmp_path / "storage.json")
        storage.set_item("k", "v")
        storage.remove_item("k")
        assert storage.get_item("k") is None
