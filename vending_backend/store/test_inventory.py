from vending_backend.dispense import ItemRef
from vending_backend.store import InventoryStore, Product


def make_store():
    return InventoryStore([
        Product(id=2, name="Chips", price=1.25, quantity=1),
        Product(id=1, name="Water", price=1.0, quantity=5),
    ])


def test_products_listed_by_id():
    assert [p["id"] for p in make_store().get_all_products()] == [1, 2]


def test_record_order_decrements_and_logs_sales():
    store = make_store()
    store.record_order([ItemRef(1, 2), ItemRef(2, 3), ItemRef(40, 1)])

    quantities = {p["id"]: p["quantity"] for p in store.get_all_products()}
    assert quantities == {1: 3, 2: 1}  # chips short on stock, untouched

    sales = store.get_sales()
    assert [(s["product_id"], s["quantity"]) for s in sales] == [(1, 2), (2, 3), (40, 1)]
    assert all(s["created_at"] for s in sales)
