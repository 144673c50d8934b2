from .inventory import InventoryStore, Product, Sale

__all__ = ['InventoryStore', 'Product', 'Sale']
