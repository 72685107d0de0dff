from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from .entities import Customer, Order, Product
from .errors import BackofficeError
from .ledger import display_money
from .repository import EntityRepository

logger = logging.getLogger(__name__)


def list_active_customers_and_products(repo: EntityRepository) -> Tuple[List[Customer], List[Product]]:
    """Snapshot used to populate choices; advisory only.

    Orders are validated against direct lookups, so a failure here degrades
    to empty lists instead of propagating.
    """
    try:
        customers = repo.list_all(Customer)
        products = repo.list_all(Product)
    except BackofficeError as e:
        logger.error("Error loading customers/products for selection: %s", e)
        return [], []
    return customers, products


def get_product_info(repo: EntityRepository, product_id: str) -> Optional[Dict]:
    product = repo.get(Product, product_id)
    if product is None:
        return None
    return {
        "id": product.id,
        "name": product.name,
        "price": display_money(product.unit_price),
        "stock": product.stock_available,
        "image_url": product.image_ref,
    }


def dashboard_summary(repo: EntityRepository, featured: int = 5) -> Dict:
    products = repo.list_all(Product)
    return {
        "product_count": len(products),
        "customer_count": len(repo.list_all(Customer)),
        "order_count": len(repo.list_all(Order)),
        "featured_products": products[:featured],
    }
