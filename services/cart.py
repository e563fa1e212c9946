"""Per-table editing session for building or re-editing a ticket.

A cart holds what the order *should* contain while staff browse the menu.
It is flushed wholesale on submit: a new order when the table has none open,
otherwise a full item replacement on the open order.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from models.menu_management import Product
from models.order_management import Order
from models.table_management import Table
from schemas.user import CurrentUser, UserRole
from services import order_lifecycle
from services.exceptions import AuthorizationDenied, EmptyOrder, NotFound
from services.order_lifecycle import OrderLine

logger = logging.getLogger(__name__)


@dataclass
class CartItem:
    product_id: int
    name: str
    price: float  # unit price used for totals; historical price for seeded lines
    quantity: int
    notes: Optional[str] = None

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


class Cart:
    def __init__(self, table_id: int, actor: CurrentUser, active_order_id: Optional[int] = None):
        self.table_id = table_id
        self.actor = actor
        self.active_order_id = active_order_id
        self.items: List[CartItem] = []

    @classmethod
    def load(cls, table_id: int, actor: CurrentUser, active_order: Optional[Order] = None,
             catalog: Optional[Mapping[int, Product]] = None) -> "Cart":
        """Seed a cart from the table's open order, if any.

        Lines whose product has left the catalog are dropped instead of
        failing the load.
        """
        cart = cls(table_id, actor, active_order.id if active_order else None)
        if active_order is None:
            return cart
        catalog = catalog or {}
        for item in active_order.items:
            product = catalog.get(item.product_id)
            if product is None:
                logger.debug(f"Dropping product {item.product_id} from cart for table {table_id}: not in catalog")
                continue
            cart.items.append(CartItem(
                product_id=product.id,
                name=product.name,
                price=item.unit_price,
                quantity=item.quantity,
                notes=item.notes,
            ))
        return cart

    @property
    def is_editing(self) -> bool:
        return self.active_order_id is not None

    @property
    def can_edit(self) -> bool:
        return editable(self.active_order_id is not None, self.actor.role)

    def _require_editable(self):
        if not self.can_edit:
            raise AuthorizationDenied(f"Only an admin can edit the open order on table {self.table_id}")

    def find(self, product_id: int) -> Optional[CartItem]:
        return next((item for item in self.items if item.product_id == product_id), None)

    def add(self, product: Product) -> CartItem:
        self._require_editable()
        existing = self.find(product.id)
        if existing:
            existing.quantity += 1
            return existing
        item = CartItem(product_id=product.id, name=product.name, price=product.price, quantity=1)
        self.items.append(item)
        return item

    def update_quantity(self, product_id: int, delta: int) -> Optional[CartItem]:
        self._require_editable()
        item = self.find(product_id)
        if item is None:
            raise NotFound(f"Product {product_id} is not in the cart")
        item.quantity = max(0, item.quantity + delta)
        if item.quantity == 0:
            self.items.remove(item)
            return None
        return item

    def clear(self):
        self.items = []

    @property
    def total(self) -> float:
        return round(sum(item.subtotal for item in self.items), 2)

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    def lines(self) -> List[OrderLine]:
        return [OrderLine(item.product_id, item.quantity, item.price, item.notes) for item in self.items]

    def submit(self, db: Session) -> Order:
        """Flush the cart to the store and clear it.

        The table's open order is re-read here rather than trusted from load
        time; another terminal may have opened or closed one meanwhile. On any
        failure the cart is left as it was so the user can retry.
        """
        active = order_lifecycle.active_orders_for_table(db, self.table_id)
        active_order = active[0] if active else None
        if not editable(active_order is not None, self.actor.role):
            raise AuthorizationDenied(f"Only an admin can edit the open order on table {self.table_id}")
        if not self.items:
            raise EmptyOrder()

        if active_order is None:
            order = order_lifecycle.create_order(db, self.table_id, self.actor.id, self.lines())
        else:
            order = order_lifecycle.replace_order_items(db, active_order.id, self.lines(), self.actor)

        self.clear()
        self.active_order_id = order.id
        logger.info(f"Cart for table {self.table_id} submitted as order {order.id} by user {self.actor.id}")
        return order


def editable(has_active_order: bool, role) -> bool:
    return not has_active_order or UserRole(role) == UserRole.ADMIN


def load_catalog(db: Session, product_ids: Iterable[int]) -> Dict[int, Product]:
    ids = set(product_ids)
    if not ids:
        return {}
    return {p.id: p for p in db.query(Product).filter(Product.id.in_(ids)).all()}


def open_cart(db: Session, table_id: int, actor: CurrentUser) -> Cart:
    if not db.query(Table.id).filter(Table.id == table_id).first():
        raise NotFound(f"Table {table_id} not found")
    active = order_lifecycle.active_orders_for_table(db, table_id)
    active_order = active[0] if active else None
    catalog = load_catalog(db, [i.product_id for i in active_order.items]) if active_order else {}
    return Cart.load(table_id, actor, active_order, catalog)


class CartSessionStore:
    """One in-progress cart per (user, table), discarded on submit or cancel."""

    def __init__(self):
        self._carts: Dict[Tuple[str, int], Cart] = {}
        self._lock = threading.Lock()

    def open(self, cart: Cart) -> Cart:
        with self._lock:
            self._carts[(cart.actor.id, cart.table_id)] = cart
        return cart

    def get(self, user_id: str, table_id: int) -> Optional[Cart]:
        return self._carts.get((user_id, table_id))

    def discard(self, user_id: str, table_id: int) -> bool:
        with self._lock:
            return self._carts.pop((user_id, table_id), None) is not None

    def clear(self):
        with self._lock:
            self._carts.clear()


cart_sessions = CartSessionStore()
