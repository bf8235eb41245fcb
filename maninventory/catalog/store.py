"""
Catalog store: stock reads and writes scoped to one owning account.

Every query filters on the owner, so a store bound to one shop can never see
or touch another shop's rows. Database failures surface as
StoreUnavailableError; the store never retries.
"""
import logging

from django.db import DatabaseError
from django.db.models import F

from maninventory.core.exceptions import (
    NotFoundError, OutOfStockAtSettlementError, StoreUnavailableError, ValidationError,
)
from .models import Product, CartItem

logger = logging.getLogger(__name__)


class CatalogStore:
    def __init__(self, owner):
        self.owner = owner

    def _products(self):
        return Product.objects.filter(owner=self.owner)

    def get_product(self, product_id):
        try:
            return self._products().get(pk=product_id)
        except Product.DoesNotExist:
            raise NotFoundError(f'Product {product_id} not found', product_id=product_id)
        except DatabaseError as e:
            logger.error(f"Catalog read failed for product {product_id}: {str(e)}")
            raise StoreUnavailableError() from e

    def get_products(self, product_ids):
        """Map of id -> Product for the ids this owner has; missing ids are left out"""
        try:
            return {p.pk: p for p in self._products().filter(pk__in=list(product_ids))}
        except DatabaseError as e:
            logger.error(f"Catalog scan failed: {str(e)}")
            raise StoreUnavailableError() from e

    def read_quantity(self, product_id):
        try:
            quantity = self._products().filter(pk=product_id).values_list('quantity_on_hand', flat=True).first()
        except DatabaseError as e:
            logger.error(f"Catalog read failed for product {product_id}: {str(e)}")
            raise StoreUnavailableError() from e
        if quantity is None:
            raise NotFoundError(f'Product {product_id} not found', product_id=product_id)
        return quantity

    def write_quantity(self, product_id, new_quantity):
        """Unconditional overwrite, used by manual stock edits"""
        if new_quantity is None or int(new_quantity) < 0:
            raise ValidationError('Stock quantity cannot be negative')
        try:
            updated = self._products().filter(pk=product_id).update(quantity_on_hand=int(new_quantity))
        except DatabaseError as e:
            logger.error(f"Catalog write failed for product {product_id}: {str(e)}")
            raise StoreUnavailableError() from e
        if not updated:
            raise NotFoundError(f'Product {product_id} not found', product_id=product_id)
        return int(new_quantity)

    def decrement_quantity(self, product_id, quantity):
        """
        Atomically remove ``quantity`` units, only if that many are on hand.

        Runs as a single conditional UPDATE so two concurrent checkouts can
        never both decrement from the same stale reading. Returns the new
        quantity on hand.
        """
        quantity = int(quantity)
        if quantity < 1:
            raise ValidationError('Decrement quantity must be at least 1')
        try:
            updated = self._products().filter(
                pk=product_id,
                quantity_on_hand__gte=quantity,
            ).update(quantity_on_hand=F('quantity_on_hand') - quantity)
            if updated:
                return self._products().filter(pk=product_id).values_list('quantity_on_hand', flat=True).first()
            available = self._products().filter(pk=product_id).values_list('quantity_on_hand', flat=True).first()
        except DatabaseError as e:
            logger.error(f"Catalog decrement failed for product {product_id}: {str(e)}")
            raise StoreUnavailableError() from e

        if available is None:
            raise NotFoundError(f'Product {product_id} no longer exists', product_id=product_id)
        raise OutOfStockAtSettlementError(product_id, quantity, available)

    def low_stock(self):
        try:
            return list(self._products().filter(quantity_on_hand__lte=F('reorder_threshold')).order_by('quantity_on_hand', 'name'))
        except DatabaseError as e:
            logger.error(f"Catalog low-stock scan failed: {str(e)}")
            raise StoreUnavailableError() from e

    def cart_items(self):
        try:
            return list(CartItem.objects.filter(owner=self.owner).select_related('product'))
        except DatabaseError as e:
            logger.error(f"Working cart read failed for user {self.owner.pk}: {str(e)}")
            raise StoreUnavailableError() from e

    def clear_working_cart(self):
        """Best effort: failures are logged, never raised"""
        try:
            deleted, _ = CartItem.objects.filter(owner=self.owner).delete()
            return deleted
        except DatabaseError as e:
            logger.warning(f"Could not clear working cart for user {self.owner.pk}: {str(e)}")
            return 0
