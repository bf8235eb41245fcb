"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from maninventory.core.models import ShopSettings
from maninventory.catalog.models import Product, CartItem
from maninventory.pos.billing import to_currency
from maninventory.pos.ledger import generate_sale_number
from maninventory.pos.models import Sale, SaleItem, SaleStockAdjustment
from decimal import Decimal
import random
import string
import uuid

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser
        )

    @staticmethod
    def create_shop_settings(user, shop_name='Test Kirana', location='MG Road', upi_id='shop@okbank'):
        return ShopSettings.objects.create(user=user, shop_name=shop_name, location=location, upi_id=upi_id)

    @staticmethod
    def create_product(owner, name=None, unit_price=Decimal('10.00'), quantity_on_hand=10,
                       reorder_threshold=2, unit='pcs', category='General'):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        return Product.objects.create(
            owner=owner,
            name=name,
            unit_price=Decimal(str(unit_price)),
            quantity_on_hand=quantity_on_hand,
            reorder_threshold=reorder_threshold,
            unit=unit,
            category=category,
        )

    @staticmethod
    def create_cart_item(owner, product, quantity=1):
        return CartItem.objects.create(owner=owner, product=product, quantity=quantity)

    @staticmethod
    def create_sale(owner, lines, payment_method='cash', tax_rate=Decimal('0.05'), stock_applied=True):
        """
        Create a recorded sale without touching stock.

        ``lines`` is a list of (product, quantity) pairs. With ``stock_applied``
        every line is marked as already decremented.
        """
        subtotal = sum((product.unit_price * quantity for product, quantity in lines), Decimal('0'))
        tax_amount = to_currency(subtotal * tax_rate)
        sale = Sale.objects.create(
            sale_number=generate_sale_number(),
            settlement_id=uuid.uuid4(),
            owner=owner,
            subtotal=to_currency(subtotal),
            tax_rate=tax_rate,
            tax_amount=tax_amount,
            total_amount=to_currency(subtotal) + tax_amount,
            payment_method=payment_method,
        )
        for product, quantity in lines:
            item = SaleItem.objects.create(
                sale=sale,
                product=product,
                product_ref=product.pk,
                name=product.name,
                unit=product.unit,
                unit_price=product.unit_price,
                quantity=quantity,
                line_total=to_currency(product.unit_price * quantity),
            )
            if stock_applied:
                SaleStockAdjustment.objects.create(
                    sale=sale, product=product, product_ref=item.product_ref, quantity=quantity,
                )
        return sale


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
