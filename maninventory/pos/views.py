import logging
from decimal import Decimal

from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from maninventory.catalog.models import CartItem, Product
from maninventory.catalog.serializers import CartItemSerializer
from maninventory.catalog.store import CatalogStore
from maninventory.core.exceptions import (
    InsufficientStockError, PaymentMethodUnavailableError, POSError, ValidationError,
)
from maninventory.core.models import ShopSettings
from maninventory.core.utils import create_audit_log, error_response
from .billing import BillDraft, default_tax_rate, to_currency
from .filters import SaleFilter
from .ledger import LedgerStore
from .models import Sale
from .receipts import assemble_receipt, build_upi_uri, render_text
from .serializers import (
    SaleSerializer, SaleListSerializer, CheckoutSerializer, CartAddSerializer, CartQuantitySerializer,
    UpiRequestSerializer,
)
from .settlement import CheckoutSettlement, parse_settlement_id

logger = logging.getLogger(__name__)


def _shop_settings(user):
    return ShopSettings.objects.filter(user=user).first()


def _cart_response(user):
    items = CartItem.objects.filter(owner=user).select_related('product')
    subtotal = sum((item.product.unit_price * item.quantity for item in items), Decimal('0'))
    tax_rate = default_tax_rate()
    tax_amount = subtotal * tax_rate
    return Response({
        'items': CartItemSerializer(items, many=True).data,
        'subtotal': str(to_currency(subtotal)),
        'tax_rate': str(tax_rate),
        'tax_amount': str(to_currency(tax_amount)),
        'total': str(to_currency(subtotal) + to_currency(tax_amount)),
    })


def _settlement_response(result, shop):
    data = {
        'outcome': result.outcome.value,
        'sale': SaleSerializer(result.sale).data,
        'receipt': assemble_receipt(result.sale, shop).as_dict(),
    }
    if result.warning:
        data['warning'] = {
            'code': result.warning.error_code,
            'message': result.warning.message,
            'items': [failure.as_dict() for failure in result.stock_failures],
        }
    return data


@api_view(['GET', 'POST', 'DELETE'])
@permission_classes([IsAuthenticated])
def cart(request):
    """The caller's working cart: list with totals, add a product, or empty it"""
    if request.method == 'GET':
        return _cart_response(request.user)

    if request.method == 'DELETE':
        removed = CatalogStore(request.user).clear_working_cart()
        if removed:
            create_audit_log(request=request, action='cart_remove', model_name='CartItem',
                             object_id='all', changes={'removed': removed})
        return _cart_response(request.user)

    serializer = CartAddSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    product = get_object_or_404(Product, pk=serializer.validated_data['product_id'], owner=request.user)
    quantity = serializer.validated_data['quantity']

    item = CartItem.objects.filter(owner=request.user, product=product).first()
    queued = item.quantity if item else 0
    if queued + quantity > product.quantity_on_hand:
        return error_response(
            InsufficientStockError(product.pk, queued + quantity, product.quantity_on_hand,
                                   name=product.name, unit=product.unit),
            available=product.quantity_on_hand,
        )

    if item:
        item.quantity = queued + quantity
        item.save(update_fields=['quantity', 'updated_at'])
    else:
        item = CartItem.objects.create(owner=request.user, product=product, quantity=quantity)
    create_audit_log(
        request=request,
        action='cart_add',
        model_name='CartItem',
        object_id=str(item.id),
        object_name=product.name,
        changes={'quantity': {'old': queued, 'new': item.quantity}},
    )
    return _cart_response(request.user)


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def cart_item(request, product_id):
    """Set the quantity of one cart line (0 removes it) or remove it"""
    item = get_object_or_404(CartItem.objects.select_related('product'), owner=request.user, product_id=product_id)
    product = item.product

    if request.method == 'PATCH':
        serializer = CartQuantitySerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        new_quantity = serializer.validated_data['quantity']
        if new_quantity > 0:
            if new_quantity > product.quantity_on_hand:
                return error_response(
                    InsufficientStockError(product.pk, new_quantity, product.quantity_on_hand,
                                           name=product.name, unit=product.unit),
                    available=product.quantity_on_hand,
                )
            old_quantity = item.quantity
            item.quantity = new_quantity
            item.save(update_fields=['quantity', 'updated_at'])
            create_audit_log(
                request=request,
                action='cart_update',
                model_name='CartItem',
                object_id=str(item.id),
                object_name=product.name,
                changes={'quantity': {'old': old_quantity, 'new': new_quantity}},
            )
            return _cart_response(request.user)

    item_id = str(item.id)
    item.delete()
    create_audit_log(
        request=request,
        action='cart_remove',
        model_name='CartItem',
        object_id=item_id,
        object_name=product.name,
        changes={'product': product.pk},
    )
    return _cart_response(request.user)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def checkout(request):
    """
    Settle a bill.

    Bills ``items`` when given, otherwise the working cart. Answers 201 when
    a new sale was recorded and 200 when ``settlement_id`` was already
    settled (any stock lines still missing are applied again). A ``warning``
    block lists the products whose stock could not be updated.
    """
    serializer = CheckoutSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    catalog = CatalogStore(request.user)
    ledger = LedgerStore(request.user)
    shop = _shop_settings(request.user)
    settlement = CheckoutSettlement(catalog, ledger, shop)

    try:
        settlement_id = parse_settlement_id(data.get('settlement_id'))
        existing = ledger.find(settlement_id)
        if existing is not None:
            result = settlement.resync_sale_stock(existing)
        else:
            if 'items' in data:
                quantities = [(line['product_id'], line['quantity']) for line in data['items']]
            else:
                quantities = [(item.product_id, item.quantity) for item in catalog.cart_items()]
            if not quantities:
                raise ValidationError('Bill is empty')
            products = catalog.get_products(product_id for product_id, _ in quantities)
            draft = BillDraft.from_products(products, quantities)
            result = settlement.settle(draft, data['payment_method'], settlement_id)
    except InsufficientStockError as e:
        return error_response(e, product_id=e.product_id, available=e.available)
    except POSError as e:
        return error_response(e)

    sale = result.sale
    create_audit_log(
        request=request,
        action='checkout',
        model_name='Sale',
        object_id=str(sale.id),
        object_name=sale.sale_number,
        object_reference=str(sale.settlement_id),
        changes={
            'outcome': result.outcome.value,
            'total_amount': str(sale.total_amount),
            'payment_method': sale.payment_method,
            'stock_failures': [failure.as_dict() for failure in result.stock_failures],
        },
    )
    return Response(
        _settlement_response(result, shop),
        status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def sale_list(request):
    queryset = Sale.objects.filter(owner=request.user).prefetch_related('items')
    filterset = SaleFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    serializer = SaleListSerializer(filterset.qs.order_by('-created_at')[:500], many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def sale_detail(request, pk):
    sale = get_object_or_404(
        Sale.objects.prefetch_related('items', 'stock_adjustments'), pk=pk, owner=request.user,
    )
    return Response(SaleSerializer(sale).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def sale_receipt(request, pk):
    """Receipt as JSON, or as printable text with ?output=text"""
    sale = get_object_or_404(Sale.objects.prefetch_related('items'), pk=pk, owner=request.user)
    receipt = assemble_receipt(sale, _shop_settings(request.user))
    if request.query_params.get('output') == 'text':
        return HttpResponse(render_text(receipt), content_type='text/plain; charset=utf-8')
    return Response(receipt.as_dict())


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def sale_resync_stock(request, pk):
    """Apply the stock decrements still missing for a recorded sale"""
    sale = get_object_or_404(Sale, pk=pk, owner=request.user)
    settlement = CheckoutSettlement(CatalogStore(request.user), LedgerStore(request.user), _shop_settings(request.user))
    try:
        result = settlement.resync_sale_stock(sale)
    except POSError as e:
        return error_response(e)
    logger.info(f"Resynced stock for sale {sale.sale_number}: {len(result.stock_failures)} line(s) still failing")
    return Response({
        'sale_number': sale.sale_number,
        'stock_synced': not result.is_partial,
        'stock_failures': [failure.as_dict() for failure in result.stock_failures],
        'warning': result.warning.message if result.warning else None,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def upi_request(request):
    """
    Standalone UPI payment request for any amount, not tied to a sale.
    Returns the upi://pay link the client renders as a QR code.
    """
    serializer = UpiRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    shop = _shop_settings(request.user)
    if not (shop and shop.upi_id):
        return error_response(PaymentMethodUnavailableError())

    amount = serializer.validated_data['amount']
    note = serializer.validated_data.get('note') or None
    uri = build_upi_uri(shop.upi_id, shop.shop_name, amount, note=note)
    logger.info(f"UPI payment request for {amount} by user {request.user.pk}")
    return Response({
        'upi_uri': uri,
        'amount': str(to_currency(amount)),
        'upi_id': shop.upi_id,
        'shop_name': shop.shop_name,
        'note': note,
    })
