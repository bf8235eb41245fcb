import logging

from django.conf import settings
from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from maninventory.core.cache_utils import invalidate_owner_cache
from maninventory.core.exceptions import POSError
from maninventory.core.utils import create_audit_log, error_response
from .filters import ProductFilter
from .models import Product
from .serializers import ProductSerializer, ProductImportRowSerializer
from .store import CatalogStore

logger = logging.getLogger(__name__)

TRACKED_FIELDS = ['name', 'category', 'unit', 'unit_price', 'reorder_threshold']


def _snapshot(product):
    return {field: str(getattr(product, field)) for field in TRACKED_FIELDS}


def _update_product(request, product, partial):
    """Shared PUT/PATCH body: field edits via the serializer, stock via the store"""
    data = request.data.copy() if hasattr(request.data, 'copy') else dict(request.data)
    new_quantity = data.pop('quantity_on_hand', None)
    if isinstance(new_quantity, list):
        new_quantity = new_quantity[0] if new_quantity else None

    if new_quantity == '':
        new_quantity = None
    if new_quantity is not None:
        try:
            new_quantity = int(new_quantity)
        except (TypeError, ValueError):
            return Response({'quantity_on_hand': ['A valid integer is required.']}, status=status.HTTP_400_BAD_REQUEST)
        if new_quantity < 0:
            return Response({'quantity_on_hand': ['Stock quantity cannot be negative.']}, status=status.HTTP_400_BAD_REQUEST)

    serializer = ProductSerializer(product, data=data, partial=partial)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old_data = _snapshot(product)
    old_quantity = product.quantity_on_hand
    try:
        # Field edits and the stock write commit together
        with transaction.atomic():
            serializer.save()
            if new_quantity is not None:
                CatalogStore(request.user).write_quantity(product.pk, new_quantity)
    except POSError as e:
        product.refresh_from_db()
        return error_response(e)

    if new_quantity is not None:
        product.refresh_from_db()
        if new_quantity != old_quantity:
            create_audit_log(
                request=request,
                action='stock_adjust',
                model_name='Product',
                object_id=str(product.id),
                object_name=product.name,
                changes={'quantity_on_hand': {'old': old_quantity, 'new': new_quantity}},
            )

    new_data = _snapshot(product)
    changes = {k: {'old': old_data[k], 'new': new_data[k]} for k in old_data if old_data[k] != new_data[k]}
    if changes:
        create_audit_log(
            request=request,
            action='update',
            model_name='Product',
            object_id=str(product.id),
            object_name=product.name,
            changes=changes,
        )
    invalidate_owner_cache(request.user.pk)
    return Response(ProductSerializer(product).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """List the caller's products or create a new one"""
    if request.method == 'GET':
        queryset = Product.objects.filter(owner=request.user)
        filterset = ProductFilter(request.query_params, queryset=queryset)
        serializer = ProductSerializer(filterset.qs.order_by('name'), many=True)
        return Response(serializer.data)

    serializer = ProductSerializer(data=request.data)
    if serializer.is_valid():
        product = serializer.save(owner=request.user)
        create_audit_log(
            request=request,
            action='create',
            model_name='Product',
            object_id=str(product.id),
            object_name=product.name,
            changes={'name': product.name, 'quantity_on_hand': product.quantity_on_hand},
        )
        invalidate_owner_cache(request.user.pk)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product, pk=pk, owner=request.user)

    if request.method == 'GET':
        return Response(ProductSerializer(product).data)
    elif request.method == 'PUT':
        return _update_product(request, product, partial=False)
    elif request.method == 'PATCH':
        return _update_product(request, product, partial=True)
    else:  # DELETE
        product_name = product.name
        product_id = str(product.id)
        product.delete()
        create_audit_log(
            request=request,
            action='delete',
            model_name='Product',
            object_id=product_id,
            object_name=product_name,
            changes={'name': product_name},
        )
        invalidate_owner_cache(request.user.pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_low_stock(request):
    """Products at or below their reorder threshold, lowest stock first"""
    try:
        products = CatalogStore(request.user).low_stock()
    except POSError as e:
        return error_response(e)
    return Response(ProductSerializer(products, many=True).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def product_import(request):
    """
    Bulk-create products from extracted rows.

    Accepts either a bare list or ``{"products": [...]}`` in the shape the
    stock-file extraction returns. All rows are validated first; nothing is
    written if any row is invalid.
    """
    rows = request.data.get('products') if isinstance(request.data, dict) else request.data
    if not isinstance(rows, list) or not rows:
        return Response({'error': 'validation_error', 'message': 'products must be a non-empty list'},
                        status=status.HTTP_400_BAD_REQUEST)
    max_items = getattr(settings, 'ASSISTANT_MAX_ITEMS', 1000)
    if len(rows) > max_items:
        return Response({'error': 'validation_error', 'message': f'Too many products (max {max_items})'},
                        status=status.HTTP_400_BAD_REQUEST)

    serializers_ = [ProductImportRowSerializer(data=row) for row in rows]
    errors = {}
    for index, serializer in enumerate(serializers_):
        if not serializer.is_valid():
            errors[index] = serializer.errors
    if errors:
        return Response({'error': 'validation_error', 'message': 'Some rows are invalid', 'rows': errors},
                        status=status.HTTP_400_BAD_REQUEST)

    with transaction.atomic():
        created = Product.objects.bulk_create([
            Product(owner=request.user, **serializer.to_product_fields()) for serializer in serializers_
        ])
    logger.info(f"Imported {len(created)} product(s) for user {request.user.pk}")

    create_audit_log(
        request=request,
        action='stock_import',
        model_name='Product',
        object_id='bulk',
        object_name=f'{len(created)} products',
        changes={'names': [p.name for p in created][:50]},
    )
    invalidate_owner_cache(request.user.pk)
    return Response({
        'count': len(created),
        'products': ProductSerializer(created, many=True).data,
    }, status=status.HTTP_201_CREATED)
