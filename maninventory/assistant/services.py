"""
Assistant operations: restock suggestions, analytics narration and
stock-file extraction. Each validates its payload bounds before calling the
gateway, builds one prompt and returns plain Python data.
"""
import json
import logging

from django.conf import settings

from maninventory.core.exceptions import ValidationError
from .gateway import LLMGateway
from .parsing import extract_json_array

logger = logging.getLogger(__name__)

MAX_FILE_NAME_LENGTH = 255
MAX_PERIOD_LENGTH = 20

PRODUCT_FIELDS = ('name', 'description', 'stock', 'unit', 'price', 'category', 'minimum_stock')

RESTOCK_SYSTEM_PROMPT = (
    'You are an expert inventory management AI. Provide practical, data-driven '
    'restock suggestions in JSON format only.'
)
ANALYTICS_SYSTEM_PROMPT = (
    'You are a business analytics expert who provides clear, actionable insights '
    'from sales and inventory data.'
)


def _max_items():
    return getattr(settings, 'ASSISTANT_MAX_ITEMS', 1000)


def _max_text():
    return getattr(settings, 'ASSISTANT_MAX_TEXT_LENGTH', 100000)


def _check_list(value, label):
    if not isinstance(value, list):
        raise ValidationError(f'Invalid {label} data')
    if len(value) > _max_items():
        raise ValidationError(f'Too many {label} entries (max {_max_items()})')
    if any(not isinstance(row, dict) for row in value):
        raise ValidationError(f'Invalid {label} data')
    return value


def suggest_restock(inventory, sales, gateway=None):
    """List of {item, currentStock, recommendedStock, priority, reason, orderQuantity}"""
    _check_list(inventory, 'inventory')
    _check_list(sales, 'sales')

    inventory_lines = '\n'.join(
        f"- {item.get('name')}: Current stock {item.get('stock')} {item.get('unit', '')}, "
        f"Min stock {item.get('minimum_stock')}, Price {item.get('price')}"
        for item in inventory
    )
    sales_lines = '\n'.join(
        f"- {sale.get('name')}: Sold {sale.get('total_sold', sale.get('quantity'))} {sale.get('unit', '')}"
        for sale in sales
    )
    prompt = (
        'Analyze this shop data and provide restock suggestions.\n\n'
        f'Inventory Items:\n{inventory_lines}\n\n'
        f'Recent Sales (Last 7 days):\n{sales_lines}\n\n'
        'Give 5-7 suggestions as a JSON array of objects with the keys '
        '"item", "currentStock", "recommendedStock", "priority" (High/Medium/Low), '
        '"reason" and "orderQuantity".'
    )

    gateway = gateway or LLMGateway()
    content = gateway.complete([
        {'role': 'system', 'content': RESTOCK_SYSTEM_PROMPT},
        {'role': 'user', 'content': prompt},
    ])
    suggestions = extract_json_array(content)
    logger.info(f"Restock assistant returned {len(suggestions)} suggestion(s)")
    return suggestions


def narrate_analytics(transactions, inventory, period, gateway=None):
    """Natural-language analysis of the period's sales and stock"""
    _check_list(transactions, 'transactions')
    _check_list(inventory, 'inventory')
    if not isinstance(period, str) or not period or len(period) > MAX_PERIOD_LENGTH:
        raise ValidationError('Invalid period')

    transactions_json = json.dumps(transactions, default=str)
    inventory_json = json.dumps(inventory, default=str)
    if len(transactions_json) + len(inventory_json) > _max_text():
        raise ValidationError('Analytics payload is too large')

    prompt = (
        'Analyze this business data and provide insights in natural language.\n'
        f'Period: {period}\n'
        f'Transactions: {transactions_json}\n'
        f'Inventory: {inventory_json}\n\n'
        'Cover sales performance, top products, payment method preferences, '
        'inventory health, revenue patterns and recommendations, in clear sections.'
    )

    logger.info(f"Generating analytics narration for period: {period}")
    gateway = gateway or LLMGateway()
    return gateway.complete([
        {'role': 'system', 'content': ANALYTICS_SYSTEM_PROMPT},
        {'role': 'user', 'content': prompt},
    ])


def _normalize_product(row):
    product = {field: row.get(field) for field in PRODUCT_FIELDS}
    product['name'] = str(product['name']).strip() if product['name'] is not None else ''
    return product


def extract_products(file_content, file_name, gateway=None):
    """Product rows found in an uploaded stock file, in the import row shape"""
    if not isinstance(file_content, str) or not file_content:
        raise ValidationError('Invalid file content')
    if len(file_content) > _max_text():
        raise ValidationError('File size exceeds 100KB limit')
    if not isinstance(file_name, str) or not file_name or len(file_name) > MAX_FILE_NAME_LENGTH:
        raise ValidationError('Invalid file name')

    prompt = (
        'Extract the products from this stock file.\n'
        f'File name: {file_name}\n'
        f'Content:\n{file_content}\n\n'
        'Return ONLY a JSON array of objects with the keys "name", "description", '
        '"stock" (number), "unit", "price" (number), "category" and "minimum_stock" '
        '(number, about 20% of the stock).'
    )

    gateway = gateway or LLMGateway()
    content = gateway.complete([{'role': 'user', 'content': prompt}])
    rows = extract_json_array(content)
    products = [_normalize_product(row) for row in rows if isinstance(row, dict)]
    products = [p for p in products if p['name']][:_max_items()]
    logger.info(f"Extracted {len(products)} product(s) from {file_name}")
    return products
