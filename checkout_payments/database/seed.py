"""Sample catalogue inserted on first start when seeding is enabled."""
from decimal import Decimal

SAMPLE_PRODUCTS = [
    {
        "name": "Laptop Pro",
        "description": "High-performance laptop for professionals",
        "price": Decimal("1299.99"),
        "stock_level": 50,
    },
    {
        "name": "Wireless Mouse",
        "description": "Ergonomic wireless mouse with precision tracking",
        "price": Decimal("29.99"),
        "stock_level": 200,
    },
    {
        "name": "Mechanical Keyboard",
        "description": "RGB mechanical keyboard with blue switches",
        "price": Decimal("89.99"),
        "stock_level": 75,
    },
    {
        "name": "Monitor 4K",
        "description": "27-inch 4K monitor with HDR support",
        "price": Decimal("399.99"),
        "stock_level": 30,
    },
    {
        "name": "Gaming Headset",
        "description": "7.1 surround sound gaming headset",
        "price": Decimal("149.99"),
        "stock_level": 100,
    },
]
