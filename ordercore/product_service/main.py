# ordercore/product_service/main.py
from fastapi import FastAPI, HTTPException

app = FastAPI(title="Product Service (dev mock)")

# ceny w groszach/centach
PRODUCTS = {
    1: {"id": 1, "name": "Keyboard", "sku": "KB-001", "active": True,
        "track_quantity": True, "available_quantity": 25, "price": 19999},
    2: {"id": 2, "name": "Mouse", "sku": "MS-001", "active": True,
        "track_quantity": True, "available_quantity": 100, "price": 4950},
    3: {"id": 3, "name": "Monitor", "sku": "MN-001", "active": True,
        "track_quantity": True, "available_quantity": 5, "price": 89900},
    4: {"id": 4, "name": "Gift card", "sku": "GC-001", "active": True,
        "track_quantity": False, "available_quantity": 0, "price": 5000},
    5: {"id": 5, "name": "Old webcam", "sku": "WC-001", "active": False,
        "track_quantity": True, "available_quantity": 3, "price": 2999},
}

VARIANTS = {
    11: {"id": 11, "product_id": 1, "name": "US layout", "sku": "KB-001-US",
         "active": True, "available_quantity": 10, "price": 0},
    12: {"id": 12, "product_id": 1, "name": "PL layout", "sku": "KB-001-PL",
         "active": True, "available_quantity": 2, "price": 20999},
}


@app.get("/products/{product_id}")
def get_product(product_id: int):
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.get("/variants/{variant_id}")
def get_variant(variant_id: int):
    variant = VARIANTS.get(variant_id)
    if not variant:
        raise HTTPException(status_code=404, detail="Variant not found")
    return variant
