"""Mock product database"""

from typing import Optional

from ..models.product import Product, ProductVariant


def _jar(product_id: str, numeric_id: int, name: str, price: float, category: str, sku: str) -> Product:
    return Product(
        id=product_id,
        numeric_id=numeric_id,
        name=name,
        description=f"Small-batch {name.lower()} made in Nairobi.",
        price=price,
        category=category,
        images=[f"/images/{product_id}.jpg"],
        sku=sku,
        variants=[
            ProductVariant(id=f"{product_id}-370g", size="370g", price=price, sku=f"{sku}-370"),
            ProductVariant(id=f"{product_id}-1kg", size="1kg", price=round(price * 2.5), sku=f"{sku}-1000"),
        ],
    )


def seed_products() -> dict[str, Product]:
    products = [
        _jar("almond-creamy", 1, "Creamy Almond Butter", 1200, "Almond Butter", "LNB-ALM-CRM"),
        _jar("almond-crunchy", 2, "Crunchy Almond Butter", 1200, "Almond Butter", "LNB-ALM-CRN"),
        _jar("almond-chocolate", 3, "Chocolate Almond Butter", 1400, "Almond Butter", "LNB-ALM-CHO"),
        _jar("cashew-pure", 4, "Pure Cashew Butter", 900, "Cashew Butter", "LNB-CSH-PUR"),
        _jar("cashew-chilli", 5, "Spicy Chilli Cashew Butter", 1050, "Cashew Butter", "LNB-CSH-CHL"),
        _jar("hazelnut-chocolate", 6, "Chocolate Hazelnut Butter", 2600, "Hazelnut Butter", "LNB-HZL-CHO"),
        _jar("macadamia-pure", 7, "Pure Macadamia Nut Butter", 1050, "Macadamia Butter", "LNB-MAC-PUR"),
        _jar("peanut-creamy", 8, "Creamy Peanut Butter", 500, "Peanut Butter", "LNB-PNT-CRM"),
        _jar("peanut-crunchy", 9, "Crunchy Peanut Butter", 500, "Peanut Butter", "LNB-PNT-CRN"),
        Product(
            id="honey-pure",
            numeric_id=10,
            name="Pure Natural Honey",
            description="Raw honey from Kenyan highland apiaries.",
            price=600,
            category="Honey",
            images=["/images/honey-pure.jpg"],
            size="500g",
            sku="LNB-HNY-PUR",
        ),
    ]
    return {p.id: p for p in products}


class ProductDatabase:
    """In-memory product catalog"""

    def __init__(self):
        self.products: dict[str, Product] = seed_products()

    def reset(self) -> None:
        self.products = seed_products()

    def get_product(self, product_id: str) -> Optional[Product]:
        """Get a product by string id or numeric id"""
        product = self.products.get(product_id)
        if product is None and product_id.isdigit():
            product = next((p for p in self.products.values() if p.numeric_id == int(product_id)), None)
        return product

    def list_products(self, category: Optional[str] = None) -> list[Product]:
        """List products, optionally filtered by category (case-insensitive)"""
        products = list(self.products.values())
        if category:
            products = [p for p in products if p.category.lower() == category.lower()]
        return products

    def update_product(self, product_id: str, **changes) -> Optional[Product]:
        """Change price or stock; used to simulate catalog updates"""
        product = self.get_product(product_id)
        if product is None:
            return None
        updated = product.model_copy(update=changes)
        self.products[updated.id] = updated
        return updated


# Singleton instance
product_db = ProductDatabase()
