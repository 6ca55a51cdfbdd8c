# merchies/domain/catalog.py
from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class ProductSnapshot:
    """A product as a fan sees it in a storefront catalog at one moment."""

    id: str
    band_id: str
    title: str
    price: Decimal
    sizes: tuple[str, ...]
    inventory: dict[str, int] = field(default_factory=dict)
    image_url: str | None = None
    active: bool = True

    @classmethod
    def from_model(cls, product) -> "ProductSnapshot":
        return cls(
            id=product.id,
            band_id=product.band_id,
            title=product.title,
            price=Decimal(str(product.price)),
            sizes=tuple(product.sizes or ()),
            inventory={row.size: row.available for row in product.inventory},
            image_url=product.image_url,
            active=product.active,
        )

    def available(self, size: str) -> int:
        return self.inventory.get(size, 0)
