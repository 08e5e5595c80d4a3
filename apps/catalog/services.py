import logging
import uuid

from apps.utils.exceptions import ProductNotFound
from .models import Product

logger = logging.getLogger(__name__)


def _is_uuid(value):
    try:
        uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return False
    return True


def canonical_id(value):
    """
    Hyphenated lowercase form of a product id, the key `in_bulk` uses.
    Anything that is not a UUID comes back unchanged.
    """
    if not _is_uuid(value):
        return value
    return str(uuid.UUID(str(value)))


class CatalogService:
    """
    Read API the order core relies on: price, stock and availability by id.
    """

    @staticmethod
    def find_by_id(product_id) -> Product:
        if not _is_uuid(product_id):
            raise ProductNotFound(product_id)
        try:
            return Product.objects.get(pk=product_id)
        except Product.DoesNotExist:
            raise ProductNotFound(product_id)

    @staticmethod
    def in_bulk(product_ids):
        """
        {str(id): Product} for every id that exists. Malformed ids are
        simply absent from the result, the caller reports them.
        """
        valid_ids = [pid for pid in product_ids if _is_uuid(pid)]
        products = Product.objects.select_related("category").in_bulk(valid_ids)
        return {str(pk): product for pk, product in products.items()}
