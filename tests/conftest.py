import pytest

from core.identity import normalize
from core.models import ItemRecord, ListingRef

ITEM_URL = "https://www.facebook.com/marketplace/item/{}/"


def listing(item_id: str, price: str) -> ListingRef:
    link = ITEM_URL.format(item_id)
    return ListingRef(key=normalize(link), link=link, price=price)


def record(item_id: str, price: str, title: str, description: str = "") -> ItemRecord:
    return ItemRecord(
        key=item_id,
        title=title,
        description=description,
        price=price,
        url=ITEM_URL.format(item_id),
    )


@pytest.fixture
def make_listing():
    return listing


@pytest.fixture
def make_record():
    return record
