# tac_broker/gunbroker/transform.py
"""Reshape GunBroker list payloads into what the dashboard tables expect."""
from typing import Any, Dict, List, Optional

LISTING_FIELDS = (
    "itemID",
    "title",
    "currentBid",
    "buyNowPrice",
    "fixedPrice",
    "isFixedPrice",
    "bidCount",
    "thumbnailURL",
    "endingDateTimeUTC",
    "isFFLRequired",
    "hasReserve",
    "hasReserveBeenMet",
    "canOffer",
    "autoAcceptPrice",
    "autoRejectPrice",
    "watchersCount",
    "highestBidderUserName",
    "highestBidderID",
    "serialNumber",
    "quantity",
)

ORDER_FLAGS = (
    "orderCancelled",
    "orderReturned",
    "orderComplete",
    "itemShipped",
    "fflReceived",
    "paymentReceived",
    "buyerConfirmed",
)


def listing_summary(listing: Dict[str, Any]) -> Dict[str, Any]:
    out = {field: listing.get(field) for field in LISTING_FIELDS}
    out["sku"] = listing.get("SKU")
    return out


def order_item(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "itemID": item.get("itemID"),
        "title": item.get("title"),
        "quantity": item.get("quantity"),
        "isFFLRequired": bool(item.get("isFFLRequired")),
        "thumbnail": item.get("thumbnail") or None,
        "itemPrice": item.get("itemPrice"),
        "itemCondition": item.get("itemCondition"),
    }


def order_summary(order: Dict[str, Any]) -> Dict[str, Any]:
    buyer = order.get("buyer") or {}
    out = {
        "orderID": order.get("orderID"),
        "orderDate": order.get("orderDateUTC") or order.get("orderDate"),
        "totalPrice": order.get("totalPrice"),
    }
    for flag in ORDER_FLAGS:
        out[flag] = bool(order.get(flag))
    out.update(
        {
            "orderItemsCollection": [order_item(i) for i in order.get("orderItemsCollection") or []],
            "buyer": {"username": buyer.get("username") or "Unknown", "userID": buyer.get("userID")},
            "billToName": order.get("billToName") or "",
            "shipDateUTC": order.get("shipDateUTC"),
            "paymentMethod": order.get("paymentMethod") or {},
            "fflNumber": order.get("fflNumber"),
        }
    )
    return out


def page(
    data: Optional[Dict[str, Any]],
    results: List[Dict[str, Any]],
    page_index: int,
    page_size: int,
    is_sandbox: bool,
) -> Dict[str, Any]:
    data = data or {}
    return {
        "results": results,
        "count": data.get("count") or 0,
        "pageIndex": data.get("pageIndex") or page_index,
        "pageSize": data.get("pageSize") or page_size,
        "isSandbox": is_sandbox,
    }


def listings_page(data: Any, page_index: int, page_size: int, is_sandbox: bool) -> Dict[str, Any]:
    data = data if isinstance(data, dict) else {}
    results = [listing_summary(r) for r in data.get("results") or []]
    return page(data, results, page_index, page_size, is_sandbox)


def orders_page(data: Any, page_index: int, page_size: int, is_sandbox: bool) -> Dict[str, Any]:
    data = data if isinstance(data, dict) else {}
    results = [order_summary(r) for r in data.get("results") or []]
    return page(data, results, page_index, page_size, is_sandbox)
