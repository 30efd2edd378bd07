"""Domain Operations - Request lifecycle actions invoked by action nodes"""
from typing import Any, Dict, List, Optional, Protocol
from pymongo.collection import Collection

from ..domain.errors import ActionExecutionError
from ..repositories.mongo_client import get_collection
from ..utils.idgen import generate_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DomainOperations(Protocol):
    """Operations an action node can perform on a request"""

    def approve_request(self, request_id: str) -> Optional[Dict[str, Any]]: ...

    def reject_request(self, request_id: str, reason: Optional[str] = None) -> Optional[Dict[str, Any]]: ...

    def fulfill_request(self, request_id: str) -> Optional[Dict[str, Any]]: ...

    def create_purchase_requisition(self, request_id: str, vendor_id: Optional[str] = None) -> Optional[Dict[str, Any]]: ...

    def reserve_stock(self, request_id: str) -> Optional[Dict[str, Any]]: ...

    def update_request_status(self, request_id: str, status: str) -> Optional[Dict[str, Any]]: ...


class RequestOperations:
    """
    MongoDB implementation over the requests, request_items and stock collections

    Each method returns a (possibly empty) dict that the action node merges
    into the execution context.
    """

    def __init__(self):
        self._requests: Collection = get_collection("requests")
        self._items: Collection = get_collection("request_items")
        self._stock: Collection = get_collection("stock")
        self._requisitions: Collection = get_collection("purchase_requisitions")

    def approve_request(self, request_id: str) -> Optional[Dict[str, Any]]:
        now = utc_now()
        self._update_request(request_id, {
            "status": "approved",
            "approved_at": now,
            "approved_by": None,
            "updated_at": now
        })
        logger.info(f"Auto-approved request: {request_id}")
        return {"requestStatus": "approved"}

    def reject_request(self, request_id: str, reason: Optional[str] = None) -> Optional[Dict[str, Any]]:
        reason = reason or "Workflow condition not met"
        self._update_request(
            request_id,
            {"status": "rejected", "updated_at": utc_now()},
            note=f"Auto-rejected: {reason}"
        )
        logger.info(f"Auto-rejected request: {request_id} - {reason}")
        return {"requestStatus": "rejected", "rejectionReason": reason}

    def fulfill_request(self, request_id: str) -> Optional[Dict[str, Any]]:
        request = self._get_request(request_id)
        items = self._get_items(request_id)

        for item in items:
            self._stock.update_one(
                {
                    "catalogue_item_id": item["catalogue_item_id"],
                    "site_id": request.get("site_id"),
                    "area_id": request.get("area_id")
                },
                {"$inc": {"quantity": -int(item.get("quantity", 0))}, "$set": {"updated_at": utc_now()}}
            )

        now = utc_now()
        self._update_request(request_id, {
            "status": "fulfilled",
            "fulfilled_at": now,
            "fulfilled_by": None,
            "updated_at": now
        })
        logger.info(f"Fulfilled request: {request_id} ({len(items)} items)")
        return {"requestStatus": "fulfilled"}

    def create_purchase_requisition(self, request_id: str, vendor_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        items = self._get_items(request_id)

        total_cost = 0.0
        for item in items:
            total_cost += float(item.get("cost_per_unit") or 0) * int(item.get("quantity") or 0)

        pr_id = generate_id("PR")
        self._requisitions.insert_one({
            "_id": pr_id,
            "purchase_requisition_id": pr_id,
            "request_id": request_id,
            "vendor_id": vendor_id,
            "total_cost": round(total_cost, 2),
            "items": [
                {"catalogue_item_id": i.get("catalogue_item_id"), "quantity": i.get("quantity")}
                for i in items
            ],
            "created_at": utc_now()
        })
        self._update_request(
            request_id,
            {"status": "procurement_queue", "updated_at": utc_now()},
            note=f"PR Created - Total: ${total_cost:.2f}, Vendor: {vendor_id or 'TBD'}"
        )
        logger.info(f"Created PR {pr_id} for request: {request_id}")
        return {
            "requestStatus": "procurement_queue",
            "purchaseRequisitionId": pr_id,
            "purchaseRequisitionTotal": round(total_cost, 2)
        }

    def reserve_stock(self, request_id: str) -> Optional[Dict[str, Any]]:
        request = self._get_request(request_id)
        items = self._get_items(request_id)

        for item in items:
            stock = self._stock.find_one({
                "catalogue_item_id": item["catalogue_item_id"],
                "site_id": request.get("site_id"),
                "area_id": request.get("area_id")
            })
            name = item.get("item_name") or item["catalogue_item_id"]
            if stock is None:
                raise ActionExecutionError(
                    f"No stock found for item: {name}",
                    details={"request_id": request_id, "catalogue_item_id": item["catalogue_item_id"]}
                )
            available = int(stock.get("quantity") or 0)
            requested = int(item.get("quantity") or 0)
            if available < requested:
                raise ActionExecutionError(
                    f"Insufficient stock for {name}: need {requested}, have {available}",
                    details={"request_id": request_id, "requested": requested, "available": available}
                )

        self._update_request(request_id, {"status": "reserved", "updated_at": utc_now()})
        logger.info(f"Reserved stock for request: {request_id}")
        return {"requestStatus": "reserved"}

    def update_request_status(self, request_id: str, status: str) -> Optional[Dict[str, Any]]:
        self._update_request(request_id, {"status": status, "updated_at": utc_now()})
        logger.info(f"Updated request {request_id} status to: {status}")
        return {"requestStatus": status}

    # ------------------------------------------------------------------

    def _get_request(self, request_id: str) -> Dict[str, Any]:
        request = self._requests.find_one({"request_id": request_id})
        if request is None:
            raise ActionExecutionError(f"Request not found: {request_id}", details={"request_id": request_id})
        return request

    def _get_items(self, request_id: str) -> List[Dict[str, Any]]:
        items = list(self._items.find({"request_id": request_id}))
        if not items:
            raise ActionExecutionError("No items found for request", details={"request_id": request_id})
        return items

    def _update_request(self, request_id: str, fields: Dict[str, Any], note: Optional[str] = None) -> None:
        update: Dict[str, Any] = {"$set": fields}
        if note:
            update["$push"] = {"notes": note}
        result = self._requests.update_one({"request_id": request_id}, update)
        if result.matched_count == 0:
            raise ActionExecutionError(f"Request not found: {request_id}", details={"request_id": request_id})
