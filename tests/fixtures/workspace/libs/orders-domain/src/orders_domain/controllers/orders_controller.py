from gateway_runtime import Param, Query, api_response, controller, get

from orders_domain.entities.order import Order

ORDERS_PREFIX = "orders"


@controller(ORDERS_PREFIX, tags=["orders"])
class OrdersController:
    def __init__(self, service):
        self.service = service

    @get("/:id")
    @api_response(status=200, description="The order", type=Order)
    @api_response(status=404, description="Order not found")
    async def find_one(self, id: Param[str], expand: Query[str] = None):
        """Fetch a single order."""
        return await self.service.find_one(id, expand)
