from orders_domain.controllers.orders_controller import OrdersController

from gateway_runtime import create_app

app = create_app("orders", controllers=[OrdersController])
