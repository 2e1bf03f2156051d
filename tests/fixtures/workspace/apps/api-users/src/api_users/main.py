from users_domain.controllers.users_controller import UsersController

from gateway_runtime import create_app

app = create_app("users", controllers=[UsersController])
