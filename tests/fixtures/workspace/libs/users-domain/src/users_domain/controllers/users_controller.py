from gateway_runtime import Body, api_operation, api_response, api_tags, controller, post

from users_domain.entities.user import User


@api_tags("users")
@controller("users")
class UsersController:
    def __init__(self, service):
        self.service = service

    @post("/")
    @api_operation(summary="Create a user")
    @api_response(201, "User created")
    def create(self, user: Body[User]):
        return self.service.create(user)
