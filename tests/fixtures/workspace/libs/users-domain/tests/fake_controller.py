from gateway_runtime import controller, get


@controller("should-not-be-analysed")
class FakeController:
    @get("/")
    def index(self):
        pass
