from fastapi import Request
from fastapi.responses import JSONResponse
from typing import Any, Callable


class CartException(Exception):
    """ Base class for all expected cart reconciliation failures. """

    def __init__(self, message: str = "Something went wrong"):
        super().__init__(message)
        self.message = message


class CouponRejectedException(CartException):
    """ Exception is raised when a coupon code is unknown or the cart does not qualify for it. """
    pass


class StockExceededException(CartException):
    """ Exception is raised when a quantity change asks for more units than the variant has in stock. """
    pass


class CartItemNotFoundException(CartException):
    """ Exception is raised when an action references a line item that is not in the cart. """
    pass


class CartOperationException(CartException):
    """ Exception is raised when the cart API answers a request with success set to false. """
    pass


def create_exception_handler(status_code: int, detail: Any = None) -> Callable[[Request, Exception], JSONResponse]:
    async def exception_handler(request: Request, exception: CartException):
        return JSONResponse(
            content={"success": False, "message": detail or exception.message},
            status_code=status_code
        )

    return exception_handler
