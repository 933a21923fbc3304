"""
models.py — Data Models for Order Intake

This module defines the data structures used for order creation and validation.
It uses Pydantic models to ensure type safety and automatic validation of incoming
data, and to produce the order snapshot that is stored for idempotent replays.

Models:
    - ToppingRef: A topping selected for a cart item (with client-supplied fallback price).
    - ChosenConfiguration: Selected options and toppings of a cart item.
    - CartItem: Represents a single product line in the cart.
    - NewOrderRequest: The complete create-order request body.
    - Order: Snapshot of a persisted order as returned to clients.
    - OrderResponse: Response body of the create-order endpoint.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(str, Enum):
    RECEIVED = "received"
    CONFIRMED = "confirmed"
    PREPARED = "prepared"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentMode(str, Enum):
    CARD = "card"
    CASH = "cash"


class ToppingRef(BaseModel):
    """
    A topping chosen by the customer.

    Attributes:
        toppingId (str): Identifier of the topping.
        price (int): Price as shown to the client, used only when the topping
            is not (yet) in the pricing cache.
    """
    model_config = ConfigDict(frozen=True)

    toppingId: str
    price: int = Field(..., ge=0)


class ChosenConfiguration(BaseModel):
    """
    Attributes:
        priceConfiguration (Dict[str, str]): Option group -> selected option, e.g. {"Size": "Large"}.
        selectedToppings (List[ToppingRef]): Toppings in the order they were picked.
    """
    model_config = ConfigDict(frozen=True)

    priceConfiguration: Dict[str, str] = Field(default_factory=dict)
    selectedToppings: List[ToppingRef] = Field(default_factory=list)


class CartItem(BaseModel):
    """
    Represents a single product line in the cart.

    Attributes:
        productId (str): The product identifier.
        qty (int): The quantity to order. Must be at least 1.
        chosenConfiguration (ChosenConfiguration): Options and toppings.
    """
    model_config = ConfigDict(frozen=True)

    productId: str
    qty: int = Field(..., ge=1)
    chosenConfiguration: ChosenConfiguration = Field(default_factory=ChosenConfiguration)


class NewOrderRequest(BaseModel):
    """
    Represents a create-order request body.

    The Idempotency-Key is not part of the body; it travels as a request header.

    Attributes:
        cart (List[CartItem]): At least one cart item.
        couponCode (Optional[str]): Coupon to apply, if any.
        tenantId (str): Tenant (restaurant) the order belongs to.
        paymentMode (PaymentMode): 'card' starts a payment session, other modes do not.
        customerId (str): Customer placing the order.
        comment (Optional[str]): Free-text note for the kitchen.
        address (str): Delivery address.
    """
    cart: List[CartItem] = Field(..., min_length=1)
    couponCode: Optional[str] = None
    tenantId: str
    paymentMode: PaymentMode
    customerId: str
    comment: Optional[str] = None
    address: str = Field(..., min_length=1)


class Order(BaseModel):
    """Snapshot of a persisted order. Amounts are in currency minor units."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenantId: str
    customerId: str
    cart: Optional[List[CartItem]] = None
    address: str
    comment: Optional[str] = None
    deliveryCharges: int
    discount: int
    taxes: int
    total: int
    orderStatus: OrderStatus
    paymentMode: PaymentMode
    paymentStatus: PaymentStatus
    createdAt: datetime


class OrderResponse(BaseModel):
    """
    Response body of POST /orders.

    `paymentError` is set when the order was stored but the payment session
    could not be created.
    """
    paymentUrl: Optional[str] = None
    paymentError: Optional[str] = None
    order: Order
