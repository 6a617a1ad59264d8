"""
取餐码

取餐码是对 {orderId, orderNumber, studentId} 的 HS256 签名，不含时间戳，
同一订单总是得到同一个取餐码。
"""

from typing import Any, Dict

import jwt

from ..core.exceptions import InvalidPickupTokenError

PICKUP_TOKEN_ALGORITHM = "HS256"


def encode_pickup_token(order_id: int, order_number: str, student_id: int, secret: str) -> str:
    payload = {"orderId": order_id, "orderNumber": order_number, "studentId": student_id}
    return jwt.encode(payload, secret, algorithm=PICKUP_TOKEN_ALGORITHM)


def decode_pickup_token(token: str, secret: str) -> Dict[str, Any]:
    """校验签名并取回订单标识"""
    try:
        payload = jwt.decode(token, secret, algorithms=[PICKUP_TOKEN_ALGORITHM])
    except jwt.InvalidTokenError:
        raise InvalidPickupTokenError()
    if not {"orderId", "orderNumber", "studentId"} <= payload.keys():
        raise InvalidPickupTokenError()
    return payload
