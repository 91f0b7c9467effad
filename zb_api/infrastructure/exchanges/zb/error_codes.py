"""
ZB REST error codes.
"""

from typing import Any, Dict

ERROR_CODES: Dict[int, str] = {
    1000: "Call succeeded",
    1001: "General error",
    1002: "Internal error",
    1003: "Verification failed",
    1004: "Funds security password locked",
    1005: "Wrong funds security password, please check and retry",
    1006: "Real-name verification pending or rejected",
    1009: "This API is under maintenance",
    2001: "Insufficient CNY balance",
    2002: "Insufficient BTC balance",
    2003: "Insufficient LTC balance",
    2005: "Insufficient ETH balance",
    2006: "Insufficient ETC balance",
    2007: "Insufficient BTS balance",
    2009: "Insufficient account balance",
    3001: "Order not found",
    3002: "Invalid amount",
    3003: "Invalid quantity",
    3004: "User does not exist",
    3005: "Invalid parameter",
    3006: "Invalid IP or IP does not match the bound IP",
    3007: "Request time has expired",
    3008: "Trade record not found",
    4001: "API locked or not enabled",
    4002: "Too many requests",
}


def map_error_message(error_code: Any) -> str:
    """Translate a ZB error code (int or numeric string) into a message."""
    try:
        code = int(error_code)
    except (TypeError, ValueError):
        return f"Unknown ZB error code: {error_code}"
    return ERROR_CODES.get(code, f"Unknown ZB error code: {error_code}")
