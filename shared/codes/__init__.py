"""
Business codes shared by domain, core and API layers.

Generic codes live here; payment and control-plane codes are in
`shared.codes.payment_codes`. Both enums share one numeric space, so keep
new values out of each other's ranges.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # Request errors (1xxxx)
    PARAM_MISSING = 10001
    PARAM_VALIDATION_ERROR = 10003

    # Lookup (2xxxx; 201xx reserved for payments)
    NOT_FOUND = 20006

    # Authorization (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System (4xxxx)
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003

    # Rate limiting (5xxxx)
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
