# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Constants for the MDC logging demo service.

This module centralizes the context keys, HTTP header names and sentinel
values shared by the middleware, the context manager and the API layer.
"""

from typing import Tuple

# =============================================================================
# Context Keys
# =============================================================================

REQUEST_ID = "requestId"
USER_ID = "userId"
SESSION_ID = "sessionId"
CLIENT_IP = "clientIp"
USER_AGENT = "userAgent"
TRANSACTION_ID = "transactionId"
OPERATION = "operation"

REQUEST_SCOPED_KEYS: Tuple[str, ...] = (
    REQUEST_ID,
    USER_ID,
    SESSION_ID,
    CLIENT_IP,
    USER_AGENT,
)
BUSINESS_SCOPED_KEYS: Tuple[str, ...] = (TRANSACTION_ID, OPERATION)

# =============================================================================
# HTTP Headers and Cookies
# =============================================================================

USER_ID_HEADER = "X-User-Id"
FORWARDED_FOR_HEADER = "X-Forwarded-For"
REAL_IP_HEADER = "X-Real-IP"
USER_AGENT_HEADER = "User-Agent"
OPERATION_HEADER = "X-Operation"
REQUEST_ID_HEADER = "X-Request-Id"
SESSION_COOKIE = "SESSION"

# =============================================================================
# Defaults and Sentinels
# =============================================================================

ANONYMOUS_USER = "anonymous"
UNKNOWN_VALUE = "unknown"
NOT_AVAILABLE = "N/A"
USER_AGENT_MAX_LENGTH = 50
TRUNCATION_MARKER = "..."
TRANSACTION_ID_LENGTH = 8
DEFAULT_USER_OPERATION = "userDataProcessing"
