from fastapi import HTTPException
from datetime import datetime
from uuid import uuid4
from typing import Any, Dict, List, Optional


class APIException(HTTPException):
    """Custom API exception with enhanced error details"""

    def __init__(
        self,
        status_code: int,
        message: str = "An unexpected API error occurred",
        detail: Optional[str] = None,
        error_code: Optional[str] = None,
        correlation_id: Optional[str] = None,
        errors: Optional[List[Any]] = None,
        **kwargs
    ):
        self.message = message
        self.detail = detail or message
        self.error_code = error_code or f"ERR_{status_code}"
        self.correlation_id = correlation_id or str(uuid4())
        self.timestamp = datetime.now().isoformat()
        self.errors = errors or []

        super().__init__(status_code=status_code, detail=self.detail, **kwargs)


class CartValidationException(APIException):
    """The submitted cart no longer matches the catalog (stale price, unpublished or missing item)"""

    def __init__(self, errors: List[str], message: str = "Your cart is out of date"):
        super().__init__(
            status_code=409,
            message=message,
            error_code="CART_STALE",
            errors=errors
        )


class ConfigurationException(APIException):
    """A secret or setting required by this request is missing"""

    def __init__(self, setting_name: str):
        self.setting_name = setting_name
        super().__init__(
            status_code=500,
            message="Server configuration is incomplete",
            detail=f"{setting_name} is not configured",
            error_code="CONFIGURATION_ERROR"
        )


class WebhookSignatureException(APIException):
    """Webhook payload failed signature verification"""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(
            status_code=400,
            message=message,
            error_code="INVALID_SIGNATURE"
        )


class DatabaseException(APIException):
    """Exception for database errors"""

    def __init__(self, message: str = "Database error occurred"):
        super().__init__(
            status_code=500,
            message=message,
            error_code="DATABASE_ERROR"
        )


class ExternalServiceException(APIException):
    """Exception for payment or email provider errors"""

    def __init__(
        self,
        message: str = "External service error",
        service: Optional[str] = None,
        provider_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.service = service
        self.provider_code = provider_code
        self.details = details or {}
        super().__init__(
            status_code=502,
            message=message,
            error_code="EXTERNAL_SERVICE_ERROR"
        )
