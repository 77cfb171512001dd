from fastapi import HTTPException

from app.billing.errors import PaymentError


def http_error(exc: PaymentError) -> HTTPException:
    """Translate a domain error into the JSON error body clients see."""
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())
