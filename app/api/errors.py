from fastapi import HTTPException

from app.services.exceptions import EscrowError


def escrow_http_error(exc: EscrowError) -> HTTPException:
    """Map a typed escrow failure to the HTTP error body clients match on"""
    return HTTPException(
        status_code=exc.status_code,
        detail={
            "error": type(exc).__name__.replace("Error", ""),
            "code": exc.code,
            "message": exc.message,
            **{k: v for k, v in exc.context.items() if v is not None}
        }
    )


def internal_error(title: str, exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=500,
        detail={
            "error": title,
            "message": f"{title}: {str(exc)}",
            "type": type(exc).__name__
        }
    )
