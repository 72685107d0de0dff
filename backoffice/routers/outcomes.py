from fastapi import HTTPException, status

from .. import results


def raise_for_failure(result: results.OperationResult) -> results.Ok:
    """Translate a failed lifecycle result into the matching HTTP error."""
    if isinstance(result, results.Ok):
        return result
    if isinstance(result, results.ValidationFailed):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "validation_failed", "fields": result.field_errors},
        )
    if isinstance(result, results.NotFound):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.detail)
    if isinstance(result, results.InsufficientStock):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "insufficient_stock",
                "product_id": result.product_id,
                "available": result.available,
                "requested": result.requested,
            },
        )
    if isinstance(result, results.Conflict):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.detail)
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result.cause)
