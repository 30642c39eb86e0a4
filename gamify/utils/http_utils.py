# gamify/utils/http_utils.py
from fastapi import HTTPException, status

from ..schemas.result_schema import ActionResult


def raise_for_result(result: ActionResult) -> ActionResult:
    if result.success:
        return result
    if result.reason == "not_found":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.message)
