"""커스텀 HTTP 예외 클래스 모듈.

Custom HTTP exception classes module.
Every domain failure of the issue subsystem maps to one of these
HTTPException subclasses, so services raise them directly and FastAPI
renders them as ``{"detail": ...}`` without extra handlers.

Usage:
    from issuedesk.utils.exceptions import NotFoundError, ForbiddenError
    raise NotFoundError("Issue not found")
    raise ForbiddenError("Only staff can change issue status")
"""

from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """422 Unprocessable Entity 예외 — 필수 입력 누락 또는 형식 오류.

    422 validation exception.
    Raised for business-level input errors that Pydantic cannot express
    (blank required text, contact numbers that are not 10 digits, empty
    message content, too many images). Never partially applied.
    """

    def __init__(self, detail: str = "Invalid input") -> None:
        super().__init__(status_code=422, detail=detail)


class NotFoundError(HTTPException):
    """404 Not Found 예외 — 이슈 또는 활성 기술자 배정이 없을 때 사용.

    404 Not Found exception.
    Raised when a referenced issue or active technician assignment does not exist.
    """

    def __init__(self, detail: str = "Resource not found") -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ForbiddenError(HTTPException):
    """403 Forbidden 예외 — 역할/소유권/상태상 허용되지 않는 작업.

    403 Forbidden exception.
    Raised when the caller's role, ownership, or the issue's current status
    does not permit the operation (e.g. editing after PENDING, a reporter
    messaging a CLOSED issue, a non-staff caller changing status).
    """

    def __init__(self, detail: str = "Insufficient permissions") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class UnauthorizedError(HTTPException):
    """401 Unauthorized 예외 — 토큰이 유효하지 않거나 만료됨.

    401 Unauthorized exception.
    Raised when a bearer token is present but cannot be verified.
    """

    def __init__(self, detail: str = "Authentication required") -> None:
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class NoOpError(HTTPException):
    """409 Conflict 예외 — 현재 값과 동일한 상태로의 변경.

    409 Conflict exception.
    Raised when a status change targets the status the issue already has.
    """

    def __init__(self, detail: str = "Nothing to change") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class DependencyError(HTTPException):
    """503 Service Unavailable 예외 — 외부 스토리지 실패 (재시도 가능).

    503 dependency exception.
    Raised when the object store fails or times out. The operation is aborted
    with no partial mutation; the caller may retry.
    """

    def __init__(self, detail: str = "Upstream dependency unavailable", retry_after: int = 5) -> None:
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            headers={"Retry-After": str(retry_after)},
        )
