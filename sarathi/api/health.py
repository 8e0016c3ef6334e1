from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health_check(request: Request) -> dict:
    """서비스 헬스 상태를 반환"""
    return {"status": "정상", "version": request.app.version}
