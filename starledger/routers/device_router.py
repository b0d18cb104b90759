from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends, Request, Response

from starledger.config import settings
from starledger.containers import Container
from starledger.schemas.identity import DeviceIdResponse, DeviceInitResponse
from starledger.services.identity_service import IdentityService

router = APIRouter(prefix="/device", tags=["device"])


@router.post("/init", response_model=DeviceInitResponse)
@inject
async def init_device(
    request: Request,
    response: Response,
    identity_service: IdentityService = Depends(Provide[Container.services.identity_service]),
) -> DeviceInitResponse:
    """유효한 디바이스 쿠키가 없으면 새 디바이스 ID를 발급해 쿠키로 설정"""
    current = identity_service.device_id_from_cookie(
        request.cookies.get(settings.DID_COOKIE_NAME)
    )
    if current is None:
        _, cookie_value = identity_service.issue_device_cookie()
        response.set_cookie(
            key=settings.DID_COOKIE_NAME,
            value=cookie_value,
            max_age=settings.DID_COOKIE_MAX_AGE_SECONDS,
            httponly=True,
            secure=not settings.DEBUG,
            samesite="lax",
            path="/",
        )
    return DeviceInitResponse(ok=True)


@router.get("/did", response_model=DeviceIdResponse)
@inject
async def get_device_id(
    request: Request,
    identity_service: IdentityService = Depends(Provide[Container.services.identity_service]),
) -> DeviceIdResponse:
    """현재 요청의 검증된 디바이스 ID (없으면 null)"""
    return DeviceIdResponse(
        did=identity_service.device_id_from_cookie(
            request.cookies.get(settings.DID_COOKIE_NAME)
        )
    )
