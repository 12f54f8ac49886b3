import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from wallylog.core.config import settings
from wallylog.core.dependencies import client_ip, require_admin
from wallylog.core.errors import AuthError
from wallylog.schemas.auth import LoginRequest, LoginResponse, SessionResponse
from wallylog.services import auth as auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

LOGIN_ERROR_MESSAGE = "로그인 중 오류가 발생했습니다."


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        token,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="strict",
        max_age=settings.session_token_exp_hours * 60 * 60,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        settings.session_cookie_name,
        path="/",
        secure=settings.secure_cookies,
        httponly=True,
        samesite="strict",
    )


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest, request: Request, response: Response) -> LoginResponse:
    client = client_ip(request)
    try:
        token = await auth_service.authenticate_admin(payload.password, payload.token, client=client)
    except AuthError:
        raise
    except Exception:
        logger.exception("Login error")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=LOGIN_ERROR_MESSAGE)
    set_session_cookie(response, token)
    return LoginResponse(message="로그인 성공")


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(response: Response) -> None:
    clear_session_cookie(response)
    return None


@router.get("/me", response_model=SessionResponse)
async def read_session(role: str = Depends(require_admin)) -> SessionResponse:
    return SessionResponse(role=role)
