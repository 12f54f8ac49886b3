import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from wallylog.core.config import settings
from wallylog.core.errors import UpstreamError
from wallylog.schemas.content import (
    BabyGrowthGenerateResponse,
    BabyGrowthRequest,
    GenerateResponse,
    QuizRequest,
    QuizResponse,
)
from wallylog.services import feeds
from wallylog.services.ai import AIResponseError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["content"])


def _check_bearer(request: Request, expected: str | None) -> None:
    header = request.headers.get("authorization") or ""
    if not header.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authorization header is missing or invalid")
    token = header.split(" ", 1)[1].strip()
    if not expected or not secrets.compare_digest(token, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")


async def require_daily_token(request: Request) -> None:
    _check_bearer(request, settings.daily_api_token)


async def require_baby_growth_token(request: Request) -> None:
    _check_bearer(request, settings.baby_growth_api_token)
@router.get("/generate-english")
async def read_patterns(day: int | None = Query(default=None, ge=1)) -> dict:
    return feeds.load_patterns(day)


@router.post("/generate-english", response_model=GenerateResponse, dependencies=[Depends(require_daily_token)])
async def create_patterns() -> GenerateResponse:
    path = await feeds.generate_english_patterns()
    logger.info("patterns_generated", extra={"file": path.name})
    return GenerateResponse(message="패턴 생성 완료.")


@router.get("/generate-news")
async def read_news(date: str | None = Query(default=None, pattern=r"^\d{8}$")) -> dict:
    return feeds.load_news(date)


@router.post("/generate-news", response_model=GenerateResponse, dependencies=[Depends(require_daily_token)])
async def create_news() -> GenerateResponse:
    path = await feeds.generate_it_news()
    logger.info("news_generated", extra={"file": path.name})
    return GenerateResponse(message="뉴스 생성 완료.")


@router.post("/generate-quiz", response_model=QuizResponse)
async def create_quiz(payload: QuizRequest) -> QuizResponse:
    if not payload.difficulty or not payload.language or not payload.user_language:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="필수 매개변수가 누락되었습니다.")
    try:
        quiz = await feeds.generate_quiz(payload.difficulty, payload.language, payload.user_language)
    except AIResponseError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="AI가 퀴즈를 생성했지만 형식이 올바르지 않습니다. 다시 시도해주세요.",
        )
    except UpstreamError as exc:
        if exc.status == status.HTTP_429_TOO_MANY_REQUESTS:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="API 요청 한도를 초과했습니다. 잠시 후 다시 시도해주세요.",
            )
        logger.warning("quiz_generation_failed", extra={"error": exc.message})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="퀴즈 생성 중 오류가 발생했습니다.")
    return quiz


@router.get("/generate-baby-growth")
async def read_baby_growth(week: int | None = Query(default=None, ge=1)) -> dict:
    return feeds.load_baby_growth(week)


@router.post(
    "/generate-baby-growth",
    response_model=BabyGrowthGenerateResponse,
    dependencies=[Depends(require_baby_growth_token)],
)
async def create_baby_growth(payload: BabyGrowthRequest) -> BabyGrowthGenerateResponse:
    week = payload.week
    if week is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="weekOfBaby 또는 weekOfPregnancy가 필요합니다.")
    path, document = await feeds.generate_baby_growth(week)
    logger.info("baby_growth_generated", extra={"file": path.name})
    return BabyGrowthGenerateResponse(message="아기 성장 정보 생성 완료.", data=document)
