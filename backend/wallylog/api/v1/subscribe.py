import logging

from fastapi import APIRouter, Depends, HTTPException, status

from wallylog.core.errors import ConflictError, ValidationError
from wallylog.schemas.subscription import SubscriptionRequest, SubscriptionResponse
from wallylog.services import subscriptions as subscription_service
from wallylog.services.issue_store import GitHubIssueStore, RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscriptions"])

ACCEPTED_MESSAGE = "구독 요청이 정상적으로 접수되었습니다."
SERVER_ERROR_MESSAGE = "서버 처리 중 오류가 발생했습니다."


def get_record_store() -> RecordStore:
    return GitHubIssueStore.from_settings()


@router.post("/subscribe", status_code=status.HTTP_201_CREATED, response_model=SubscriptionResponse)
async def subscribe(
    payload: SubscriptionRequest,
    store: RecordStore = Depends(get_record_store),
) -> SubscriptionResponse:
    try:
        await subscription_service.request_subscription(store, payload.email, payload.items)
    except (ValidationError, ConflictError):
        raise
    except Exception:
        logger.exception("subscribe api error")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=SERVER_ERROR_MESSAGE)
    return SubscriptionResponse(message=ACCEPTED_MESSAGE)
