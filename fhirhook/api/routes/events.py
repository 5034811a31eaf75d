from fastapi import APIRouter, BackgroundTasks, Depends, status
from starlette.responses import JSONResponse

from fhirhook.api.deps import get_repository
from fhirhook.api.schemas import ResourceChangeEventIn
from fhirhook.db.repository import SubscriptionRepository
from fhirhook.workers.notification_worker import handle_resource_change

router = APIRouter()


@router.post(
    "/events",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Ingest a resource change and notify matching subscriptions",
)
async def ingest_resource_change(
    event_in: ResourceChangeEventIn,
    background_tasks: BackgroundTasks,
    repository: SubscriptionRepository = Depends(get_repository),
):
    event = event_in.to_event()

    # Matching and delivery run after the response; the caller never sees
    # individual delivery outcomes.
    background_tasks.add_task(handle_resource_change, event, repository)

    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"accepted": True, "focus": event.focus_reference},
    )
