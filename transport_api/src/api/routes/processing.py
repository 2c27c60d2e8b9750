from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path, Response, status

from src.core.deps import get_tenant_storage
from src.schemas.transport import (
    HistoricalTripRead,
    VridSearch,
    WeeklyProcessingRead,
    WeeklyProcessingSave,
    WeeklyProcessingSummary,
    WeeklyProcessingUpdate,
)
from src.tenancy.guard import IsolatedStorage

router = APIRouter(tags=["Weekly Processing"])


# PUBLIC_INTERFACE
@router.get(
    "/weekly-processing",
    response_model=List[WeeklyProcessingSummary],
    summary="List processed weeks",
    description="Processed weeks of the caller's tenant, newest first, without raw uploads.",
)
async def list_weeks(storage: IsolatedStorage = Depends(get_tenant_storage)) -> List[WeeklyProcessingSummary]:
    return [WeeklyProcessingSummary.model_validate(x) for x in await storage.list_weekly_processing()]


# PUBLIC_INTERFACE
@router.get("/weekly-processing/{week_label}", response_model=WeeklyProcessingRead, summary="Get processed week")
async def get_week(
    week_label: str = Path(..., min_length=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> WeeklyProcessingRead:
    return WeeklyProcessingRead.model_validate(await storage.get_weekly_processing(week_label))


# PUBLIC_INTERFACE
@router.post(
    "/weekly-processing",
    response_model=WeeklyProcessingRead,
    summary="Save processed week",
    description=(
        "Upsert a week's processing results, record its trips by VRID (already-known VRIDs are skipped) "
        "and settle company balances from `company_totals`, all in one transaction."
    ),
)
async def save_week(
    payload: WeeklyProcessingSave,
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> WeeklyProcessingRead:
    saved = await storage.save_weekly_processing(
        payload.week_label,
        trip_data=payload.trip_data,
        invoice7_data=payload.invoice7_data,
        invoice30_data=payload.invoice30_data,
        processed_data=payload.processed_data,
        company_totals=payload.company_totals,
    )
    return WeeklyProcessingRead.model_validate(saved)


# PUBLIC_INTERFACE
@router.patch("/weekly-processing/{week_label}", response_model=WeeklyProcessingRead, summary="Update processed week")
async def update_week(
    payload: WeeklyProcessingUpdate,
    week_label: str = Path(..., min_length=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> WeeklyProcessingRead:
    updated = await storage.update_weekly_processing(week_label, payload.model_dump(exclude_unset=True))
    return WeeklyProcessingRead.model_validate(updated)


# PUBLIC_INTERFACE
@router.delete("/weekly-processing/{week_label}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete processed week")
async def delete_week(
    week_label: str = Path(..., min_length=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> Response:
    await storage.delete_weekly_processing(week_label)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@router.get(
    "/weekly-processing/{week_label}/trips",
    response_model=List[HistoricalTripRead],
    summary="List trips recorded for a week",
)
async def list_week_trips(
    week_label: str = Path(..., min_length=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> List[HistoricalTripRead]:
    return [HistoricalTripRead.model_validate(x) for x in await storage.list_historical_trips(week_label)]


# PUBLIC_INTERFACE
@router.post(
    "/historical-trips/search",
    response_model=List[HistoricalTripRead],
    summary="Find trips by VRID",
    description="Return the tenant's recorded trips matching any of the given VRIDs.",
)
async def search_trips(
    payload: VridSearch,
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> List[HistoricalTripRead]:
    return [HistoricalTripRead.model_validate(x) for x in await storage.find_trips_by_vrids(payload.vrids)]
