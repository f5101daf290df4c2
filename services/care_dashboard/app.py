"""FastAPI application backing the staff dashboard."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, Literal, Union
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from repositories import CareStore, StorageError, build_store
from shared.config.settings import Settings, get_settings
from shared.http.errors import (
    ProblemDetails,
    ResidentNotFoundError,
    StaffNotFoundError,
    register_exception_handlers,
)
from shared.models import (
    JST,
    CategoryTag,
    ChatLogRecord,
    DailyVitalCreate,
    DailyVitalRecord,
    MedicalHistory,
    Medication,
    ResidentProfile,
    ResidentStatus,
    ResidentSummary,
    Staff,
    StaffSession,
    TimelineItem,
    to_camel,
)
from shared.observability.audit import record_audit
from shared.observability.logger import configure_logging, get_logger
from shared.observability.middleware import (
    CorrelationIdMiddleware,
    RequestTimingMiddleware,
)

from .session import encode_staff_cookie, require_staff_session
from .timeline import filter_timeline, merge_timeline

SERVICE_NAME = "care_dashboard"

FEVER_THRESHOLD = 37.0
HIGH_SYSTOLIC_THRESHOLD = 140
RESIDENT_TIMELINE_LIMIT = 50
DASHBOARD_TIMELINE_LIMIT = 20

logger = get_logger(__name__)


class SessionCreate(BaseModel):
    staff_id: str = Field(min_length=1)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResidentDetail(BaseModel):
    """Everything shown on a resident's page."""

    profile: ResidentProfile
    medical_histories: list[MedicalHistory]
    medications: list[Medication]
    timeline: list[TimelineItem]


class VitalAlert(BaseModel):
    """Today's vital record that crossed an alert threshold."""

    record: DailyVitalRecord
    resident_name: str | None = None
    building_room: str | None = None
    fever: bool
    high_blood_pressure: bool


class DashboardTimelineEntry(BaseModel):
    type: Literal["daily_record", "chat_log"]
    time: datetime | str | None
    data: Union[DailyVitalRecord, ChatLogRecord]
    resident_name: str | None = None
    building_room: str | None = None


class DashboardSummary(BaseModel):
    """Facility-wide overview for the current day in facility time."""

    day: date
    today_vital_count: int
    today_chat_count: int
    alerts: list[VitalAlert]
    timeline: list[DashboardTimelineEntry]


def today_range(now: datetime) -> tuple[datetime, datetime]:
    """Return the first and last second of ``now``'s calendar day in UTC+9."""

    local_day = now.astimezone(JST).date()
    start = datetime.combine(local_day, time.min, tzinfo=JST)
    return start, start + timedelta(hours=23, minutes=59, seconds=59)


def vital_alert_flags(record: DailyVitalRecord) -> tuple[bool, bool]:
    """Return ``(fever, high_blood_pressure)`` for ``record``."""

    fever = record.body_temp is not None and record.body_temp >= FEVER_THRESHOLD
    high_pressure = record.bp_high is not None and record.bp_high >= HIGH_SYSTOLIC_THRESHOLD
    return fever, high_pressure


# Occupancy states hidden from the resident list unless every resident is requested.
INACTIVE_STATUSES = frozenset(
    {
        ResidentStatus.HOSPITALIZED.value,
        ResidentStatus.DISCHARGED.value,
        ResidentStatus.VACANT.value,
        "入院",
        "退所",
    }
)
VACANT_ROOM_MARKER = "空床"


def is_active_resident(resident: ResidentSummary) -> bool:
    """Return ``False`` for hospitalized, discharged and vacant-room rows."""

    status_value = resident.status
    if isinstance(status_value, ResidentStatus):
        status_value = status_value.value
    return status_value not in INACTIVE_STATUSES and VACANT_ROOM_MARKER not in resident.name


def filter_residents(
    residents: Iterable[ResidentSummary],
    *,
    query: str | None = None,
    include_inactive: bool = False,
) -> list[ResidentSummary]:
    """Apply the resident list search box and occupancy toggle.

    ``query`` is a substring matched against the name or the room.
    """

    needle = (query or "").strip()
    selected: list[ResidentSummary] = []
    for resident in residents:
        if needle and needle not in resident.name and needle not in (resident.building_room or ""):
            continue
        if not include_inactive and not is_active_resident(resident):
            continue
        selected.append(resident)
    return selected


def get_store(request: Request) -> CareStore:
    """Return the store composed for this application instance."""

    return request.app.state.store


def _storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("care_store_unavailable", error=str(exc), path=str(request.url))
    problem = ProblemDetails(
        type="https://appsheetto.jp/problems/storage-unavailable",
        title="Storage Unavailable",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc),
        instance=str(request.url),
    )
    return JSONResponse(
        problem.model_dump(mode="json", exclude_none=True),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
    )


def create_app(
    settings: Settings | None = None,
    *,
    store: CareStore | None = None,
    now: Callable[[], datetime] | None = None,
) -> FastAPI:
    """Create the dashboard application.

    ``now`` supplies the current time used to pick "today"; it defaults to
    the system clock.
    """

    resolved_settings = settings or get_settings()
    configure_logging(service_name=SERVICE_NAME, level=resolved_settings.logging.level)

    clock = now or (lambda: datetime.now(JST))
    session_settings = resolved_settings.session

    application = FastAPI(title="Care Dashboard Service")
    application.state.settings = resolved_settings
    application.state.store = store if store is not None else build_store(resolved_settings.database)

    application.add_middleware(RequestTimingMiddleware)
    application.add_middleware(CorrelationIdMiddleware)
    register_exception_handlers(application)
    application.add_exception_handler(StorageError, _storage_error_handler)

    public = APIRouter()
    protected = APIRouter(dependencies=[Depends(require_staff_session)])

    @public.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        """Return a simple health payload for orchestration checks."""

        return {"status": "ok", "service": SERVICE_NAME}

    @public.get("/staff", response_model=list[Staff], tags=["session"])
    async def list_staff(care_store: CareStore = Depends(get_store)) -> list[Staff]:
        """Return the staff members selectable on the login screen."""

        return await care_store.list_staff()

    @public.post("/session", response_model=StaffSession, tags=["session"])
    async def start_session(
        payload: SessionCreate,
        response: Response,
        care_store: CareStore = Depends(get_store),
    ) -> StaffSession:
        staff = await care_store.get_staff(payload.staff_id)
        if staff is None:
            raise StaffNotFoundError(payload.staff_id)

        session = StaffSession(id=staff.id, name=staff.name)
        response.set_cookie(
            session_settings.cookie_name,
            encode_staff_cookie(session),
            max_age=session_settings.max_age_seconds,
            path="/",
            samesite="lax",
        )
        logger.info("staff_session_started", staff_id=staff.id)
        return session

    @public.delete("/session", status_code=status.HTTP_204_NO_CONTENT, tags=["session"])
    async def end_session(response: Response) -> None:
        response.delete_cookie(session_settings.cookie_name, path="/")

    @protected.get("/residents", response_model=list[ResidentSummary], tags=["residents"])
    async def list_residents(
        q: str | None = Query(default=None, description="Substring of a name or room."),
        include_inactive: bool = Query(
            default=False, description="Also list hospitalized, discharged and vacant rows."
        ),
        care_store: CareStore = Depends(get_store),
    ) -> list[ResidentSummary]:
        """Return resident summaries ordered by room."""

        residents = await care_store.list_residents()
        return filter_residents(residents, query=q, include_inactive=include_inactive)

    @protected.get("/residents/{resident_id}", response_model=ResidentDetail, tags=["residents"])
    async def read_resident(
        resident_id: str,
        category: CategoryTag | None = Query(
            default=None, description="Only keep timeline items in this care category."
        ),
        care_store: CareStore = Depends(get_store),
    ) -> ResidentDetail:
        """Return the profile, history, medication and timeline of a resident."""

        profile, histories, medications, vitals, chat_logs = await asyncio.gather(
            care_store.get_resident(resident_id),
            care_store.list_medical_histories(resident_id),
            care_store.list_medications(resident_id),
            care_store.list_daily_records(user_id=resident_id, limit=RESIDENT_TIMELINE_LIMIT),
            care_store.list_chat_logs(user_id=resident_id, limit=RESIDENT_TIMELINE_LIMIT),
        )
        if profile is None:
            raise ResidentNotFoundError(resident_id)
        return ResidentDetail(
            profile=profile,
            medical_histories=histories,
            medications=medications,
            timeline=filter_timeline(merge_timeline(vitals, chat_logs), category),
        )

    @protected.post(
        "/residents/{resident_id}/vitals",
        response_model=DailyVitalRecord,
        status_code=status.HTTP_201_CREATED,
        tags=["residents"],
    )
    async def create_vital_record(
        resident_id: str,
        payload: DailyVitalCreate,
        session: StaffSession = Depends(require_staff_session),
        care_store: CareStore = Depends(get_store),
    ) -> DailyVitalRecord:
        """Store a vital record entered by the signed-in staff member."""

        if await care_store.get_resident(resident_id) is None:
            raise ResidentNotFoundError(resident_id)

        record = DailyVitalRecord(
            id=str(uuid4()),
            user_id=resident_id,
            staff_id=session.id,
            **payload.model_dump(),
        )
        await care_store.insert_daily_record(record)
        logger.info(
            "daily_record_created",
            record_id=record.id,
            resident_id=resident_id,
            staff_id=session.id,
        )
        await record_audit(
            "daily_record",
            status="created",
            actor=session.id,
            subject=resident_id,
            metadata={"recordId": record.id},
        )
        return record

    @protected.get("/dashboard", response_model=DashboardSummary, tags=["dashboard"])
    async def read_dashboard(care_store: CareStore = Depends(get_store)) -> DashboardSummary:
        """Return today's counts and alerts plus the latest facility activity."""

        start, end = today_range(clock())
        (
            today_vitals,
            today_chats,
            latest_vitals,
            latest_chats,
            residents,
        ) = await asyncio.gather(
            care_store.list_daily_records(start=start, end=end),
            care_store.list_chat_logs(start=start, end=end),
            care_store.list_daily_records(limit=DASHBOARD_TIMELINE_LIMIT),
            care_store.list_chat_logs(limit=DASHBOARD_TIMELINE_LIMIT),
            care_store.list_residents(),
        )
        by_id = {resident.id: resident for resident in residents}

        alerts: list[VitalAlert] = []
        for record in today_vitals:
            fever, high_pressure = vital_alert_flags(record)
            if not (fever or high_pressure):
                continue
            resident = by_id.get(record.user_id)
            alerts.append(
                VitalAlert(
                    record=record,
                    resident_name=resident.name if resident else None,
                    building_room=resident.building_room if resident else None,
                    fever=fever,
                    high_blood_pressure=high_pressure,
                )
            )

        timeline: list[DashboardTimelineEntry] = []
        for item in merge_timeline(latest_vitals, latest_chats, limit=DASHBOARD_TIMELINE_LIMIT):
            resident = by_id.get(item.data.user_id)
            timeline.append(
                DashboardTimelineEntry(
                    type=item.type,
                    time=item.time,
                    data=item.data,
                    resident_name=resident.name if resident else None,
                    building_room=resident.building_room if resident else None,
                )
            )

        return DashboardSummary(
            day=start.date(),
            today_vital_count=len(today_vitals),
            today_chat_count=len(today_chats),
            alerts=alerts,
            timeline=timeline,
        )

    application.include_router(public)
    application.include_router(protected)
    return application


__all__ = [
    "DASHBOARD_TIMELINE_LIMIT",
    "DashboardSummary",
    "DashboardTimelineEntry",
    "FEVER_THRESHOLD",
    "HIGH_SYSTOLIC_THRESHOLD",
    "INACTIVE_STATUSES",
    "ResidentDetail",
    "SERVICE_NAME",
    "VitalAlert",
    "create_app",
    "filter_residents",
    "get_store",
    "is_active_resident",
    "today_range",
    "vital_alert_flags",
]
