"""REST routes for the driver app."""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from fastapi import APIRouter, Depends, File, UploadFile, status
from pydantic import BaseModel, EmailStr, Field

from ecowheels.api.dependencies import Services, get_current_session, get_services
from ecowheels.auth.session import Credential, DriverSession
from ecowheels.models.driver import DocumentRef, DocumentType, Driver, ProfileUpdate
from ecowheels.models.gamification import DashboardStats, DriverStats, LeaderboardEntry
from ecowheels.models.ledger import EarningsSummary, Payout
from ecowheels.models.order import Order
from ecowheels.models.support import (
    EmergencyAlert,
    EmergencyContact,
    IncidentReport,
    IncidentType,
)
from ecowheels.utils.logging import get_logger
from ecowheels.utils.tracing import WorkflowTracer
from ecowheels.workflow.decline import DeclineForm
from ecowheels.workflow.engine import TransitionOutcome
from ecowheels.workflow.states import OrderAction
from ecowheels.workflow.visibility import OrderBuckets

logger = get_logger(__name__)

router = APIRouter()


# Request/Response Models


class SignUpRequest(BaseModel):
    """Registration with email and password."""

    email: EmailStr
    password: str
    full_name: str | None = None
    phone_number: str | None = None
    vehicle_type: str | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class FederatedLoginRequest(BaseModel):
    """Identity token issued by the federated identity broker."""

    id_token: str


class TokenResponse(BaseModel):
    uid: str
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    profile: Driver | None = None


class DeclineRequest(BaseModel):
    reason: str | None = None
    details: str | None = None


class PayoutRequest(BaseModel):
    amount: Decimal


class IncidentRequest(BaseModel):
    type: IncidentType
    description: str
    location: str


class EmergencyRequest(BaseModel):
    """Geolocation captured by the device when the emergency button is pressed."""

    latitude: float
    longitude: float


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry] = Field(default_factory=list)


def _token_response(credential: Credential) -> TokenResponse:
    return TokenResponse(
        uid=credential.uid,
        access_token=credential.access_token,
        token_type=credential.token_type,
        expires_at=credential.expires_at,
        profile=credential.session.profile,
    )


# Auth


@router.post(
    "/auth/signup",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
)
async def sign_up(
    request: SignUpRequest,
    services: Services = Depends(get_services),
) -> TokenResponse:
    """Register a driver account and open a session."""
    profile = request.model_dump(
        include={"full_name", "phone_number", "vehicle_type"}, exclude_none=True
    )
    credential = await services.auth.sign_up(request.email, request.password, profile)
    return _token_response(credential)


@router.post("/auth/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    services: Services = Depends(get_services),
) -> TokenResponse:
    credential = await services.auth.sign_in(request.email, request.password)
    return _token_response(credential)


@router.post("/auth/federated", response_model=TokenResponse)
async def federated_login(
    request: FederatedLoginRequest,
    services: Services = Depends(get_services),
) -> TokenResponse:
    credential = await services.auth.federated_sign_in(request.id_token)
    return _token_response(credential)


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> None:
    """End the session; its token stops working immediately."""
    await services.auth.sign_out(session)


# Driver profile


@router.get("/drivers/me", response_model=Driver)
async def get_profile(
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> Driver:
    return await services.profiles.get_profile(session)


@router.patch("/drivers/me", response_model=Driver)
async def update_profile(
    update: ProfileUpdate,
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> Driver:
    return await services.profiles.update_profile(session, update)


@router.put("/drivers/me/profile", response_model=Driver)
async def complete_profile(
    update: ProfileUpdate,
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> Driver:
    """
    Complete the driver profile.

    Requires full name, phone number, vehicle type and both documents.
    """
    return await services.profiles.complete_profile(session, update)


@router.post(
    "/drivers/me/documents/{document_type}",
    response_model=DocumentRef,
    status_code=status.HTTP_201_CREATED,
)
async def upload_document(
    document_type: DocumentType,
    file: UploadFile = File(...),
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> DocumentRef:
    data = await file.read()
    return await services.profiles.upload_document(
        session,
        document_type,
        file.filename or document_type.value,
        data,
        content_type=file.content_type,
    )


# Orders


@router.get("/orders", response_model=OrderBuckets)
async def list_orders(
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> OrderBuckets:
    """Available and active orders for the calling driver."""
    return await services.engine.visible_orders(session)


@router.get("/orders/{order_id}", response_model=Order)
async def get_order(
    order_id: str,
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> Order:
    return await services.engine.get_order(order_id)


async def _run_transition(
    action: OrderAction,
    order_id: str,
    session: DriverSession,
    services: Services,
) -> TransitionOutcome:
    tracer = WorkflowTracer(uuid4().hex, session.uid)
    handler = {
        OrderAction.ACCEPT: services.engine.accept,
        OrderAction.PICKUP: services.engine.pickup,
        OrderAction.START_TRANSIT: services.engine.start_transit,
        OrderAction.COMPLETE: services.engine.complete,
    }[action]

    outcome = await handler(session, order_id, tracer=tracer)
    logger.info(
        "order_action_processed",
        action=action.value,
        order_id=order_id,
        driver_id=session.uid,
        status=outcome.order.status.value,
        trace=tracer.get_trace_summary(),
    )
    return outcome


@router.post("/orders/{order_id}/accept", response_model=TransitionOutcome)
async def accept_order(
    order_id: str,
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> TransitionOutcome:
    return await _run_transition(OrderAction.ACCEPT, order_id, session, services)


@router.post("/orders/{order_id}/decline", response_model=TransitionOutcome)
async def decline_order(
    order_id: str,
    request: DeclineRequest,
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> TransitionOutcome:
    """Decline with a reason; the order is hidden from this driver afterwards."""
    form = DeclineForm(details=request.details)
    if request.reason:
        form.select(request.reason)
    return await form.submit(services.engine, session, order_id)


@router.post("/orders/{order_id}/pickup", response_model=TransitionOutcome)
async def pickup_order(
    order_id: str,
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> TransitionOutcome:
    return await _run_transition(OrderAction.PICKUP, order_id, session, services)


@router.post("/orders/{order_id}/start-transit", response_model=TransitionOutcome)
async def start_transit(
    order_id: str,
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> TransitionOutcome:
    return await _run_transition(OrderAction.START_TRANSIT, order_id, session, services)


@router.post("/orders/{order_id}/complete", response_model=TransitionOutcome)
async def complete_order(
    order_id: str,
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> TransitionOutcome:
    return await _run_transition(OrderAction.COMPLETE, order_id, session, services)


# Earnings


@router.get("/earnings/summary", response_model=EarningsSummary)
async def earnings_summary(
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> EarningsSummary:
    return await services.earnings.summary(session)


@router.get("/earnings/payouts", response_model=list[Payout])
async def payout_history(
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> list[Payout]:
    return await services.earnings.payout_history(session)


@router.post(
    "/earnings/payouts",
    response_model=Payout,
    status_code=status.HTTP_201_CREATED,
)
async def request_payout(
    request: PayoutRequest,
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> Payout:
    return await services.earnings.request_payout(session, request.amount)


# Gamification


@router.get("/gamification/stats", response_model=DriverStats)
async def driver_stats(
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> DriverStats:
    return await services.gamification.driver_stats(session)


@router.get("/gamification/dashboard", response_model=DashboardStats)
async def dashboard_stats(
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> DashboardStats:
    return await services.gamification.dashboard_stats(session)


@router.get("/gamification/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> LeaderboardResponse:
    return LeaderboardResponse(entries=await services.gamification.leaderboard())


@router.post("/gamification/rewards/{reward_id}/claim", response_model=Driver)
async def claim_reward(
    reward_id: str,
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> Driver:
    return await services.gamification.claim_reward(session, reward_id)


# Support


@router.post(
    "/support/incidents",
    response_model=IncidentReport,
    status_code=status.HTTP_201_CREATED,
)
async def report_incident(
    request: IncidentRequest,
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> IncidentReport:
    return await services.support.report_incident(
        session, request.type, request.description, request.location
    )


@router.post(
    "/support/emergency",
    response_model=EmergencyAlert,
    status_code=status.HTTP_201_CREATED,
)
async def trigger_emergency(
    request: EmergencyRequest,
    session: DriverSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> EmergencyAlert:
    return await services.support.trigger_emergency(session, request.latitude, request.longitude)


@router.get("/support/contacts", response_model=list[EmergencyContact])
async def emergency_contacts(services: Services = Depends(get_services)) -> list[EmergencyContact]:
    return services.support.contacts()
