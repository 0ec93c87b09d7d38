from fastapi import APIRouter, Depends, HTTPException, status

from checkout.core.auth import Session, get_current_session
from checkout.core.config import Settings
from checkout.core.deps import get_flow_registry, get_http_client, get_redis, get_settings_dep
from checkout.schemas.flow import CardFieldIn, CardFlipIn, FlowOpenIn, FlowOut, HostedCaptureOut, PaymentChoiceIn, SubmitIn
from checkout.schemas.card import CardFace
from checkout.services.backend import BillingBackend
from checkout.services.capture import CaptureKind, HostedCapture, NewCardCapture, SavedCardCapture
from checkout.services.flows import FlowRegistry
from checkout.services.orchestrator import SubscriptionOrchestrator

router = APIRouter()


def _view(flow: SubscriptionOrchestrator) -> FlowOut:
    return FlowOut.model_validate(flow.snapshot())


def _capture_from(payload: SubmitIn, flow: SubscriptionOrchestrator):
    if payload.method is None:
        return flow.selected_capture()
    if payload.method == CaptureKind.NEW:
        return NewCardCapture(flow.draft.to_card_input())
    if not payload.payment_method_id:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="paymentMethodId required")
    if payload.method == CaptureKind.SAVED:
        return SavedCardCapture(payload.payment_method_id)
    return HostedCapture(payload.payment_method_id)


@router.post("/flows", response_model=FlowOut, status_code=status.HTTP_201_CREATED)
async def open_flow(
    payload: FlowOpenIn,
    session: Session = Depends(get_current_session),
    settings: Settings = Depends(get_settings_dep),
    registry: FlowRegistry = Depends(get_flow_registry),
    http_client=Depends(get_http_client),
    redis=Depends(get_redis),
):
    backend = BillingBackend(http_client, session.token)
    flow = registry.create(session.account_id, backend, settings, redis=redis)
    await flow.open(payload.plan, payload.billing_period)
    return _view(flow)


@router.get("/flows/{flow_id}", response_model=FlowOut)
async def get_flow(flow_id: str, session: Session = Depends(get_current_session), registry: FlowRegistry = Depends(get_flow_registry)):
    return _view(registry.get(flow_id, session.account_id))


@router.post("/flows/{flow_id}/selection", response_model=FlowOut)
async def change_selection(
    flow_id: str,
    payload: FlowOpenIn,
    session: Session = Depends(get_current_session),
    registry: FlowRegistry = Depends(get_flow_registry),
):
    flow = registry.get(flow_id, session.account_id)
    await flow.select(payload.plan, payload.billing_period)
    return _view(flow)


@router.post("/flows/{flow_id}/card", response_model=FlowOut)
async def update_card(
    flow_id: str,
    payload: CardFieldIn,
    session: Session = Depends(get_current_session),
    registry: FlowRegistry = Depends(get_flow_registry),
):
    flow = registry.get(flow_id, session.account_id)
    flow.update_card(payload.field, payload.value)
    return _view(flow)


@router.post("/flows/{flow_id}/card/flip", response_model=FlowOut)
async def flip_card(
    flow_id: str,
    payload: CardFlipIn,
    session: Session = Depends(get_current_session),
    registry: FlowRegistry = Depends(get_flow_registry),
):
    flow = registry.get(flow_id, session.account_id)
    if not flow.flip_card(to_back=payload.face == CardFace.BACK):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Card data incomplete")
    return _view(flow)


@router.post("/flows/{flow_id}/payment-choice", response_model=FlowOut)
async def choose_payment(
    flow_id: str,
    payload: PaymentChoiceIn,
    session: Session = Depends(get_current_session),
    registry: FlowRegistry = Depends(get_flow_registry),
):
    flow = registry.get(flow_id, session.account_id)
    flow.choose_payment(payload.selection, payload.payment_method_id)
    return _view(flow)


@router.post("/flows/{flow_id}/hosted-capture", response_model=HostedCaptureOut)
async def hosted_capture(
    flow_id: str,
    session: Session = Depends(get_current_session),
    registry: FlowRegistry = Depends(get_flow_registry),
):
    flow = registry.get(flow_id, session.account_id)
    return HostedCaptureOut(client_secret=await flow.prepare_hosted_capture())


@router.post("/flows/{flow_id}/submit", response_model=FlowOut)
async def submit(
    flow_id: str,
    payload: SubmitIn,
    session: Session = Depends(get_current_session),
    registry: FlowRegistry = Depends(get_flow_registry),
):
    flow = registry.get(flow_id, session.account_id)
    await flow.submit(_capture_from(payload, flow))
    return _view(flow)


@router.post("/flows/{flow_id}/retry", response_model=FlowOut)
async def retry(
    flow_id: str,
    session: Session = Depends(get_current_session),
    registry: FlowRegistry = Depends(get_flow_registry),
):
    flow = registry.get(flow_id, session.account_id)
    await flow.retry()
    return _view(flow)


@router.delete("/flows/{flow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_flow(flow_id: str, session: Session = Depends(get_current_session), registry: FlowRegistry = Depends(get_flow_registry)):
    registry.get(flow_id, session.account_id).close()
