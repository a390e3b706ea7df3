"""Form submission routes called by the marketing site."""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status

from src.shared.forms.dependencies import get_form_services
from src.shared.forms.handlers import (
    AccountDeletionHandler,
    ContactHandler,
    DemoRequestHandler,
    EmailCaptureHandler,
    InviteHandler,
    JobApplicationHandler,
    UnsubscribeHandler,
)
from src.shared.forms.pipeline import FormServices
from src.shared.forms.schemas import (
    AccountDeletionRequest,
    ContactForm,
    DemoRequest,
    EmailCaptureRequest,
    InviteRequest,
    JobApplication,
    SubmissionResponse,
    UnsubscribeRequest,
)
from src.shared.turnstile.turnstile import get_client_ip

router = APIRouter(prefix="/api", tags=["forms"])

# Routes are plain functions: FastAPI runs them in its thread pool, so the
# blocking Turnstile/Telegram calls do not stall the event loop.
_route_options = dict(
    response_model=SubmissionResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
)


def _client_ip(request: Request) -> Optional[str]:
    fallback = request.client.host if request.client else None
    return get_client_ip(request.headers, fallback)


@router.post("/contact", **_route_options)
def submit_contact_form(
    contact_data: ContactForm,
    request: Request,
    background_tasks: BackgroundTasks,
    services: FormServices = Depends(get_form_services),
):
    """Forward a contact form message to the operator chat."""
    return ContactHandler(services).handle(contact_data, _client_ip(request), background_tasks)


@router.post("/request-demo", **_route_options)
def submit_demo_request(
    demo_data: DemoRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    services: FormServices = Depends(get_form_services),
):
    """Forward a demo request and, when WorkOS is configured, invite the requester."""
    return DemoRequestHandler(services).handle(demo_data, _client_ip(request), background_tasks)


@router.post("/job-application", **_route_options)
def submit_job_application(
    application: JobApplication,
    request: Request,
    background_tasks: BackgroundTasks,
    services: FormServices = Depends(get_form_services),
):
    return JobApplicationHandler(services).handle(application, _client_ip(request), background_tasks)


@router.post("/invite", **_route_options)
def send_invite(
    invite_data: InviteRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    services: FormServices = Depends(get_form_services),
):
    """Send a WorkOS invitation so the visitor can sign up."""
    return InviteHandler(services).handle(invite_data, _client_ip(request), background_tasks)


@router.post("/request-account-deletion", **_route_options)
def request_account_deletion(
    deletion_data: AccountDeletionRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    services: FormServices = Depends(get_form_services),
):
    return AccountDeletionHandler(services).handle(deletion_data, _client_ip(request), background_tasks)


@router.post("/email-capture", **_route_options)
def capture_email(
    capture_data: EmailCaptureRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    services: FormServices = Depends(get_form_services),
):
    """Log a captured email; the notification is sent after the response."""
    return EmailCaptureHandler(services).handle(capture_data, _client_ip(request), background_tasks)


@router.post("/unsubscribe", **_route_options)
def unsubscribe(
    unsubscribe_data: UnsubscribeRequest,
    request: Request,
    services: FormServices = Depends(get_form_services),
):
    return UnsubscribeHandler(services).handle(
        unsubscribe_data,
        client_ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
