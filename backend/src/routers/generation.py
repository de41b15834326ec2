"""Generation router: entitlement checks and design-system generation."""

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse

from src.dependencies import (
    ClientIp,
    CurrentUserOptional,
    CurrentUserRequired,
    EntitlementGateDep,
    GenerationServiceDep,
)
from src.exceptions import GenerationDeniedError, NoCreditsError
from src.schemas.generation import (
    AuthorizeResponse,
    DenialBody,
    DesignSystemRequest,
    DesignSystemResponse,
    GrantBody,
    GrantCommitResponse,
    GrantReleaseResponse,
    GrantTokenRequest,
)
from src.services.entitlement_service import GenerationRequest
from src.services.generation_service import DesignBrief
from src.utils.logger import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/generation", tags=["Generation"])


def denial_response(exc: GenerationDeniedError) -> JSONResponse:
    body = AuthorizeResponse(
        denied=DenialBody(
            reason=exc.reason,
            message=exc.message,
            retry_after_seconds=exc.retry_after_seconds,
            upgrade_required=isinstance(exc, NoCreditsError),
        )
    )
    headers = {}
    if exc.retry_after_seconds is not None:
        headers["Retry-After"] = str(exc.retry_after_seconds)
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


@router.post("/authorize", response_model=AuthorizeResponse, response_model_exclude_none=True)
async def authorize_generation(
    gate: EntitlementGateDep,
    user: CurrentUserOptional,
    client_ip: ClientIp,
    response: Response,
):
    """Check entitlement and reserve the budget for one generation.

    The returned ``grant_token`` is held until ``expires_at``. Spend it with
    ``/generation/design-system`` or ``/generation/commit``, or hand it back
    with ``/generation/release``; an expired grant is released automatically.

    Returns ``{"granted": {...}}`` with 200, or ``{"denied": {...}}`` with the
    status code of the denial reason (429, 402, 403 or 503).
    """
    request = GenerationRequest(
        principal_id=str(user.id) if user else None,
        client_ip=client_ip,
    )
    try:
        grant = await gate.hold(request)
    except GenerationDeniedError as e:
        return denial_response(e)

    if grant.rate_limit is not None:
        response.headers.update(grant.rate_limit.headers())

    config = grant.tier_config
    return AuthorizeResponse(
        granted=GrantBody(
            tier=grant.tier,
            grant_token=grant.grant_token,
            credits_consumed=grant.credits_consumed,
            free_trial_consumed=grant.free_trial_consumed,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            color_count=config.color_count,
            font_pairings=config.font_pairings,
            expires_at=grant.expires_at,
        )
    )


@router.post("/design-system", response_model=DesignSystemResponse)
async def generate_design_system(
    body: DesignSystemRequest,
    service: GenerationServiceDep,
    user: CurrentUserOptional,
    client_ip: ClientIp,
    response: Response,
) -> DesignSystemResponse:
    """Generate a design system from a brand brief.

    With ``grant_token`` the held grant pays for this generation instead of a
    new authorization. Denials are rendered by the global exception handler
    with the same status codes as ``/generation/authorize``.
    """
    request = GenerationRequest(
        principal_id=str(user.id) if user else None,
        client_ip=client_ip,
    )
    brief = DesignBrief(
        brand_description=body.brand_description,
        industry=body.industry,
        audience=body.audience,
    )
    result = await service.generate(request, brief, grant_token=body.grant_token)

    if result.rate_limit is not None:
        response.headers.update(result.rate_limit.headers())

    return DesignSystemResponse(
        design_system=result.design_system,
        cached=result.cached,
        tier=result.tier,
        credits_consumed=result.credits_consumed,
        free_trial_consumed=result.free_trial_consumed,
        design_system_id=result.design_system_id,
    )


@router.post("/commit", response_model=GrantCommitResponse)
async def commit_grant(
    body: GrantTokenRequest,
    service: GenerationServiceDep,
    user: CurrentUserRequired,
) -> GrantCommitResponse:
    """Settle a held grant for a generation that ran elsewhere and meter it.

    404 when the token is unknown, expired, belongs to another user or was
    already committed or released.
    """
    grant = await service.commit(str(user.id), body.grant_token)
    return GrantCommitResponse(
        grant_token=grant.grant_token,
        tier=grant.tier,
        credits_consumed=grant.credits_consumed,
        free_trial_consumed=grant.free_trial_consumed,
    )


@router.post("/release", response_model=GrantReleaseResponse)
async def release_grant(
    body: GrantTokenRequest,
    gate: EntitlementGateDep,
    user: CurrentUserRequired,
) -> GrantReleaseResponse:
    """Hand a held grant back: refund its credit or return its free trial."""
    released = await gate.release_held(body.grant_token, str(user.id))
    return GrantReleaseResponse(grant_token=body.grant_token, released=released)
