"""Multi-factor authentication router: enrollment, backup codes, trusted devices."""

from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

import authentication.auth as auth
import models.schemas as schemas
import repositories.db_models as db_models
from helpers.rate_limiter import LOGIN_RATE_LIMIT, limiter
from helpers.request_utils import ClientContext, get_client_context
from repositories.database import get_db
from services.mfa_service import MFAService
from services.trusted_device_service import TrustedDeviceService

router = APIRouter(prefix="/mfa", tags=["mfa"])


@router.get("/status", response_model=schemas.MFAStatusResponse)
def get_mfa_status(
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
) -> dict:
    return MFAService.get_status(db, current_account)


@router.post("/enroll", response_model=schemas.EnrollmentStartResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def start_enrollment(
    request: Request,
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
    client: ClientContext = Depends(get_client_context),
) -> schemas.EnrollmentStartResponse:
    """
    Begin TOTP enrollment.

    The secret stays inactive until /mfa/enroll/verify confirms a code from
    the authenticator app. Starting again replaces a pending secret.
    """
    enrollment = MFAService.start_enrollment(
        db,
        current_account.id,
        current_account.email,
        client.ip_address,
        client.user_agent,
    )
    return schemas.EnrollmentStartResponse(
        secret=enrollment.secret, provisioning_uri=enrollment.provisioning_uri
    )


@router.post("/enroll/verify", response_model=schemas.BackupCodesResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def verify_enrollment(
    request: Request,
    body: schemas.EnrollmentVerifyRequest,
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
    client: ClientContext = Depends(get_client_context),
) -> schemas.BackupCodesResponse:
    """Activate MFA. The returned backup codes are shown only once."""
    codes = MFAService.verify_enrollment(
        db, current_account.id, body.code, client.ip_address, client.user_agent
    )
    return schemas.BackupCodesResponse(backup_codes=codes)


@router.post("/disable", response_model=schemas.MessageResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def disable_mfa(
    request: Request,
    body: schemas.PasswordConfirmRequest,
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
    client: ClientContext = Depends(get_client_context),
) -> schemas.MessageResponse:
    MFAService.disable(
        db, current_account, body.password, client.ip_address, client.user_agent
    )
    return schemas.MessageResponse(message="Multi-factor authentication disabled")


@router.post("/backup-codes/regenerate", response_model=schemas.BackupCodesResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def regenerate_backup_codes(
    request: Request,
    body: schemas.PasswordConfirmRequest,
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
    client: ClientContext = Depends(get_client_context),
) -> schemas.BackupCodesResponse:
    """Replace all unused backup codes. Previously issued unused codes stop working."""
    codes = MFAService.regenerate_backup_codes(
        db, current_account, body.password, client.ip_address, client.user_agent
    )
    return schemas.BackupCodesResponse(backup_codes=codes)


@router.get("/trusted-devices", response_model=List[schemas.TrustedDeviceResponse])
def list_trusted_devices(
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
) -> list[dict]:
    return TrustedDeviceService.list_devices(db, current_account.id)


@router.delete("/trusted-devices/{device_id}", response_model=schemas.MessageResponse)
def revoke_trusted_device(
    device_id: int,
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
    client: ClientContext = Depends(get_client_context),
) -> schemas.MessageResponse:
    """Revoke trust for one device; the next login from it asks for MFA again."""
    MFAService.revoke_trusted_device(
        db, current_account.id, device_id, client.ip_address, client.user_agent
    )
    return schemas.MessageResponse(message="Device trust revoked")
