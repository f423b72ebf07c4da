"""
app/routers/auth.py — Admin login endpoint
Used by the admin sign-in form; admin JSON endpoints take the same
credentials as HTTP Basic Auth.
"""

from fastapi import APIRouter, Request

from app.config import get_settings
from app.core.auth import authenticate_admin
from app.models import LoginRequest, LoginResponse
from app.utils.network import get_client_ip

router = APIRouter()
settings = get_settings()


@router.post("/login", response_model=LoginResponse)
async def login(request: Request, body: LoginRequest) -> LoginResponse:
    """
    Check admin credentials.
    429 while the account/address pair is locked out, 401 on bad credentials.
    """
    client_ip = get_client_ip(request, settings.trust_forwarded_for)
    username = authenticate_admin(body.email, body.password, client_ip)
    return LoginResponse(authenticated=True, email=username)
