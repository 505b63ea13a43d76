from typing import Tuple

from fastapi import HTTPException, Request

from app.services.auth_service import verify_token


def _parse_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Invalid Authorization header")

    return token.strip()


def _token_claims(token: str) -> Tuple[dict, str, int]:
    try:
        claims = verify_token(token)
        return claims, str(claims["sub"]), int(claims["company_id"])
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except (KeyError, TypeError) as exc:
        raise HTTPException(status_code=401, detail="Invalid token claims") from exc


def _header_company_id(request: Request) -> int:
    raw = request.headers.get("X-Company-Id")
    if raw is None:
        raise HTTPException(status_code=403, detail="Missing X-Company-Id header")
    try:
        return int(raw)
    except ValueError as exc:
        raise HTTPException(status_code=403, detail="Invalid X-Company-Id header") from exc


def require_auth(request: Request) -> Tuple[str, int]:
    """Validate the bearer token and pin the request to the token's company.

    Claims are stashed on ``request.state`` for the role dependencies.
    """
    claims, user_id, company_id = _token_claims(_parse_bearer_token(request))

    if _header_company_id(request) != company_id:
        raise HTTPException(status_code=403, detail="Company mismatch")

    request.state.user_id = user_id
    request.state.company_id = company_id
    request.state.claims = claims

    return user_id, company_id
