import base64
import json
import logging
from typing import Any

import jwt
import requests  # moto intercepts only requests, not httpx: https://github.com/getmoto/moto/issues/4197
from fastapi import HTTPException, Request, status
from fastapi.security import HTTPBearer
from jwt.utils import base64url_decode
from pydantic import BaseModel

from mortgage.models import Actor, ActorRole
from mortgage.settings import app_settings

logger = logging.getLogger(__name__)

JWK = dict[str, str]


class JWKS(BaseModel):
    keys: list[JWK]


class JWTAuthorizationCredentials(BaseModel):
    jwt_token: str
    header: dict[str, str]
    claims: dict[str, Any]
    signature: str
    message: str


def parse_mock_token(token: str) -> dict[str, Any] | None:
    """
    Parse a token of the form ``mock.<base64 JSON claims>.local``, accepted only if ``ENVIRONMENT`` is "local".

    :return: The claims, or None if the token isn't a mock token.
    """
    if not token.startswith("mock.") or not token.endswith(".local"):
        return None
    payload = token.split(".")[1]
    try:
        claims = json.loads(base64.b64decode(payload + "=" * (-len(payload) % 4)))
    except ValueError:
        return None
    return claims if isinstance(claims, dict) else None


def get_groups(claims: dict[str, Any]) -> list[str]:
    """Return the ``cognito:groups`` claim, which is a list in ID tokens and a string in API Gateway claims."""
    groups = claims.get("cognito:groups")
    if isinstance(groups, list):
        return [str(group) for group in groups]
    if isinstance(groups, str):
        return [group.strip() for group in groups.strip("[]").replace(",", " ").split() if group.strip()]
    return []


def resolve_role(groups: list[str]) -> ActorRole:
    names = {group.lower() for group in groups}
    if any("admin" in name for name in names):
        return ActorRole.ADMIN
    if any("loanofficer" in name or "loan_officer" in name for name in names):
        return ActorRole.LOAN_OFFICER
    return ActorRole.BORROWER


def resolve_actor(claims: dict[str, Any]) -> Actor:
    """
    Resolve the caller from the identity provider's claims.

    :raises HTTPException: If the ``sub`` claim is missing.
    """
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return Actor(user_id=user_id, email=claims.get("email") or "", role=resolve_role(get_groups(claims)))


class JWTAuthorization(HTTPBearer):
    """
    An extension of HTTPBearer authentication to verify JWT (JSON Web Tokens) with public keys.
    This class loads and keeps track of public keys from an external source and verifies incoming tokens.

    :param auto_error: If set to True, automatic error responses will be sent when request authentication fails.
                       Default is True.
    """

    def __init__(self, auto_error: bool = True):
        super().__init__(auto_error=auto_error)
        self.kid_to_jwk: dict[str, JWK] | None = None

    def load_keys(self) -> dict[str, JWK]:
        if self.kid_to_jwk is None:
            jwks = _get_public_keys()
            self.kid_to_jwk = {jwk["kid"]: jwk for jwk in jwks.keys}
        return self.kid_to_jwk

    def verify_jwk_token(self, jwt_credentials: JWTAuthorizationCredentials) -> bool:
        """
        Verifies the provided JWT credentials with the loaded public keys.

        :param jwt_credentials: JWT credentials extracted from the request.
        :return: Returns True if the token is verified, False otherwise.
        """
        kid_to_jwk = self.load_keys()
        try:
            public_key = kid_to_jwk[jwt_credentials.header["kid"]]
        except KeyError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="JWK public key not found",
            )

        msg = jwt_credentials.message.encode()
        sig = base64url_decode(jwt_credentials.signature.encode())

        obj = jwt.PyJWK(public_key)
        alg_obj = obj.Algorithm
        prepared_key = alg_obj.prepare_key(obj.key)

        return alg_obj.verify(msg, prepared_key, sig)

    async def __call__(self, request: Request) -> JWTAuthorizationCredentials:  # type: ignore[override]
        """
        Authenticate and verify the provided JWT token in the request.

        :param request: Incoming request instance.
        :return: JWT credentials if the token is verified.
        """
        credentials = await super().__call__(request)
        if not credentials:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

        jwt_token = credentials.credentials

        if app_settings.environment == "local" and (claims := parse_mock_token(jwt_token)) is not None:
            return JWTAuthorizationCredentials(jwt_token=jwt_token, header={}, claims=claims, signature="", message="")

        if "." in jwt_token:
            message, signature = jwt_token.rsplit(".", 1)
        else:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="JWK invalid",
            )

        try:
            jwt_credentials = JWTAuthorizationCredentials(
                jwt_token=jwt_token,
                header=jwt.get_unverified_header(jwt_token),
                claims=jwt.decode(jwt_token, options={"verify_signature": False, "verify_exp": True}),
                signature=signature,
                message=message,
            )
        except jwt.InvalidTokenError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="JWK invalid",
            )

        if not self.verify_jwk_token(jwt_credentials):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="JWK invalid",
            )

        audience = jwt_credentials.claims.get("aud") or jwt_credentials.claims.get("client_id")
        if app_settings.cognito_client_id and audience != app_settings.cognito_client_id:
            logger.warning("Token issued for another client: %s", audience)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="JWK invalid",
            )

        return jwt_credentials


public_keys = None


def _get_public_keys() -> JWKS:
    """
    Retrieves the public keys from the well-known JWKS (JSON Web Key Set) endpoint of Cognito.

    The function caches the fetched keys in a global variable `public_keys` to avoid repetitive calls
    to the endpoint.

    :return: The parsed JWKS, an object which holds a list of keys.
    """
    global public_keys
    if public_keys is None:
        public_keys = JWKS.model_validate(
            # https://docs.aws.amazon.com/cognito/latest/developerguide/amazon-cognito-user-pools-using-tokens-verifying-a-jwt.html
            requests.get(
                f"https://cognito-idp.{app_settings.aws_region}.amazonaws.com/"
                f"{app_settings.cognito_pool_id}/.well-known/jwks.json",
                timeout=10,
            ).json()
        )
    return public_keys
