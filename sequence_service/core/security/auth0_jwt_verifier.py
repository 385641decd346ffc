from __future__ import annotations

import json

import jwt
from jwt.algorithms import RSAAlgorithm

from sequence_service.core.security.jwks_cache import JwksCache


class AuthTokenValidationError(Exception):
    pass


class Auth0JWTVerifier:
    def __init__(
        self,
        *,
        issuer: str,
        audience: str,
        jwks_uri: str,
        algorithms: list[str],
        jwks_cache: JwksCache,
        leeway_sec: int = 60,
        allow_insecure_dev_tokens: bool = False,
    ) -> None:
        self.issuer = issuer
        self.audience = audience
        self.jwks_uri = jwks_uri
        self.algorithms = algorithms
        self.jwks_cache = jwks_cache
        self.leeway_sec = leeway_sec
        self.allow_insecure_dev_tokens = allow_insecure_dev_tokens

    def _decode_unverified(self, token: str) -> dict:
        try:
            return jwt.decode(
                token,
                options={"verify_signature": False, "verify_aud": False},
                algorithms=self.algorithms,
            )
        except jwt.PyJWTError as exc:
            raise AuthTokenValidationError(f"Invalid token: {exc}") from exc

    def verify(self, token: str) -> dict:
        if not token:
            raise AuthTokenValidationError("Missing token.")
        if self.allow_insecure_dev_tokens:
            return self._decode_unverified(token)

        if not self.issuer or not self.jwks_uri:
            raise AuthTokenValidationError("JWT verification is not configured.")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as exc:
            raise AuthTokenValidationError(f"Invalid token header: {exc}") from exc

        algorithm = str(header.get("alg") or "").upper()
        if algorithm not in self.algorithms:
            raise AuthTokenValidationError(f"Unsupported token algorithm: {algorithm or '-'}")
        kid = header.get("kid")
        if not kid:
            raise AuthTokenValidationError("Token header is missing kid.")

        jwk = self.jwks_cache.get_key(self.jwks_uri, str(kid))
        if jwk is None:
            raise AuthTokenValidationError("Signing key not found.")

        try:
            public_key = RSAAlgorithm.from_jwk(json.dumps(jwk))
            return jwt.decode(
                token,
                key=public_key,
                algorithms=self.algorithms,
                audience=self.audience or None,
                issuer=self.issuer,
                leeway=self.leeway_sec,
                options={"require": ["exp", "iat", "sub"], "verify_aud": bool(self.audience)},
            )
        except jwt.PyJWTError as exc:
            raise AuthTokenValidationError(f"Invalid token: {exc}") from exc
