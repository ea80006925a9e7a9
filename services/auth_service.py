# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 客服认证：登录签发 JWT / token 解析为连接主体 / 默认管理员

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from jwt import PyJWTError
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from domains.chat_domain import ANONYMOUS, ConnectionPrincipal
from domains.error_domain import AppError
from domains.staff_domain import StaffAccount
from infrastructures.db.repository.staff_repository import StaffRepository
from infrastructures.vconfig import vconfig
from infrastructures.vlogger import vlogger

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_WELL_KNOWN_DEV_PASSWORD = "admin123"


def _invalid_token(message: str) -> AppError:
    return AppError(code="auth.invalid_token", message=message, http_status=401)


class AuthService:
    """Staff sign in over REST and present the JWT on both HTTP (bearer) and the
    websocket (?token=). Either way the token resolves to a ConnectionPrincipal;
    customers carry no token and stay ANONYMOUS.
    """

    def __init__(self, *, repo: Optional[StaffRepository] = None) -> None:
        self._repo = repo or StaffRepository()

    @staticmethod
    def hash_password(password: str) -> str:
        return _pwd_context.hash(password)

    # ------------------------ login ------------------------

    async def login(self, db: AsyncSession, username: str, password: str) -> str:
        found = await self._repo.get_login(db, username)
        if found is None or not found[0].enabled or not _pwd_context.verify(password, found[1]):
            vlogger.info("auth.login rejected username=%s", username)
            raise AppError(code="auth.invalid_credentials", message="Invalid username or password", http_status=401)

        account = found[0]
        await self._repo.record_login(db, account.user_id)
        vlogger.info("auth.login staff=%s", account.user_id)
        return self.issue_token(account)

    def issue_token(self, account: StaffAccount) -> str:
        now = datetime.now(timezone.utc)
        claims: Dict[str, Any] = {
            "sub": str(account.user_id),
            "username": account.username,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=vconfig.jwt_expire_minutes)).timestamp()),
        }
        return jwt.encode(claims, vconfig.jwt_secret_key, algorithm=vconfig.jwt_algorithm)

    # ------------------------ token -> principal ------------------------

    async def principal_from_token(self, db: AsyncSession, token: Optional[str]) -> ConnectionPrincipal:
        """No token means an anonymous (customer) caller; a bad or revoked token is an error."""
        token = (token or "").strip()
        if not token:
            return ANONYMOUS

        try:
            claims = jwt.decode(token, vconfig.jwt_secret_key, algorithms=[vconfig.jwt_algorithm])
        except PyJWTError as exc:
            raise _invalid_token("Invalid or expired token") from exc

        try:
            user_id = int(str(claims.get("sub")))
        except ValueError as exc:
            raise _invalid_token("Invalid token subject") from exc

        account = await self._repo.get_enabled(db, user_id)
        if account is None:
            raise AppError(code="auth.user_not_found", message="Staff account not found or disabled", http_status=401)
        return account.principal()

    # ------------------------ bootstrap ------------------------

    async def ensure_default_admin(self, db: AsyncSession) -> None:
        username = vconfig.default_admin_username
        password = vconfig.default_admin_password
        if vconfig.app_env != "dev" and password == _WELL_KNOWN_DEV_PASSWORD:
            raise RuntimeError("DEFAULT_ADMIN_PASSWORD must be rotated in non-dev environments.")

        if await self._repo.get_login(db, username) is not None:
            return

        account = await self._repo.create(db, username=username, password_hash=self.hash_password(password))
        await db.commit()
        vlogger.warning("default staff account created username=%s (password not logged)", account.username)
