# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 客服账号仓储

from __future__ import annotations

from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domains.staff_domain import StaffAccount
from infrastructures.db.orm.orm_base import now_ts
from infrastructures.db.orm.staff_orm import StaffORM


def _staff_from_orm(orm: StaffORM) -> StaffAccount:
    return StaffAccount(
        user_id=orm.user_id,
        username=orm.username,
        enabled=bool(orm.enabled),
        last_login_at=orm.last_login_at,
        created_at=orm.created_at,
    )


class StaffRepository:
    async def get_enabled(self, db: AsyncSession, user_id: int) -> Optional[StaffAccount]:
        stmt = select(StaffORM).where(StaffORM.user_id == user_id, StaffORM.enabled.is_(True)).limit(1)
        res = await db.execute(stmt)
        orm = res.scalar_one_or_none()
        return _staff_from_orm(orm) if orm else None

    async def get_login(self, db: AsyncSession, username: str) -> Optional[Tuple[StaffAccount, str]]:
        """Account plus its password hash; the hash never leaves the auth service."""
        stmt = select(StaffORM).where(StaffORM.username == username).limit(1)
        res = await db.execute(stmt)
        orm = res.scalar_one_or_none()
        if not orm:
            return None
        return _staff_from_orm(orm), orm.password_hash

    async def exists(self, db: AsyncSession, user_id: int) -> bool:
        stmt = select(StaffORM.user_id).where(StaffORM.user_id == user_id).limit(1)
        res = await db.execute(stmt)
        return res.scalar_one_or_none() is not None

    async def create(self, db: AsyncSession, *, username: str, password_hash: str) -> StaffAccount:
        orm = StaffORM(username=username, password_hash=password_hash, enabled=True)
        db.add(orm)
        await db.flush()
        return _staff_from_orm(orm)

    async def record_login(self, db: AsyncSession, user_id: int) -> None:
        await db.execute(update(StaffORM).where(StaffORM.user_id == user_id).values(last_login_at=now_ts()))
