# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: DomainModel 基类（统一 pydantic 配置 / 对外 camelCase 模型）

from __future__ import annotations

from typing import Dict, Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DomainModel(BaseModel):
    # 关闭 pydantic protected namespace 告警
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    def to_dict(self, *, exclude_none: bool = False) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=exclude_none)


class WireModel(DomainModel):
    """Domain model exchanged with browser clients: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        from_attributes=True,
        protected_namespaces=(),
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_dict(self, *, exclude_none: bool = False) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=exclude_none)
