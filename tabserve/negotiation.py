"""Accept 协商：请求头 -> 环境默认值 -> text/csv"""
from typing import Optional

from tabserve.config import ServingConfig
from tabserve.domain.protocol import ANY_MEDIA_TYPE, TEXT_CSV, VALID_ACCEPT_LIST
from tabserve.errors import InvalidAcceptType


def _is_empty_accept(accept: Optional[str]) -> bool:
    # 客户端未指定时框架可能补上 */*
    return accept is None or not accept.strip() or accept.strip() == ANY_MEDIA_TYPE


def resolve_accept(accept: Optional[str], config: ServingConfig) -> str:
    """
    解析响应格式

    Args:
        accept: 请求中的 Accept 头（可为空）
        config: 服务配置，提供 default_accept

    Returns:
        允许列表中的 Accept 值
    """
    value = config.default_accept if _is_empty_accept(accept) else accept.strip()
    if value and value not in VALID_ACCEPT_LIST:
        raise InvalidAcceptType(
            f"Accept value '{value}' passed via request or environment variable is not valid; "
            f"expected one of {list(VALID_ACCEPT_LIST)}"
        )
    return value or TEXT_CSV
