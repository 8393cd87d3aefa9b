"""
/invocations 协议约定

路径：POST /invocations，按 Content-Type 分发
  application/json       {"data": [1.0, "a"], "schema": {...}}（schema 可选）
  text/csv               每行一条记录，schema 只能来自环境变量
  application/jsonlines  每行一个单条记录 {"data": [...]} 或多条记录 {"data": [[...], [...]]}
响应：按 Accept 返回 text/csv 或 application/jsonlines
健康：GET /ping -> 200 空响应体
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from tabserve.domain.schema import DataSchema

TEXT_CSV = "text/csv"
APPLICATION_JSON = "application/json"
APPLICATION_JSONLINES = "application/jsonlines"
APPLICATION_JSONLINES_TEXT = "application/jsonlines;data=text"
ANY_MEDIA_TYPE = "*/*"

VALID_ACCEPT_LIST = (TEXT_CSV, APPLICATION_JSONLINES, APPLICATION_JSONLINES_TEXT)


class SingleRecordRequest(BaseModel):
    """单条记录：data 为一条记录的扁平值列表"""
    model_config = ConfigDict(populate_by_name=True)

    data: list[Any]
    data_schema: Optional[DataSchema] = Field(default=None, alias="schema")


class MultiRecordRequest(BaseModel):
    """多条记录：data 为记录列表，每条记录为值列表"""
    model_config = ConfigDict(populate_by_name=True)

    data: list[list[Any]]
    data_schema: Optional[DataSchema] = Field(default=None, alias="schema")


class ExecutionParameters(BaseModel):
    """GET /execution-parameters 响应体（批量转换任务的调度提示）"""
    MaxConcurrentTransforms: int
    BatchStrategy: str = "SINGLE_RECORD"
    MaxPayloadInMB: int = 5
