"""
推理用例：请求体 -> 原始记录 -> 执行器 -> 响应

InvocationPipeline 持有注入的执行器和配置，不保存任何请求级状态，
三个入口分别对应 /invocations 的三种 Content-Type。
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from tabserve.adapters import parse_csv_request, parse_json_request
from tabserve.batch import BatchOrchestrator, aggregate_units
from tabserve.config import ServingConfig
from tabserve.conversion import ResponseUnit, from_row, to_row
from tabserve.domain.schema import DataSchema
from tabserve.errors import ExecutorFailure, InferenceError
from tabserve.executor import Executor
from tabserve.negotiation import resolve_accept
from tabserve.schema_resolver import resolve_schema

logger = logging.getLogger(__name__)


class InvocationPipeline:
    def __init__(self, executor: Executor, config: ServingConfig):
        self.executor = executor
        self.config = config

    def process_record(self, record: list[Any], schema: DataSchema, accept: str) -> ResponseUnit:
        """单条记录：类型转换 -> transform -> 提取输出字段并序列化"""
        row = to_row(record, schema)
        try:
            result = self.executor.transform(row)
        except InferenceError:
            raise
        except Exception as e:
            logger.error("执行器 transform 失败: %s", e, exc_info=True)
            raise ExecutorFailure(f"Model execution failed: {e}") from e
        return from_row(result, schema.output, accept)

    def invoke_json(self, body: bytes, accept: Optional[str]) -> ResponseUnit:
        accept_value = resolve_accept(accept, self.config)
        payload_schema, records = parse_json_request(body)
        schema = resolve_schema(payload_schema, self.config)
        return self.process_record(records[0], schema, accept_value)

    def invoke_csv(self, body: bytes, accept: Optional[str]) -> ResponseUnit:
        """CSV 不携带 schema；多行时按行顺序聚合，单行时直接返回。"""
        accept_value = resolve_accept(accept, self.config)
        schema = resolve_schema(None, self.config)
        records = parse_csv_request(body, schema)
        units = [self.process_record(record, schema, accept_value) for record in records]
        if len(units) == 1:
            return units[0]
        return aggregate_units(units)

    def invoke_jsonlines(self, body: bytes, accept: Optional[str]) -> ResponseUnit:
        accept_value = resolve_accept(accept, self.config)
        return BatchOrchestrator(self).run(body, accept_value)
