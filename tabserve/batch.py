"""
JSON Lines 批量编排

状态流转: AWAIT_FIRST_LINE -> SCHEMA_RESOLVED -> PROCESSING_RECORDS -> AGGREGATED -> DONE

- 首行按单条记录解析，只用于确定整批的 schema（请求中的 schema 优先，其次环境变量）
- 每一行（包括首行）再按多条/单条记录解析，记录按出现顺序累积
- 每条记录走单条记录管线；任一记录失败则整批失败，不返回部分结果
- 聚合响应体为 [[u1], [u2], ...]，Content-Type 取第一条响应
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from tabserve import metrics
from tabserve.adapters import RawRecord, decode_body, parse_batch_line, parse_first_line, split_lines
from tabserve.conversion import ResponseUnit
from tabserve.errors import MalformedRequest
from tabserve.schema_resolver import resolve_schema

if TYPE_CHECKING:
    from tabserve.pipeline import InvocationPipeline

logger = logging.getLogger(__name__)


class BatchState(str, Enum):
    AWAIT_FIRST_LINE = "await_first_line"
    SCHEMA_RESOLVED = "schema_resolved"
    PROCESSING_RECORDS = "processing_records"
    AGGREGATED = "aggregated"
    DONE = "done"


def aggregate_units(units: list[ResponseUnit]) -> ResponseUnit:
    """按顺序合并响应；同一批的 Accept 与 schema 相同，Content-Type 取第一条。"""
    if not units:
        raise MalformedRequest("Input contained no records")
    body = "[" + ", ".join(f"[{unit.body}]" for unit in units) + "]"
    return ResponseUnit(body, units[0].media_type)


class BatchOrchestrator:
    """单个 JSON Lines 请求的编排器，每个请求新建一个实例。"""

    def __init__(self, pipeline: "InvocationPipeline"):
        self.pipeline = pipeline
        self.state = BatchState.AWAIT_FIRST_LINE

    def _collect_records(self, lines: list[str]) -> list[RawRecord]:
        records: list[RawRecord] = []
        for line_number, line in enumerate(lines):
            records.extend(parse_batch_line(line, line_number))
        return records

    def run(self, body: bytes, accept: str) -> ResponseUnit:
        lines = split_lines(decode_body(body))
        if not lines:
            raise MalformedRequest("JSON lines input contained no records")

        schema = resolve_schema(parse_first_line(lines[0]), self.pipeline.config)
        self.state = BatchState.SCHEMA_RESOLVED

        records = self._collect_records(lines)
        logger.debug("JSON Lines 解析完成，行数: %d，记录数: %d", len(lines), len(records))
        metrics.observe_batch_records(len(records))

        self.state = BatchState.PROCESSING_RECORDS
        units = [self.pipeline.process_record(record, schema, accept) for record in records]

        self.state = BatchState.AGGREGATED
        response = aggregate_units(units)

        self.state = BatchState.DONE
        return response
