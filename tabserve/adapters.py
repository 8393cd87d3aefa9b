"""
请求体解析：JSON 单条记录 / CSV 多行 / JSON Lines 批量

每个解析函数返回原始记录（RawRecord，即松散类型的值列表），
类型转换交给 tabserve.conversion。
"""
from __future__ import annotations

import io
import json
import logging
import re
from typing import Any, Optional

import pandas as pd
from pydantic import ValidationError

from tabserve.domain.protocol import APPLICATION_JSON, MultiRecordRequest, SingleRecordRequest
from tabserve.domain.schema import DataSchema, summarize_validation_error
from tabserve.errors import (
    MalformedLine,
    MalformedRequest,
    SchemaParseError,
    TypeConversionError,
)

logger = logging.getLogger(__name__)

RawRecord = list[Any]

_LINE_SPLIT = re.compile(r"\r?\n")


def decode_body(body: bytes) -> str:
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedRequest(f"Request body is not valid UTF-8: {e}") from e


def is_absent_payload(body: bytes, media_type: str) -> bool:
    """空请求体，或 application/json 请求体为 null，均视为没有输入（204）。"""
    stripped = body.strip()
    return not stripped or (media_type == APPLICATION_JSON and stripped == b"null")


def _validate_envelope(model, payload: Any):
    """校验 envelope；schema 部分的错误单独报告为 SchemaParseError。"""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        if any(err["loc"] and err["loc"][0] == "schema" for err in e.errors()):
            raise SchemaParseError(f"Schema is invalid: {summarize_validation_error(e)}") from e
        raise


# ---------- application/json ----------
def parse_json_request(body: bytes) -> tuple[Optional[DataSchema], list[RawRecord]]:
    """{"data": [...], "schema": {...}} -> (schema 或 None, [一条记录])"""
    text = decode_body(body)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedRequest(f"Request body is not valid JSON: {e}") from e
    try:
        request = _validate_envelope(SingleRecordRequest, payload)
    except ValidationError as e:
        raise MalformedRequest(f"Invalid request: {summarize_validation_error(e)}") from e
    return request.data_schema, [request.data]


# ---------- text/csv ----------
def parse_csv_request(body: bytes, schema: DataSchema) -> list[RawRecord]:
    """
    CSV 每个非空行为一条记录，列数必须与 schema 输入字段数一致。
    CSV 不携带 schema，且只支持 basic 字段。
    """
    for field in schema.input:
        if not field.is_basic:
            raise TypeConversionError(field.name, "<csv>", f"CSV input cannot carry {field.struct.value} fields")

    text = decode_body(body)
    if not text.strip():
        raise MalformedRequest("CSV input contained no rows")
    try:
        frame = pd.read_csv(
            io.StringIO(text),
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise MalformedRequest(f"Unable to parse CSV input: {e}") from e

    expected = len(schema.input)
    if frame.shape[1] != expected or frame.isna().to_numpy().any():
        raise MalformedRequest(f"CSV rows must contain exactly {expected} values to match the schema")
    records = [list(values) for values in frame.itertuples(index=False, name=None)]
    logger.debug("CSV 解析完成，记录数: %d", len(records))
    return records


# ---------- application/jsonlines ----------
def split_lines(text: str) -> list[str]:
    """按行切分，忽略空行"""
    return [line for line in _LINE_SPLIT.split(text) if line.strip()]


def _load_line(line: str, line_number: int) -> Any:
    try:
        return json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedLine(line_number, f"not valid JSON ({e})") from e


def parse_first_line(line: str) -> Optional[DataSchema]:
    """首行按单条记录解析，仅用于读取可选的 schema。"""
    payload = _load_line(line, 0)
    try:
        return _validate_envelope(SingleRecordRequest, payload).data_schema
    except ValidationError as e:
        raise MalformedLine(0, summarize_validation_error(e)) from e


def _is_multi_record_shape(payload: Any) -> bool:
    """结构探测：data 是否为“列表的列表”"""
    if not isinstance(payload, dict):
        return False
    data = payload.get("data")
    return isinstance(data, list) and all(isinstance(record, list) for record in data)


def parse_batch_line(line: str, line_number: int) -> list[RawRecord]:
    """
    解析 JSON Lines 的一行，返回该行贡献的记录（按出现顺序）。

    先按多条记录结构探测；只有结构不匹配时才按单条记录解析。
    结构匹配后的校验错误不会回退到单条记录。
    """
    payload = _load_line(line, line_number)
    model = MultiRecordRequest if _is_multi_record_shape(payload) else SingleRecordRequest
    try:
        request = _validate_envelope(model, payload)
    except ValidationError as e:
        raise MalformedLine(line_number, summarize_validation_error(e)) from e
    if model is MultiRecordRequest:
        return list(request.data)
    return [request.data]
