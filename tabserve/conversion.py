"""
Schema 驱动的类型转换

- to_row：原始记录 + schema -> 单行 DataFrame（执行器输入）
- from_row：执行器输出 DataFrame + 输出字段 + Accept -> ResponseUnit

标量文本格式：整数为十进制，double 为 Python repr，float 按 float32 最短表示，
布尔为 true/false，字符串原样输出。
"""
from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from numbers import Integral, Real
from typing import Any

import numpy as np
import pandas as pd

from tabserve.domain.protocol import APPLICATION_JSONLINES_TEXT, TEXT_CSV
from tabserve.domain.schema import DataSchema, ScalarType, SchemaField, StructureKind
from tabserve.errors import ExecutorFailure, TypeConversionError

_INTEGER_BOUNDS = {
    ScalarType.BYTE: (-(2 ** 7), 2 ** 7 - 1),
    ScalarType.SHORT: (-(2 ** 15), 2 ** 15 - 1),
    ScalarType.INTEGER: (-(2 ** 31), 2 ** 31 - 1),
    ScalarType.LONG: (-(2 ** 63), 2 ** 63 - 1),
}


@dataclass(frozen=True)
class ResponseUnit:
    """单条记录的响应：响应体文本 + Content-Type"""
    body: str
    media_type: str


# ---------- 标量 ----------
def _to_bool(value: Any) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ValueError("expected true or false")


def _to_int(value: Any, scalar_type: ScalarType) -> int:
    if isinstance(value, (bool, np.bool_)):
        raise ValueError("boolean is not an integer")
    if isinstance(value, Integral):
        result = int(value)
    elif isinstance(value, Real):
        if not float(value).is_integer():
            raise ValueError("value has a fractional part")
        result = int(value)
    elif isinstance(value, str):
        result = int(value.strip())
    else:
        raise ValueError(f"unsupported value type {type(value).__name__}")
    low, high = _INTEGER_BOUNDS[scalar_type]
    if not low <= result <= high:
        raise ValueError(f"out of range for {scalar_type.value}")
    return result


def _to_float(value: Any, scalar_type: ScalarType):
    if isinstance(value, (bool, np.bool_)):
        raise ValueError("boolean is not a number")
    if isinstance(value, str):
        value = value.strip()
    elif not isinstance(value, Real):
        raise ValueError(f"unsupported value type {type(value).__name__}")
    result = float(value)
    if scalar_type is ScalarType.FLOAT:
        return np.float32(result)
    return result


def coerce_scalar(value: Any, scalar_type: ScalarType):
    """
    将单个值转换为声明的标量类型

    Raises:
        ValueError: 值无法转换
    """
    if value is None:
        raise ValueError("value is null")
    if scalar_type is ScalarType.STRING:
        if isinstance(value, (list, dict)):
            raise ValueError("expected a scalar")
        return str(value)
    if scalar_type is ScalarType.BOOLEAN:
        return _to_bool(value)
    if scalar_type in _INTEGER_BOUNDS:
        return _to_int(value, scalar_type)
    return _to_float(value, scalar_type)


def render_scalar(value: Any, scalar_type: ScalarType) -> str:
    """已转换标量的文本形式，可被 coerce_scalar 原样解析回来"""
    if scalar_type is ScalarType.BOOLEAN:
        return "true" if value else "false"
    if scalar_type is ScalarType.FLOAT:
        return str(np.float32(value))
    if scalar_type is ScalarType.DOUBLE:
        return repr(float(value))
    return str(value)


def _json_value(value: Any, scalar_type: ScalarType):
    if scalar_type is ScalarType.FLOAT:
        # 以 float32 最短表示写入 JSON，避免 0.8500000238418579
        return float(str(np.float32(value)))
    if scalar_type is ScalarType.DOUBLE:
        return float(value)
    return value


# ---------- 输入方向 ----------
def _coerce_input(value: Any, field: SchemaField):
    if field.struct is StructureKind.BASIC:
        return coerce_scalar(value, field.type)
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"expected a list for {field.struct.value} field")
    if field.struct is StructureKind.VECTOR:
        if field.type is not ScalarType.DOUBLE:
            raise ValueError("only double type is supported for vector fields")
        return np.asarray([coerce_scalar(v, ScalarType.DOUBLE) for v in value], dtype=np.float64)
    return [coerce_scalar(v, field.type) for v in value]


def _object_cell(value: Any) -> np.ndarray:
    cell = np.empty(1, dtype=object)
    cell[0] = value
    return cell


def to_row(record: list[Any], schema: DataSchema) -> pd.DataFrame:
    """原始记录按位置映射到 schema 输入字段，返回单行 DataFrame。"""
    if not isinstance(record, (list, tuple)):
        raise TypeConversionError("<record>", record, "a record must be a list of values")
    if len(record) != len(schema.input):
        raise TypeConversionError(
            "<record>", record, f"expected {len(schema.input)} values, got {len(record)}"
        )

    columns = {}
    for field, value in zip(schema.input, record):
        try:
            converted = _coerce_input(value, field)
        except (ValueError, TypeError, OverflowError) as e:
            raise TypeConversionError(field.name, value, str(e)) from e
        columns[field.name] = [converted] if field.is_basic else _object_cell(converted)
    return pd.DataFrame(columns)


# ---------- 输出方向 ----------
def _csv_line(cells: list[str]) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="").writerow(cells)
    return buf.getvalue()


def _iter_collection(value: Any) -> list:
    if isinstance(value, np.ndarray):
        return value.ravel().tolist()
    if isinstance(value, (list, tuple)):
        return list(value)
    raise ValueError(f"expected a collection, got {type(value).__name__}")


def _select_output(frame: pd.DataFrame, output: SchemaField) -> Any:
    if output.name not in frame.columns:
        raise ExecutorFailure(f"Executor output does not contain column '{output.name}'")
    if len(frame) == 0:
        raise ExecutorFailure("Executor returned no rows")
    return frame[output.name].iloc[0]


def _json_body(payload: dict, output: SchemaField, raw: Any) -> str:
    try:
        return json.dumps(payload, allow_nan=False)
    except ValueError as e:
        raise TypeConversionError(output.name, raw, "non-finite value cannot be written as JSON") from e


def from_row(frame: pd.DataFrame, output: SchemaField, accept: str) -> ResponseUnit:
    """
    提取输出字段并按 Accept 序列化

    basic：text/csv 输出单个值；JSON Lines 输出 {"prediction": value}
    vector / array：text/csv 输出逗号分隔的一行；
    application/jsonlines 输出 {"features": [...]}；
    application/jsonlines;data=text 输出空格拼接的文本 {"source": "v1 v2"}
    NaN / Infinity 无法写成 JSON，按转换错误处理
    """
    raw = _select_output(frame, output)
    media_type = accept

    if output.is_basic:
        try:
            value = coerce_scalar(raw, output.type)
        except (ValueError, TypeError, OverflowError) as e:
            raise TypeConversionError(output.name, raw, str(e)) from e
        if accept == TEXT_CSV:
            return ResponseUnit(_csv_line([render_scalar(value, output.type)]), media_type)
        return ResponseUnit(_json_body({"prediction": _json_value(value, output.type)}, output, raw), media_type)

    try:
        values = [coerce_scalar(v, output.type) for v in _iter_collection(raw)]
    except (ValueError, TypeError, OverflowError) as e:
        raise TypeConversionError(output.name, raw, str(e)) from e
    if accept == TEXT_CSV:
        return ResponseUnit(_csv_line([render_scalar(v, output.type) for v in values]), media_type)
    if accept == APPLICATION_JSONLINES_TEXT:
        text = " ".join(render_scalar(v, output.type) for v in values)
        return ResponseUnit(_json_body({"source": text}, output, raw), media_type)
    return ResponseUnit(
        _json_body({"features": [_json_value(v, output.type) for v in values]}, output, raw),
        media_type,
    )
