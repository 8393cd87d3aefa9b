"""
数据 schema：有序输入字段 + 一个输出字段

JSON 形式:
    {
        "input": [
            {"name": "age", "type": "integer"},
            {"name": "embedding", "type": "double", "struct": "vector"}
        ],
        "output": {"name": "prediction", "type": "double"}
    }
"""
from __future__ import annotations

import json
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from tabserve.errors import SchemaParseError


class ScalarType(str, Enum):
    BOOLEAN = "boolean"
    BYTE = "byte"
    SHORT = "short"
    INTEGER = "integer"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    STRING = "string"


class StructureKind(str, Enum):
    """basic 为单个标量；vector / array 为有序标量集合"""
    BASIC = "basic"
    VECTOR = "vector"
    ARRAY = "array"


class SchemaField(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    type: ScalarType
    struct: StructureKind = StructureKind.BASIC

    @property
    def is_basic(self) -> bool:
        return self.struct is StructureKind.BASIC


class DataSchema(BaseModel):
    """输入字段顺序决定原始记录的位置映射；输出字段不要求出现在输入中。"""
    model_config = ConfigDict(frozen=True)

    input: tuple[SchemaField, ...] = Field(min_length=1)
    output: SchemaField

    @model_validator(mode="after")
    def _check_unique_names(self) -> "DataSchema":
        seen = set()
        for field in self.input:
            if field.name in seen:
                raise ValueError(f"duplicate input field name: {field.name}")
            seen.add(field.name)
        return self

    @property
    def input_names(self) -> list[str]:
        return [field.name for field in self.input]

    @classmethod
    def from_json(cls, text: str) -> "DataSchema":
        """反序列化 schema 字符串，失败统一抛出 SchemaParseError。"""
        try:
            return cls.model_validate(json.loads(text))
        except json.JSONDecodeError as e:
            raise SchemaParseError(f"Schema is not valid JSON: {e}") from e
        except ValidationError as e:
            raise SchemaParseError(f"Schema is invalid: {summarize_validation_error(e)}") from e


def summarize_validation_error(error: ValidationError) -> str:
    """将 pydantic 校验错误压缩为一行，便于作为 400 响应体。"""
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item["loc"]) or "<root>"
        parts.append(f"{loc}: {item['msg']}")
    return "; ".join(parts)
