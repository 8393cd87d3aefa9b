"""Schema 解析：请求体中的 schema 优先，其次为环境变量中的默认 schema。"""
from typing import Optional

from tabserve.config import ServingConfig
from tabserve.domain.schema import DataSchema
from tabserve.errors import MissingSchema


def resolve_schema(schema_from_payload: Optional[DataSchema], config: ServingConfig) -> DataSchema:
    if schema_from_payload is not None:
        return schema_from_payload
    if not config.default_schema:
        raise MissingSchema(
            "Input schema has to be provided either via environment variable "
            "SAGEMAKER_INFERENCE_SCHEMA or via the request"
        )
    return DataSchema.from_json(config.default_schema)
