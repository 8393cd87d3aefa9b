"""
服务配置：从环境变量读取，显式注入 InvocationPipeline 与 FastAPI 应用。

环境变量:
- SAGEMAKER_DEFAULT_INVOCATIONS_ACCEPT：请求未指定 Accept 时的默认响应格式
- SAGEMAKER_INFERENCE_SCHEMA：默认 schema（JSON 字符串），未设置时兼容读取 SAGEMAKER_SPARKML_SCHEMA
- MODEL_DIR / MODEL_VERSION：模型目录与版本
- HOST / PORT / LOG_LEVEL
"""
from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict

DEFAULT_MODEL_DIR = "/opt/ml/model"


def _first_env(*names: str) -> Optional[str]:
    """按顺序取第一个非空的环境变量"""
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None


class ServingConfig(BaseModel):
    """进程级只读配置"""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    default_accept: Optional[str] = None
    default_schema: Optional[str] = None
    model_dir: str = DEFAULT_MODEL_DIR
    model_version: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ServingConfig":
        return cls(
            default_accept=os.getenv("SAGEMAKER_DEFAULT_INVOCATIONS_ACCEPT", "").strip() or None,
            default_schema=_first_env("SAGEMAKER_INFERENCE_SCHEMA", "SAGEMAKER_SPARKML_SCHEMA"),
            model_dir=os.getenv("MODEL_DIR", DEFAULT_MODEL_DIR),
            model_version=os.getenv("MODEL_VERSION", None),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8080")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def model_path(self) -> str:
        return os.path.join(self.model_dir, "xgb_model.json")

    @property
    def feature_meta_path(self) -> str:
        return os.path.join(self.model_dir, "feature_meta.json")
