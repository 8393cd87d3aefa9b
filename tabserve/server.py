#!/usr/bin/env python3
"""
表格模型推理服务

使用 FastAPI 实现 SageMaker 风格的推理容器接口:
    GET  /ping                  健康检查
    GET  /execution-parameters  批量转换调度提示
    POST /invocations           推理（application/json | text/csv | application/jsonlines）
    GET  /metrics               Prometheus 指标

启动方式:
    uvicorn tabserve.server:app --host 0.0.0.0 --port 8080 --timeout-keep-alive 30

或者:
    python -m tabserve.server
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Response
from starlette.concurrency import run_in_threadpool

from tabserve import metrics
from tabserve.adapters import is_absent_payload
from tabserve.config import ServingConfig
from tabserve.domain.protocol import (
    APPLICATION_JSON,
    APPLICATION_JSONLINES,
    TEXT_CSV,
    ExecutionParameters,
)
from tabserve.errors import InferenceError
from tabserve.executor import XGBoostExecutor
from tabserve.middleware import RequestIDMiddleware, install_log_filter
from tabserve.pipeline import InvocationPipeline

CONFIG = ServingConfig.from_env()

# 配置日志
logging.basicConfig(
    level=getattr(logging, CONFIG.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
install_log_filter()
logger = logging.getLogger(__name__)


def load_pipeline(config: ServingConfig) -> InvocationPipeline:
    """从 MODEL_DIR 加载 XGBoost 执行器并构建管线"""
    logger.info("模型路径: %s", config.model_path)
    logger.info("特征元数据路径: %s", config.feature_meta_path)
    executor = XGBoostExecutor(config.model_path, config.feature_meta_path, config.model_version)
    executor.load()
    metrics.set_model_version(executor.model_version)
    return InvocationPipeline(executor, config)


def _media_type(content_type: Optional[str]) -> str:
    """去掉参数部分，如 application/jsonlines;data=text -> application/jsonlines"""
    return (content_type or "").split(";", 1)[0].strip().lower()


def create_app(pipeline: InvocationPipeline = None, config: ServingConfig = None) -> FastAPI:
    """
    创建应用

    Args:
        pipeline: 预先构建的管线（测试注入）；为空时启动阶段从 MODEL_DIR 加载
        config: 服务配置；为空时读取环境变量
    """
    config = config or (pipeline.config if pipeline is not None else CONFIG)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.pipeline is None:
            try:
                logger.info("正在启动推理服务...")
                app.state.pipeline = load_pipeline(config)
                logger.info("推理服务启动成功！")
            except FileNotFoundError as e:
                logger.error("模型文件未找到: %s", e)
                logger.error("请先运行训练脚本: python train/train_xgb.py")
                raise
            except Exception as e:
                logger.error("模型加载失败: %s", e, exc_info=True)
                raise
        yield

    app = FastAPI(
        title="Tabular Model Inference Service",
        description="表格模型推理服务：内容协商、schema 解析、多格式请求转换",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(RequestIDMiddleware)
    app.state.pipeline = pipeline
    app.state.config = config

    @app.get("/ping")
    async def ping():
        """健康检查"""
        return Response(status_code=200)

    @app.get("/execution-parameters")
    async def execution_parameters():
        return ExecutionParameters(MaxConcurrentTransforms=os.cpu_count() or 1)

    @app.get("/metrics")
    async def prometheus_metrics():
        return metrics.metrics_response()

    @app.post("/invocations")
    async def invocations(request: Request):
        """按 Content-Type 分发到对应的解析器，按 Accept 返回响应。"""
        current = request.app.state.pipeline
        if current is None:
            logger.error("模型未加载，无法进行推理")
            raise HTTPException(status_code=503, detail="Model not loaded")

        content_type = _media_type(request.headers.get("content-type"))
        handlers = {
            APPLICATION_JSON: current.invoke_json,
            TEXT_CSV: current.invoke_csv,
            APPLICATION_JSONLINES: current.invoke_jsonlines,
        }
        handler = handlers.get(content_type)
        if handler is None:
            # 标签取值固定，避免任意 Content-Type 产生新的时间序列
            metrics.inc_invocations(metrics.UNSUPPORTED_CONTENT_TYPE, "415")
            raise HTTPException(status_code=415, detail=f"Unsupported content type: {content_type or 'none'}")

        body = await request.body()
        if is_absent_payload(body, content_type):
            logger.error("请求体为空")
            metrics.inc_invocations(content_type, "204")
            return Response(status_code=204)

        accept = request.headers.get("accept")
        try:
            with metrics.invocations_latency_histogram():
                unit = await run_in_threadpool(handler, body, accept)
        except Exception as e:
            metrics.inc_invocations(content_type, "400")
            # 管线错误只记消息，其他异常附带堆栈
            logger.error("推理请求处理失败: %s", e, exc_info=not isinstance(e, InferenceError))
            return Response(content=str(e), status_code=400, media_type="text/plain")

        metrics.inc_invocations(content_type, "200")
        return Response(content=unit.body, media_type=unit.media_type)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info("启动表格模型推理服务...")
    logger.info("模型目录: %s", CONFIG.model_dir)
    logger.info("服务地址: http://%s:%s", CONFIG.host, CONFIG.port)
    logger.info("推理: http://%s:%s/invocations 指标: http://%s:%s/metrics", CONFIG.host, CONFIG.port, CONFIG.host, CONFIG.port)

    uvicorn.run(app, host=CONFIG.host, port=CONFIG.port, timeout_keep_alive=30)
