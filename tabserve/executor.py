"""
模型执行器：单行 DataFrame -> 追加预测列后的 DataFrame

Executor 为管线依赖的抽象能力（transform），XGBoostExecutor 为基于
XGBoost Booster + 特征元数据的默认实现。
"""
import json
import logging
import os
from abc import ABC, abstractmethod

import numpy as np
import pandas as pd
import xgboost as xgb

# 配置日志
logger = logging.getLogger(__name__)

DEFAULT_PREDICTION_COLUMN = "prediction"


class Executor(ABC):
    """模型执行器抽象：transform(frame) -> frame"""

    @abstractmethod
    def transform(self, frame: pd.DataFrame) -> pd.DataFrame:
        """返回包含输出列的新 DataFrame，不修改输入。"""
        raise NotImplementedError


def _object_column(values) -> np.ndarray:
    column = np.empty(len(values), dtype=object)
    for i, v in enumerate(values):
        column[i] = v
    return column


class XGBoostExecutor(Executor):
    """XGBoost 执行器"""

    def __init__(self, model_path: str, feature_meta_path: str, model_version: str = None):
        """
        初始化执行器

        Args:
            model_path: XGBoost 模型文件路径
            feature_meta_path: 特征元数据文件路径
            model_version: 模型版本（可选，元数据中的版本优先）
        """
        self.model_path = model_path
        self.feature_meta_path = feature_meta_path
        self.model_version = model_version
        self.model = None
        self.feature_columns = None
        self.prediction_column = DEFAULT_PREDICTION_COLUMN
        self.feature_scaler = None  # 特征标准化参数（可选）

    def load(self):
        """加载模型和特征元数据"""
        if not os.path.exists(self.model_path):
            raise FileNotFoundError(f"模型文件不存在: {self.model_path}")

        if not os.path.exists(self.feature_meta_path):
            raise FileNotFoundError(f"特征元数据文件不存在: {self.feature_meta_path}")

        try:
            logger.info("正在加载模型: %s", self.model_path)
            model = xgb.Booster()
            model.load_model(self.model_path)

            with open(self.feature_meta_path, "r") as f:
                meta = json.load(f)

            self.feature_columns = meta.get("feature_columns") or []
            self.prediction_column = meta.get("prediction_column", DEFAULT_PREDICTION_COLUMN)
            self.model_version = meta.get("model_version", self.model_version)

            # 特征标准化参数（如果存在）
            scaler_path = os.path.join(os.path.dirname(self.feature_meta_path), "feature_scaler.json")
            if os.path.exists(scaler_path):
                logger.info("加载特征标准化参数: %s", scaler_path)
                with open(scaler_path, "r") as f:
                    self.feature_scaler = json.load(f)

            self.model = model
            logger.info("模型加载成功: %s", self.model_path)
            logger.info("模型版本: %s", self.model_version or "unknown")
            logger.info("特征列: %s，预测列: %s", self.feature_columns, self.prediction_column)
        except Exception as e:
            logger.error("模型加载失败: %s", e, exc_info=True)
            raise

    def _column_matrix(self, frame: pd.DataFrame, col: str) -> np.ndarray:
        """单列 -> (n, k) 矩阵；basic 列 k=1，vector / array 列按元素展开。"""
        cells = [np.ravel(np.asarray(cell, dtype=np.float64)) for cell in frame[col].tolist()]
        widths = {len(c) for c in cells}
        if len(widths) > 1:
            raise ValueError(f"列 {col} 的向量长度不一致: {sorted(widths)}")
        matrix = np.vstack(cells)

        if self.feature_scaler and col in self.feature_scaler:
            # 标准化: (x - mean) / std
            mean = self.feature_scaler[col].get("mean", 0.0)
            std = self.feature_scaler[col].get("std", 1.0)
            if std > 0:
                matrix = (matrix - mean) / std
        return matrix

    def transform(self, frame: pd.DataFrame) -> pd.DataFrame:
        if self.model is None:
            raise RuntimeError("模型未加载，请先调用 load()")

        columns = self.feature_columns or list(frame.columns)
        missing = [col for col in columns if col not in frame.columns]
        if missing:
            raise ValueError(f"缺失特征列: {missing}")

        X = np.hstack([self._column_matrix(frame, col) for col in columns])
        scores = self.model.predict(xgb.DMatrix(X))
        logger.debug("预测完成，样本数: %d", len(frame))

        out = frame.copy()
        if scores.ndim > 1:
            # 多分类：每行一个概率向量
            out[self.prediction_column] = _object_column([row.astype(np.float64) for row in scores])
        else:
            out[self.prediction_column] = scores.astype(np.float64)
        return out
