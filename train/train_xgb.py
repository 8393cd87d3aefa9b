#!/usr/bin/env python3
"""
XGBoost 模型训练脚本

用法:
    python train/train_xgb.py [--data-path data/train_data.csv] [--model-dir model] [--version VERSION] [--normalize]

功能:
    1. 读取训练数据（本地 CSV，不存在时生成示例数据）
    2. 切分训练集/验证集
    3. 训练 XGBoost 模型
    4. 保存模型、特征元数据、可选的特征标准化参数
    5. 保存推理 schema（schema.json，可直接作为 SAGEMAKER_INFERENCE_SCHEMA）
"""
import argparse
import json
import os
import sys
from datetime import datetime

import numpy as np
import pandas as pd
import xgboost as xgb
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler

# 特征列及其 schema 类型
FEATURE_TYPES = {
    "item_ctr": "double",
    "item_cvr": "double",
    "item_price": "double",
    "user_age": "integer",
    "user_gender": "integer",
}
FEATURE_COLUMNS = list(FEATURE_TYPES)
LABEL_COLUMN = "label"
PREDICTION_COLUMN = "prediction"

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_MODEL_DIR = os.path.join(PROJECT_ROOT, "model")


def generate_sample_data(output_path: str, n_samples: int = 1000) -> pd.DataFrame:
    """生成示例训练数据"""
    rng = np.random.default_rng(42)

    data = {
        "item_ctr": rng.uniform(0.01, 0.5, n_samples),
        "item_cvr": rng.uniform(0.001, 0.1, n_samples),
        "item_price": rng.uniform(10, 200, n_samples),
        "user_age": rng.integers(18, 60, n_samples),
        "user_gender": rng.integers(0, 3, n_samples),  # 0=未知，1=男，2=女
    }

    # 生成标签（简单的线性组合 + 噪声）
    label = (
        0.5 * data["item_ctr"] * 10
        + 0.3 * data["item_cvr"] * 20
        + 0.1 * data["user_age"] / 100
        + 0.05 * data["user_gender"] / 2.0
        + rng.normal(0, 0.1, n_samples)
    )
    data[LABEL_COLUMN] = (label > 0.5).astype(int)

    df = pd.DataFrame(data)
    os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
    df.to_csv(output_path, index=False)
    print(f"生成示例数据: {output_path}, 样本数: {n_samples}")
    return df


def build_schema() -> dict:
    """推理 schema：输入字段顺序与 FEATURE_COLUMNS 一致"""
    return {
        "input": [{"name": name, "type": FEATURE_TYPES[name], "struct": "basic"} for name in FEATURE_COLUMNS],
        "output": {"name": PREDICTION_COLUMN, "type": "double", "struct": "basic"},
    }


def train_model(
    data_path: str,
    model_dir: str = DEFAULT_MODEL_DIR,
    model_version: str = None,
    normalize: bool = False,
    num_boost_round: int = 100,
):
    """
    训练 XGBoost 模型

    Args:
        data_path: 本地 CSV 路径（不存在时生成示例数据）
        model_dir: 模型输出目录
        model_version: 模型版本（可选，默认使用时间戳）
        normalize: 是否特征标准化
        num_boost_round: 最大迭代轮数

    Returns:
        (model, feature_meta)
    """
    if not os.path.exists(data_path):
        print("数据文件不存在，生成示例数据...")
        df = generate_sample_data(data_path)
    else:
        df = pd.read_csv(data_path)

    print(f"数据形状: {df.shape}")

    missing_cols = set(FEATURE_COLUMNS + [LABEL_COLUMN]) - set(df.columns)
    if missing_cols:
        raise ValueError(f"缺少必要的列: {missing_cols}")

    X = df[FEATURE_COLUMNS].values
    y = df[LABEL_COLUMN].values

    # 特征标准化（可选）
    scaler = None
    if normalize:
        print("进行特征标准化...")
        scaler = StandardScaler()
        X = scaler.fit_transform(X)

    # 切分训练集和验证集
    X_train, X_val, y_train, y_val = train_test_split(
        X, y, test_size=0.2, random_state=42, stratify=y
    )
    print(f"训练集: {X_train.shape[0]} 样本，验证集: {X_val.shape[0]} 样本")

    dtrain = xgb.DMatrix(X_train, label=y_train)
    dval = xgb.DMatrix(X_val, label=y_val)

    params = {
        "objective": "binary:logistic",
        "eval_metric": "logloss",
        "max_depth": 5,
        "eta": 0.1,
        "subsample": 0.8,
        "colsample_bytree": 0.8,
        "min_child_weight": 1,
    }
    print(f"\n开始训练 XGBoost 模型，参数: {params}")
    model = xgb.train(
        params,
        dtrain,
        num_boost_round=num_boost_round,
        evals=[(dtrain, "train"), (dval, "val")],
        early_stopping_rounds=10,
        verbose_eval=10,
    )

    y_pred = model.predict(dval)
    accuracy = np.mean((y_pred > 0.5).astype(int) == y_val)
    print(f"\n验证集准确率: {accuracy:.4f}")

    if model_version is None:
        model_version = datetime.now().strftime("%Y%m%d_%H%M%S")

    os.makedirs(model_dir, exist_ok=True)
    model_path = os.path.join(model_dir, "xgb_model.json")
    model.save_model(model_path)
    print(f"\n模型已保存: {model_path}")

    # 特征元数据（供 XGBoostExecutor 使用）
    feature_meta = {
        "feature_columns": FEATURE_COLUMNS,
        "feature_count": len(FEATURE_COLUMNS),
        "prediction_column": PREDICTION_COLUMN,
        "label_column": LABEL_COLUMN,
        "model_version": model_version,
        "normalized": normalize,
        "created_at": datetime.now().isoformat(),
    }
    with open(os.path.join(model_dir, "feature_meta.json"), "w") as f:
        json.dump(feature_meta, f, indent=2)

    # 特征标准化参数（供 XGBoostExecutor 在推理时复用）
    if scaler is not None:
        scaler_meta = {
            col: {"mean": float(scaler.mean_[i]), "std": float(scaler.scale_[i])}
            for i, col in enumerate(FEATURE_COLUMNS)
        }
        with open(os.path.join(model_dir, "feature_scaler.json"), "w") as f:
            json.dump(scaler_meta, f, indent=2)

    with open(os.path.join(model_dir, "schema.json"), "w") as f:
        json.dump(build_schema(), f)
    print(f"特征元数据与 schema 已保存到: {model_dir}")

    return model, feature_meta


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="训练 XGBoost 模型")
    parser.add_argument("--data-path", default=os.path.join(PROJECT_ROOT, "data", "train_data.csv"), help="本地 CSV 路径")
    parser.add_argument("--model-dir", default=DEFAULT_MODEL_DIR, help="模型输出目录")
    parser.add_argument("--version", type=str, help="模型版本（可选，默认使用时间戳）")
    parser.add_argument("--normalize", action="store_true", help="是否进行特征标准化")
    args = parser.parse_args()

    try:
        _, feature_meta = train_model(
            data_path=args.data_path,
            model_dir=args.model_dir,
            model_version=args.version,
            normalize=args.normalize,
        )
        print("\n训练完成！")
        print(f"模型版本: {feature_meta['model_version']}")
        print("\n下一步: 启动推理服务")
        print(f"  export MODEL_DIR={args.model_dir}")
        print(f"  export SAGEMAKER_INFERENCE_SCHEMA=\"$(cat {os.path.join(args.model_dir, 'schema.json')})\"")
        print("  uvicorn tabserve.server:app --host 0.0.0.0 --port 8080")
    except Exception as e:
        print(f"训练失败: {e}", file=sys.stderr)
        sys.exit(1)
