"""
集成测试：训练 -> 加载 -> /invocations 完整流程
"""
import json
import os
import shutil
import sys
import tempfile
import unittest

# 添加项目根目录到路径
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from fastapi.testclient import TestClient

from tabserve.config import ServingConfig
from tabserve.server import create_app, load_pipeline
from train.train_xgb import FEATURE_COLUMNS, train_model


class TestIntegration(unittest.TestCase):
    """集成测试"""

    @classmethod
    def setUpClass(cls):
        cls.temp_dir = tempfile.mkdtemp()
        cls.model_dir = os.path.join(cls.temp_dir, "model")
        train_model(
            data_path=os.path.join(cls.temp_dir, "data", "train_data.csv"),
            model_dir=cls.model_dir,
            model_version="integration_test_v1",
            normalize=True,
            num_boost_round=10,
        )
        with open(os.path.join(cls.model_dir, "schema.json")) as f:
            cls.schema_json = f.read()

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(cls.temp_dir)

    def setUp(self):
        self.config = ServingConfig(model_dir=self.model_dir, default_schema=self.schema_json)

    def test_artifacts(self):
        for name in ("xgb_model.json", "feature_meta.json", "feature_scaler.json", "schema.json"):
            self.assertTrue(os.path.exists(os.path.join(self.model_dir, name)), name)
        schema = json.loads(self.schema_json)
        self.assertEqual([f["name"] for f in schema["input"]], FEATURE_COLUMNS)

    def test_csv_pipeline(self):
        pipeline = load_pipeline(self.config)
        self.assertEqual(pipeline.executor.model_version, "integration_test_v1")

        unit = pipeline.invoke_csv(b"0.15,0.08,99.0,25,1", "text/csv")
        score = float(unit.body)
        self.assertGreaterEqual(score, 0.0)
        self.assertLessEqual(score, 1.0)

    def test_server_lifespan_loads_model(self):
        app = create_app(config=self.config)
        with TestClient(app) as client:
            lines = [
                {"data": [0.25, 0.12, 150.0, 30, 2]},
                {"data": [[0.05, 0.02, 50.0, 40, 1], [0.15, 0.08, 99.0, 25, 1]]},
            ]
            response = client.post(
                "/invocations",
                content="\n".join(json.dumps(line) for line in lines),
                headers={"Content-Type": "application/jsonlines", "Accept": "application/jsonlines"},
            )
        self.assertEqual(response.status_code, 200)
        units = json.loads(response.text)
        self.assertEqual(len(units), 3)
        for unit in units:
            self.assertEqual(len(unit), 1)
            self.assertGreaterEqual(unit[0]["prediction"], 0.0)
            self.assertLessEqual(unit[0]["prediction"], 1.0)


if __name__ == "__main__":
    unittest.main()
