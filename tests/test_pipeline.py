"""
推理管线与 JSON Lines 批量编排测试（使用 fake 执行器）
"""
import json
import os
import sys
import unittest

# 添加项目根目录到路径
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fakes import SCHEMA, SCHEMA_JSON, FailingExecutor, FunctionExecutor, double_x, echo_x
from tabserve.batch import BatchOrchestrator, BatchState, aggregate_units
from tabserve.config import ServingConfig
from tabserve.conversion import ResponseUnit
from tabserve.errors import (
    ExecutorFailure,
    InvalidAcceptType,
    MalformedLine,
    MalformedRequest,
    MissingSchema,
    TypeConversionError,
)
from tabserve.pipeline import InvocationPipeline


def _lines(*payloads) -> bytes:
    return "\n".join(json.dumps(p) for p in payloads).encode()


class TestJsonAndCsv(unittest.TestCase):

    def test_json_with_payload_schema(self):
        pipeline = InvocationPipeline(double_x(), ServingConfig())
        body = json.dumps({"schema": SCHEMA, "data": [1.0, "a"]}).encode()
        unit = pipeline.invoke_json(body, "text/csv")
        self.assertEqual(unit.body, "2.0")
        self.assertEqual(unit.media_type, "text/csv")

    def test_json_with_configured_schema_and_jsonlines_accept(self):
        pipeline = InvocationPipeline(double_x(), ServingConfig(default_schema=SCHEMA_JSON))
        unit = pipeline.invoke_json(b'{"data": [1.5, "a"]}', "application/jsonlines")
        self.assertEqual(json.loads(unit.body), {"prediction": 3.0})

    def test_json_missing_schema(self):
        pipeline = InvocationPipeline(double_x(), ServingConfig())
        with self.assertRaises(MissingSchema):
            pipeline.invoke_json(b'{"data": [1.5, "a"]}', None)

    def test_accept_checked_before_schema(self):
        pipeline = InvocationPipeline(double_x(), ServingConfig())
        with self.assertRaises(InvalidAcceptType):
            pipeline.invoke_json(b'{"data": [1.5, "a"]}', "application/xml")

    def test_csv_single_line(self):
        pipeline = InvocationPipeline(double_x(), ServingConfig(default_schema=SCHEMA_JSON))
        self.assertEqual(pipeline.invoke_csv(b"1.5,a", "text/csv").body, "3.0")

    def test_csv_multiple_lines_are_aggregated_in_order(self):
        pipeline = InvocationPipeline(echo_x(), ServingConfig(default_schema=SCHEMA_JSON))
        unit = pipeline.invoke_csv(b"1.0,a\n2.0,b\n3.0,c", None)
        self.assertEqual(unit.body, "[[1.0], [2.0], [3.0]]")

    def test_csv_requires_configured_schema(self):
        pipeline = InvocationPipeline(echo_x(), ServingConfig())
        with self.assertRaises(MissingSchema):
            pipeline.invoke_csv(b"1.0,a", None)

    def test_type_conversion_error(self):
        pipeline = InvocationPipeline(echo_x(), ServingConfig(default_schema=SCHEMA_JSON))
        with self.assertRaises(TypeConversionError) as ctx:
            pipeline.invoke_csv(b"abc,a", None)
        self.assertEqual(ctx.exception.field_name, "x")

    def test_executor_failure_is_wrapped(self):
        pipeline = InvocationPipeline(FailingExecutor(), ServingConfig(default_schema=SCHEMA_JSON))
        with self.assertRaises(ExecutorFailure) as ctx:
            pipeline.invoke_csv(b"1.0,a", None)
        self.assertIn("boom", str(ctx.exception))

    def test_vector_output(self):
        schema = dict(SCHEMA, output={"name": "probs", "type": "double", "struct": "vector"})
        executor = FunctionExecutor(lambda frame: [[0.25, 0.75]], output_name="probs")
        pipeline = InvocationPipeline(executor, ServingConfig())
        body = json.dumps({"schema": schema, "data": [1.0, "a"]}).encode()
        self.assertEqual(pipeline.invoke_json(body, "text/csv").body, "0.25,0.75")
        unit = pipeline.invoke_json(body, "application/jsonlines")
        self.assertEqual(json.loads(unit.body), {"features": [0.25, 0.75]})
        unit = pipeline.invoke_json(body, "application/jsonlines;data=text")
        self.assertEqual(json.loads(unit.body), {"source": "0.25 0.75"})


class TestBatch(unittest.TestCase):

    def test_mixed_granularity_preserves_order(self):
        executor = echo_x()
        pipeline = InvocationPipeline(executor, ServingConfig())
        body = _lines(
            {"schema": SCHEMA, "data": [1.0, "a"]},
            {"data": [[2.0, "b"], [3.0, "c"]]},
            {"data": [4.0, "d"]},
        )
        unit = pipeline.invoke_jsonlines(body, "text/csv")
        self.assertEqual(unit.body, "[[1.0], [2.0], [3.0], [4.0]]")
        self.assertEqual(unit.media_type, "text/csv")
        self.assertEqual(executor.calls, 4)

    def test_jsonlines_accept(self):
        pipeline = InvocationPipeline(echo_x(), ServingConfig(default_schema=SCHEMA_JSON))
        body = _lines({"data": [1.0, "a"]}, {"data": [2.0, "b"]})
        unit = pipeline.invoke_jsonlines(body, "application/jsonlines")
        self.assertEqual(unit.body, '[[{"prediction": 1.0}], [{"prediction": 2.0}]]')
        self.assertEqual(unit.media_type, "application/jsonlines")

    def test_record_count_is_sum_over_lines(self):
        pipeline = InvocationPipeline(echo_x(), ServingConfig(default_schema=SCHEMA_JSON))
        counts = [3, 1, 2, 4]
        payloads = []
        expected = []
        value = 0.0
        for count in counts:
            records = []
            for _ in range(count):
                value += 1.0
                records.append([value, "r"])
                expected.append(f"[{value!r}]")
            payloads.append({"data": records})
        unit = pipeline.invoke_jsonlines(_lines(*payloads), "text/csv")
        self.assertEqual(unit.body, "[" + ", ".join(expected) + "]")

    def test_schema_only_from_first_line(self):
        pipeline = InvocationPipeline(echo_x(), ServingConfig())
        body = _lines({"data": [1.0, "a"]}, {"schema": SCHEMA, "data": [2.0, "b"]})
        with self.assertRaises(MissingSchema):
            pipeline.invoke_jsonlines(body, None)

    def test_malformed_line_fails_whole_batch(self):
        executor = echo_x()
        pipeline = InvocationPipeline(executor, ServingConfig(default_schema=SCHEMA_JSON))
        body = b'{"data": [1.0, "a"]}\n{"data": "oops"}'
        with self.assertRaises(MalformedLine) as ctx:
            pipeline.invoke_jsonlines(body, None)
        self.assertEqual(ctx.exception.line_number, 1)
        self.assertEqual(executor.calls, 0)

    def test_record_failure_fails_whole_batch(self):
        pipeline = InvocationPipeline(echo_x(), ServingConfig(default_schema=SCHEMA_JSON))
        body = _lines({"data": [1.0, "a"]}, {"data": ["bad", "b"]})
        with self.assertRaises(TypeConversionError):
            pipeline.invoke_jsonlines(body, None)

    def test_orchestrator_states(self):
        pipeline = InvocationPipeline(echo_x(), ServingConfig(default_schema=SCHEMA_JSON))
        orchestrator = BatchOrchestrator(pipeline)
        self.assertEqual(orchestrator.state, BatchState.AWAIT_FIRST_LINE)
        orchestrator.run(b'{"data": [1.0, "a"]}', "text/csv")
        self.assertEqual(orchestrator.state, BatchState.DONE)

    def test_orchestrator_stops_in_failing_phase(self):
        pipeline = InvocationPipeline(echo_x(), ServingConfig(default_schema=SCHEMA_JSON))
        cases = [
            (b'{"data": [1.0, "a"]}\n{"data": "oops"}', MalformedLine, BatchState.SCHEMA_RESOLVED),
            (b'{"data": [1.0, "a"]}\n{"data": ["bad", "b"]}', TypeConversionError, BatchState.PROCESSING_RECORDS),
            (b'{"data": []}', MalformedRequest, BatchState.AGGREGATED),
        ]
        for body, error, state in cases:
            orchestrator = BatchOrchestrator(pipeline)
            with self.assertRaises(error):
                orchestrator.run(body, "text/csv")
            self.assertEqual(orchestrator.state, state, body)

    def test_no_records(self):
        pipeline = InvocationPipeline(echo_x(), ServingConfig(default_schema=SCHEMA_JSON))
        with self.assertRaises(MalformedRequest):
            pipeline.invoke_jsonlines(b'{"data": []}', None)
        with self.assertRaises(MalformedRequest):
            pipeline.invoke_jsonlines(b"\n\n", None)

    def test_aggregate_takes_first_media_type(self):
        units = [ResponseUnit("1", "text/csv"), ResponseUnit("2", "text/csv")]
        self.assertEqual(aggregate_units(units), ResponseUnit("[[1], [2]]", "text/csv"))


if __name__ == "__main__":
    unittest.main()
