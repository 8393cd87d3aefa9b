"""
推理管线错误类型

所有错误都继承自 InferenceError（ValueError 子类），由 server 统一映射为 HTTP 400，
错误消息即响应体。
"""


class InferenceError(ValueError):
    """推理管线错误基类"""


class InvalidAcceptType(InferenceError):
    """Accept 不在允许列表中"""


class MissingSchema(InferenceError):
    """请求和环境变量都没有提供 schema"""


class SchemaParseError(InferenceError):
    """schema 无法解析或不满足约束"""


class MalformedRequest(InferenceError):
    """请求体无法解析为期望的结构"""


class MalformedLine(MalformedRequest):
    """JSON Lines 中某一行既不是多条记录也不是单条记录"""

    def __init__(self, line_number: int, reason: str):
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"Malformed JSON line {line_number}: {reason}")


class TypeConversionError(InferenceError):
    """输入或输出值无法转换为 schema 声明的类型"""

    def __init__(self, field_name: str, value, reason: str):
        self.field_name = field_name
        self.value = value
        self.reason = reason
        super().__init__(f"Cannot convert value {value!r} of field '{field_name}': {reason}")


class ExecutorFailure(InferenceError):
    """模型执行器 transform 失败"""
