"""
日志与请求上下文测试

测试 app/infra/logging.py：
- RequestContext 透传请求头
- 上下文变量绑定
- JSON 日志包含追踪 ID
"""

import json
import logging

from app.infra.logging import (
    JSONFormatter,
    RequestContext,
    bind_request_context,
    current_request_context,
)


class TestRequestContext:
    """测试请求上下文"""

    def test_headers_skip_empty_values(self):
        ctx = RequestContext(trace_id="t-1", request_user="alice")
        assert ctx.headers() == {"X-Trace-Id": "t-1", "X-Request-User": "alice"}

    def test_bind_and_read_back(self):
        ctx = RequestContext(
            trace_id="t-2", request_user="bob", token="tok", department_full_path="/corp"
        )
        bind_request_context(ctx)
        assert current_request_context() == ctx
        bind_request_context(RequestContext())


class TestJSONFormatter:
    """测试 JSON 日志格式"""

    def test_trace_id_and_extra(self):
        bind_request_context(RequestContext(trace_id="t-3", request_user="carol"))
        record = logging.LogRecord(
            name="app.test",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="开始生成",
            args=(),
            exc_info=None,
        )
        record.record_id = 5

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "开始生成"
        assert data["trace_id"] == "t-3"
        assert data["request_user"] == "carol"
        assert data["extra"]["record_id"] == 5
        bind_request_context(RequestContext())
