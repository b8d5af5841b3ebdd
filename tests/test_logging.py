import json

from loguru import logger

from question_flow.logging import JsonSink, timed, trace_id_var


def test_json_sink_emits_one_line_with_trace_id(capsys):
    handler_id = logger.add(JsonSink(), level="INFO")
    token = trace_id_var.set("trace-123")
    try:
        logger.bind(sessionId="s1").info("Engine invoked for session {}", "s1")
    finally:
        trace_id_var.reset(token)
        logger.remove(handler_id)

    lines = [line for line in capsys.readouterr().out.splitlines() if "trace-123" in line]
    assert lines
    record = json.loads(lines[-1])
    assert record["message"] == "Engine invoked for session s1"
    assert record["level"] == "INFO"
    assert record["sessionId"] == "s1"
    assert record["traceId"] == "trace-123"


def test_timed_preserves_result_and_name():
    @timed("sample")
    def add(a, b):
        """Add two numbers."""
        return a + b

    assert add(2, 3) == 5
    assert add.__name__ == "add"
    assert add.__doc__ == "Add two numbers."
