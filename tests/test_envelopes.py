"""信封测试：作业输入解析、输出序列化、终态保护与编码失败降级。"""

from __future__ import annotations

import json

import pytest

from pzsvc.api.responses import JSON_MEDIA_TYPE, Responder, parse_job_input
from pzsvc.domain.enums import JobStatus
from pzsvc.domain.errors import BadRequestError, JobInputParseError, MissingBodyError, StorageError
from pzsvc.domain.models import JobInput, JobOutput, ObjectRef


class StubReporter:
    def __init__(self) -> None:
        self.calls: list[JobStatus] = []

    def report(self, status: JobStatus, *, request_id: str | None = None, job_id: str | None = None) -> bool:
        self.calls.append(status)
        return True


def test_job_status_wire_values() -> None:
    """状态取值必须与 JobManager 协议字符串完全一致。"""
    assert [str(item) for item in JobStatus] == ["submitted", "running", "success", "cancelled", "error", "fail"]
    assert JobStatus("fail") is JobStatus.fail


def test_parse_job_input_accepts_minimal_body() -> None:
    job_input = parse_job_input(b'{"source": {"bucket": "b", "key": "dir/in.laz"}, "unknown": 1}')
    assert job_input.source == ObjectRef(bucket="b", key="dir/in.laz")
    assert job_input.destination is None
    assert job_input.function is None
    assert not job_input.wants_upload()


@pytest.mark.parametrize("raw", [None, b"", b"   \n"])
def test_parse_job_input_missing_body(raw: bytes | None) -> None:
    with pytest.raises(MissingBodyError) as exc_info:
        parse_job_input(raw)
    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "No JSON"


@pytest.mark.parametrize("raw", [b"{not json", b"[1, 2]", b'{"function": "copy"}'])
def test_parse_job_input_rejects_malformed_body(raw: bytes) -> None:
    with pytest.raises(JobInputParseError) as exc_info:
        parse_job_input(raw)
    assert exc_info.value.status_code == 400


def test_wants_upload_requires_destination_key() -> None:
    """destination 存在但 key 为空时不应上传。"""
    job_input = JobInput(source=ObjectRef(bucket="b", key="in.laz"), destination=ObjectRef(bucket="b", key=""))
    assert not job_input.wants_upload()
    job_input = JobInput(source=ObjectRef(bucket="b", key="in.laz"), destination=ObjectRef(bucket="b", key="out.laz"))
    assert job_input.wants_upload()


def test_job_output_serializes_snake_case_envelope() -> None:
    output = JobOutput(input=parse_job_input(b'{"source": {"bucket": "b", "key": "k"}, "options": {"n": 2}}'))
    output.response["points"] = 10
    output.finalize(200, "Success!")

    payload = json.loads(output.model_dump_json())

    assert set(payload) == {"input", "started_at", "finished_at", "code", "message", "response"}
    assert payload["input"] == {"source": {"bucket": "b", "key": "k"}, "options": {"n": 2}}
    assert payload["code"] == 200
    assert payload["response"] == {"points": 10}
    assert payload["finished_at"] is not None


def test_job_output_cannot_be_finalized_twice() -> None:
    """同一输出发出第二个终态响应属于编程错误。"""
    output = JobOutput()
    output.finalize(400, "bad")
    with pytest.raises(RuntimeError):
        output.finalize(200, "ok")
    assert output.code == 400


def test_responder_maps_codes_to_statuses() -> None:
    reporter = StubReporter()
    responder = Responder(reporter)

    ok = responder.ok(JobOutput(), "done")
    bad = responder.bad_request(JobOutput(), "nope")
    err = responder.internal_error(JobOutput(), "broken")

    assert [item.status_code for item in (ok, bad, err)] == [200, 400, 500]
    assert ok.headers["content-type"] == JSON_MEDIA_TYPE
    assert [item.background.args for item in (ok, bad, err)] == [
        (JobStatus.success,),
        (JobStatus.fail,),
        (JobStatus.error,),
    ]
    assert json.loads(bad.body)["message"] == "nope"


def test_responder_error_uses_exception_category() -> None:
    responder = Responder(StubReporter())
    client_side = responder.error(JobOutput(), BadRequestError("missing destination"))
    server_side = responder.error(
        JobOutput(),
        StorageError(operation="download", bucket="b", key="k", cause=ValueError("gone")),
    )
    assert client_side.status_code == 400
    assert server_side.status_code == 500
    assert json.loads(server_side.body)["message"] == "download s3://b/k failed: gone"


def test_responder_degrades_unencodable_output_to_500() -> None:
    """response 中包含无法编码的值时降级为 500 信封。"""
    responder = Responder(StubReporter())
    output = JobOutput()
    output.response["handle"] = object()

    response = responder.ok(output, "done")

    assert response.status_code == 500
    payload = json.loads(response.body)
    assert payload["code"] == 500
    assert payload["message"].startswith("failed to encode response")
    assert payload["response"] == {}
    assert response.background.args == (JobStatus.error,)


def test_responder_refuses_second_response() -> None:
    responder = Responder(StubReporter())
    output = JobOutput()
    responder.ok(output, "done")
    with pytest.raises(RuntimeError):
        responder.internal_error(output, "again")
