import base64

import httpx
import pytest

from engine.errors import RunnerUnavailableError
from tools.base import ABORTED, FAILURE, IN_PROGRESS, SUCCESS, normalize_build_status
from tools.jenkins_adapter import JenkinsAdapter, encode_parameters


def make_adapter(handler, **kwargs):
    return JenkinsAdapter(
        base_url="http://jenkins:8080/",
        username="admin",
        token="s3cret",
        job_name="scan-pipeline",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_encode_parameters():
    assert encode_parameters({"repo": "https://git/x y", "deep": True, "n": 3}) == (
        "repo=https%3A%2F%2Fgit%2Fx%20y&deep=true&n=3"
    )
    assert encode_parameters({}) == ""


def test_encode_parameters_skips_none():
    assert encode_parameters({"branch": None, "repo": "x"}) == "repo=x"
    assert encode_parameters({"branch": None}) == ""


@pytest.mark.parametrize("building,result,expected", [
    (True, None, IN_PROGRESS),
    (True, "SUCCESS", IN_PROGRESS),
    (False, "SUCCESS", SUCCESS),
    (False, "FAILURE", FAILURE),
    (False, "UNSTABLE", ABORTED),
    (False, None, ABORTED),
    (False, "", ABORTED),
])
def test_normalize_build_status(building, result, expected):
    assert normalize_build_status(building, result) == expected


def test_trigger_reads_build_number_before_posting():
    requests = []

    def handler(request):
        requests.append(request)
        if request.url.path.endswith("/buildWithParameters"):
            return httpx.Response(201)
        return httpx.Response(200, json={"nextBuildNumber": 17})

    build = make_adapter(handler).trigger({"repo": "a b", "branch": None})

    assert build.external_id == "17"
    assert build.status == IN_PROGRESS
    assert build.url == "http://jenkins:8080/job/scan-pipeline/17"
    get, post = requests
    assert get.method == "GET"
    assert get.url.params["tree"] == "nextBuildNumber"
    assert post.method == "POST"
    assert post.url.path == "/job/scan-pipeline/buildWithParameters"
    assert post.url.params["repo"] == "a b"
    assert "branch" not in post.url.params
    expected = "Basic " + base64.b64encode(b"admin:s3cret").decode()
    assert all(r.headers["Authorization"] == expected for r in requests)


def test_trigger_ignores_builds_queued_after_the_read():
    counter = {"next": 17}

    def handler(request):
        if request.method == "POST":
            # another client queues a build right after ours
            counter["next"] += 2
            return httpx.Response(201)
        return httpx.Response(200, json={"nextBuildNumber": counter["next"]})

    assert make_adapter(handler).trigger({}).external_id == "17"


def test_trigger_uses_queue_item_build_number():
    queue_url = "http://jenkins:8080/queue/item/42/"

    def handler(request):
        if request.method == "POST":
            return httpx.Response(201, headers={"Location": queue_url})
        if request.url.path == "/queue/item/42/api/json":
            return httpx.Response(200, json={"executable": {"number": 19}})
        return httpx.Response(200, json={"nextBuildNumber": 17})

    build = make_adapter(handler).trigger({})
    assert build.external_id == "19"
    assert build.url == "http://jenkins:8080/job/scan-pipeline/19"


@pytest.mark.parametrize("queue_response", [
    httpx.Response(200, json={"why": "Waiting for next available executor"}),
    httpx.Response(200, json={"executable": None}),
    httpx.Response(404),
])
def test_trigger_falls_back_when_queue_item_has_no_build(queue_response):
    def handler(request):
        if request.method == "POST":
            return httpx.Response(201, headers={"Location": "http://jenkins:8080/queue/item/42/"})
        if request.url.path.startswith("/queue/"):
            return queue_response
        return httpx.Response(200, json={"nextBuildNumber": 17})

    assert make_adapter(handler).trigger({}).external_id == "17"


def test_trigger_http_error():
    adapter = make_adapter(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(RunnerUnavailableError):
        adapter.trigger({"repo": "x"})


def test_trigger_post_rejected():
    def handler(request):
        if request.method == "POST":
            return httpx.Response(403)
        return httpx.Response(200, json={"nextBuildNumber": 17})

    with pytest.raises(RunnerUnavailableError):
        make_adapter(handler).trigger({"repo": "x"})


def test_trigger_malformed_job_info_queues_nothing():
    posts = []

    def handler(request):
        if request.method == "POST":
            posts.append(request)
            return httpx.Response(201)
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(RunnerUnavailableError):
        make_adapter(handler).trigger({"repo": "x"})
    assert posts == []


def test_trigger_retries_transport_errors_when_configured():
    calls = {"post": 0}

    def handler(request):
        if request.method == "POST":
            calls["post"] += 1
            if calls["post"] == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(201)
        return httpx.Response(200, json={"nextBuildNumber": 5})

    build = make_adapter(handler, trigger_attempts=2).trigger({})
    assert build.external_id == "5"
    assert calls["post"] == 2


def test_trigger_not_retried_by_default():
    calls = {"post": 0}

    def handler(request):
        if request.method == "POST":
            calls["post"] += 1
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"nextBuildNumber": 5})

    with pytest.raises(RunnerUnavailableError):
        make_adapter(handler).trigger({})
    assert calls["post"] == 1


def test_get_status_normalizes():
    def handler(request):
        assert request.url.path == "/job/scan-pipeline/17/api/json"
        return httpx.Response(200, json={
            "id": "17",
            "building": False,
            "result": "FAILURE",
            "timestamp": 1700000000000,
            "url": "http://jenkins:8080/job/scan-pipeline/17/",
        })

    info = make_adapter(handler).get_status("17")
    assert info.external_id == "17"
    assert info.status == FAILURE
    assert info.result == "FAILURE"
    assert info.timestamp == 1700000000000


def test_get_status_malformed_payload():
    adapter = make_adapter(lambda request: httpx.Response(200, text="<html>login</html>"))
    with pytest.raises(RunnerUnavailableError):
        adapter.get_status("17")


def test_get_log():
    def handler(request):
        assert request.url.path == "/job/scan-pipeline/17/consoleText"
        return httpx.Response(200, text="Finished: SUCCESS\n")

    assert make_adapter(handler).get_log("17") == "Finished: SUCCESS\n"


def test_get_log_not_found():
    adapter = make_adapter(lambda request: httpx.Response(404))
    with pytest.raises(RunnerUnavailableError):
        adapter.get_log("17")


def test_is_running():
    adapter = make_adapter(lambda request: httpx.Response(200, json={"id": "1", "building": True, "result": None}))
    assert adapter.is_running("1") is True


def test_is_running_masks_failures():
    adapter = make_adapter(lambda request: httpx.Response(503))
    assert adapter.is_running("1") is False
