"""
SoMi API client tests. requests is never allowed onto the network: every
call goes through a patched Session.request.
"""
import json
from unittest.mock import patch

import pytest
import requests

from player.api_client import ApiError, SomiApiClient
from player.session import BlockCompleted, CheckIn
from services.segments import FlowType, Section


def _response(status_code=200, payload=None):
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(payload).encode() if payload is not None else b""
    return response


@pytest.fixture
def session():
    return requests.Session()


@pytest.fixture
def api(session):
    return SomiApiClient("token-abc", base_url="https://somi.test/api/", timeout=5, session=session)


def test_auth_headers_set_on_session(api, session):
    assert session.headers["Authorization"] == "Bearer token-abc"
    assert session.headers["Content-Type"] == "application/json"
    assert api.base_url == "https://somi.test/api"


def test_create_chain_unwraps_envelope(api, session):
    with patch.object(session, "request", return_value=_response(201, {"chain": {"id": 5}})) as request:
        assert api.create_chain(FlowType.QUICK_ROUTINE) == {"id": 5}

    request.assert_called_once_with(
        "POST", "https://somi.test/api/chains", timeout=5, json={"flow_type": "quick_routine"}
    )


def test_check_in_body_uses_client_field_names(api, session):
    check_in = CheckIn(energy_level=40, safety_level=62, journal_entry="steadier")
    with patch.object(session, "request", return_value=_response(201, {"check": {"id": 1}})) as request:
        api.save_check_in(9, check_in)

    assert request.call_args.kwargs["json"] == {
        "chainId": 9,
        "energyLevel": 40,
        "safetyLevel": 62,
        "journalEntry": "steadier",
        "tags": None,
    }


def test_entry_body_uses_client_field_names(api, session):
    entry = BlockCompleted(
        block_id=3, seconds_elapsed=57, order_index=2, section=Section.MAIN,
        flow_type=FlowType.DAILY_FLOW, segment_index=3,
    )
    with patch.object(session, "request", return_value=_response(201, {"entry": {"id": 8}})) as request:
        assert api.save_entry(9, entry) == {"id": 8}

    assert request.call_args.kwargs["json"] == {
        "chainId": 9, "blockId": 3, "secondsElapsed": 57, "sessionOrder": 2, "section": "main",
    }


def test_generate_flow_omits_unknown_hour(api, session):
    with patch.object(session, "request", return_value=_response(200, {"segments": []})) as request:
        api.generate_flow("wired", 10, body_scan_start=True)

    body = request.call_args.kwargs["json"]
    assert body["body_scan_start"] is True
    assert "local_hour" not in body


def test_blocks_by_names_joins_query(api, session):
    with patch.object(session, "request", return_value=_response(200, {"blocks": [{"id": 1}]})) as request:
        assert api.blocks_by_names(["humming", "shaking"]) == [{"id": 1}]
    assert request.call_args.kwargs["params"] == {"canonical_names": "humming,shaking"}


def test_error_response_raises_api_error(api, session):
    payload = {"detail": "Chain not found", "error_code": "NOT_FOUND"}
    with patch.object(session, "request", return_value=_response(404, payload)):
        with pytest.raises(ApiError) as exc_info:
            api.delete_chain(99)

    assert exc_info.value.status_code == 404
    assert exc_info.value.error_code == "NOT_FOUND"
    assert "Chain not found" in str(exc_info.value)


def test_connection_failure_raises_api_error(api, session):
    with patch.object(session, "request", side_effect=requests.ConnectionError("refused")):
        with pytest.raises(ApiError) as exc_info:
            api.list_chains()
    assert exc_info.value.status_code is None


def test_latest_chain_none(api, session):
    with patch.object(session, "request", return_value=_response(200, {"chain": None})) as request:
        assert api.latest_chain(FlowType.DAILY_FLOW) is None
    assert request.call_args.kwargs["params"] == {"flow_type": "daily_flow"}
