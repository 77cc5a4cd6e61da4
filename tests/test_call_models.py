"""Tests for the call data model and schemas."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from src.calls.models import (
    CallResponse,
    CallState,
    CallStats,
    Platform,
    RepeatMode,
    ResponseStatus,
    ScheduledCall,
)
from src.calls.schemas import (
    MAX_EPOCH_MILLIS,
    CallResponseParams,
    ScheduleCallParams,
    ToggleCallParams,
)

AT = datetime(2030, 6, 1, 0, 30, tzinfo=UTC)


def _make_call(**kwargs) -> ScheduledCall:
    defaults = {
        "id": "3f2b8c1e-9a4d-4e7b-8c2a-1d5e6f7a8b9c",
        "recipient_id": 42,
        "scheduled_at": AT,
        "device_handle": "token",
        "display_name": "Grandma",
        "platform": Platform.IOS,
    }
    defaults.update(kwargs)
    return ScheduledCall(**defaults)


# -- ScheduledCall -------------------------------------------------------------


def test_defaults() -> None:
    call = _make_call()
    assert call.state == CallState.SCHEDULED
    assert call.enabled is True
    assert call.repeat == RepeatMode.DAILY
    assert call.response is None
    assert call.delivered is None
    assert call.created_at.tzinfo is not None


def test_copy_is_detached() -> None:
    call = _make_call()
    clone = call.copy()
    clone.enabled = False
    assert call.enabled is True


def test_to_dict() -> None:
    call = _make_call(
        state=CallState.DISPATCHED,
        response=CallResponse(ResponseStatus.MISSED, AT, note="timeout"),
    )
    data = call.to_dict()
    assert data["scheduled_at"] == "2030-06-01T00:30:00+00:00"
    assert data["platform"] == "ios"
    assert data["state"] == "dispatched"
    assert data["response"] == {
        "status": "missed",
        "responded_at": "2030-06-01T00:30:00+00:00",
        "note": "timeout",
    }
    assert data["dispatched_at"] is None


def test_history_entry_without_response() -> None:
    entry = _make_call().to_history_entry()
    assert entry["status"] == "none"
    assert entry["responded_at"] is None
    assert set(entry) == {
        "id",
        "scheduled_at",
        "status",
        "responded_at",
        "display_name",
        "platform",
    }


# -- CallStats -----------------------------------------------------------------


def test_answer_rate_zero_total() -> None:
    assert CallStats().answer_rate == "0.0%"


def test_answer_rate_one_decimal() -> None:
    stats = CallStats(total=3, answered=1, declined=1, missed=1)
    assert stats.answer_rate == "66.7%"


# -- Schemas -------------------------------------------------------------------


def test_schedule_params_to_request() -> None:
    params = ScheduleCallParams.model_validate(
        {
            "recipient_id": 42,
            "scheduled_at": 1906331400000,
            "device_handle": "token",
            "display_name": "Grandma",
            "platform": "android",
        }
    )
    request = params.to_request()
    assert request.scheduled_at == datetime.fromtimestamp(1906331400, tz=UTC)
    assert request.platform == Platform.ANDROID
    assert request.repeat == RepeatMode.DAILY
    assert request.id is None


def test_schedule_params_reject_unknown_platform() -> None:
    with pytest.raises(ValidationError):
        ScheduleCallParams.model_validate(
            {
                "recipient_id": 42,
                "scheduled_at": 1,
                "device_handle": "token",
                "display_name": "Grandma",
                "platform": "windows",
            }
        )


def test_toggle_params_id_optional() -> None:
    params = ToggleCallParams.model_validate({"recipient_id": 1, "enabled": False})
    assert params.id is None


def test_response_params_naive_time_is_utc() -> None:
    params = CallResponseParams.model_validate(
        {"id": "abc", "status": "declined", "responded_at": "2030-06-01T09:00:00"}
    )
    assert params.status == ResponseStatus.DECLINED
    assert params.responded_at_utc() == datetime(2030, 6, 1, 9, 0, tzinfo=UTC)


def test_response_params_reject_unknown_status() -> None:
    with pytest.raises(ValidationError):
        CallResponseParams.model_validate({"id": "abc", "status": "ignored"})


@pytest.mark.parametrize("scheduled_at", [-1, MAX_EPOCH_MILLIS + 1, 10**20])
def test_schedule_params_reject_out_of_range_time(scheduled_at: int) -> None:
    with pytest.raises(ValidationError):
        ScheduleCallParams.model_validate(
            {
                "recipient_id": 42,
                "scheduled_at": scheduled_at,
                "device_handle": "token",
                "display_name": "Grandma",
                "platform": "ios",
            }
        )


def test_schedule_params_latest_time_converts() -> None:
    params = ScheduleCallParams.model_validate(
        {
            "recipient_id": 42,
            "scheduled_at": MAX_EPOCH_MILLIS,
            "device_handle": "token",
            "display_name": "Grandma",
            "platform": "ios",
        }
    )
    assert params.to_request().scheduled_at.year == 9999
