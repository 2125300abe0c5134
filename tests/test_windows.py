from datetime import timedelta

import pytest

from extensions import db
from services.errors import WindowClosedError
from services.windows import (
    CLOSED, NOT_CONFIGURED, NOT_YET_OPEN, OPEN, require_open_window, resolve_window,
)


def test_no_active_semester_is_not_configured(app):
    window = resolve_window("NORMAL")
    assert window.state == NOT_CONFIGURED
    assert window.semester is None


def test_each_type_uses_its_own_pair(semester):
    assert resolve_window("NORMAL").state == OPEN
    assert resolve_window("PRIORITY").state == OPEN
    assert resolve_window("RENEWAL").state == CLOSED


def test_not_yet_open_and_closed_edges(semester):
    open_at = semester.registration_open_date
    close_at = semester.registration_close_date
    assert resolve_window("NORMAL", now=open_at - timedelta(seconds=1)).state == NOT_YET_OPEN
    assert resolve_window("NORMAL", now=open_at).state == OPEN
    assert resolve_window("NORMAL", now=close_at).state == OPEN
    assert resolve_window("NORMAL", now=close_at + timedelta(seconds=1)).state == CLOSED


def test_missing_pair_is_not_configured(semester):
    semester.renewal_open_date = None
    db.session.commit()
    assert resolve_window("RENEWAL").state == NOT_CONFIGURED


def test_unknown_type_is_not_configured(semester):
    assert resolve_window("VIP").state == NOT_CONFIGURED


def test_require_open_window_reports_exact_dates(semester):
    early = semester.registration_open_date - timedelta(hours=2)
    with pytest.raises(WindowClosedError) as exc:
        require_open_window("NORMAL", now=early)
    err = exc.value
    assert err.payload["window_state"] == NOT_YET_OPEN
    assert err.payload["open_at"] == semester.registration_open_date.isoformat()
    assert semester.registration_open_date.strftime("%H:%M %d/%m/%Y") in err.message


def test_require_open_window_returns_semester(semester):
    assert require_open_window("NORMAL").id == semester.id


def test_window_endpoint(client, semester):
    resp = client.get("/registrations/window?type=renewal")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["state"] == CLOSED
    assert body["semester_id"] == semester.id


def test_active_semester_endpoint(client, app):
    assert client.get("/semesters/active").status_code == 404


def test_active_semester_endpoint_returns_dates(client, semester):
    body = client.get("/semesters/active").get_json()
    assert body["id"] == semester.id
    assert body["name"] == "HK1 2026-2027"
    assert body["registration_open_date"] == semester.registration_open_date.isoformat()
