"""
Tests for outbound SMS through Twilio.
"""
from unittest.mock import patch

import pytest
from twilio.base.exceptions import TwilioRestException

from jmplan import config
from jmplan.sms import normalize_phone


@pytest.fixture
def twilio_env(monkeypatch):
    monkeypatch.setattr(config, "TWILIO_SID", "AC123")
    monkeypatch.setattr(config, "TWILIO_AUTH", "secret")
    monkeypatch.setattr(config, "TWILIO_PHONE", "+15145550000")


@pytest.mark.parametrize("raw,expected", [
    ("514-123-4567", "+15141234567"),
    ("(514) 123 4567", "+15141234567"),
    ("1 514 123 4567", "+15141234567"),
    ("+33 6 12 34 56 78", "+33612345678"),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_missing_credentials(client, monkeypatch):
    monkeypatch.setattr(config, "TWILIO_SID", None)

    resp = client.post("/sms/send", json={"to": "+15141234567", "message": "Bonjour"})

    assert resp.status_code == 500
    assert resp.json()["detail"] == "Twilio credentials missing"


def test_number_must_be_e164(client, twilio_env):
    resp = client.post("/sms/send", json={"to": "5141234567", "message": "Bonjour"})

    assert resp.status_code == 400
    assert "E.164" in resp.json()["detail"]


def test_missing_fields(client, twilio_env):
    assert client.post("/sms/send", json={"to": "+15141234567"}).status_code == 422
    assert client.post("/sms/send", json={"to": "+15141234567", "message": ""}).status_code == 422


def test_send_sms(client, twilio_env):
    with patch("jmplan.sms.TwilioClient") as twilio:
        twilio.return_value.messages.create.return_value.sid = "SM123"
        resp = client.post("/sms/send", json={"to": "+15141234567", "message": "Bonjour"})

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "sid": "SM123"}
    twilio.assert_called_once_with("AC123", "secret")
    twilio.return_value.messages.create.assert_called_once_with(
        body="Bonjour", from_="+15145550000", to="+15141234567"
    )


def test_send_mms(client, twilio_env):
    with patch("jmplan.sms.TwilioClient") as twilio:
        twilio.return_value.messages.create.return_value.sid = "MM1"
        client.post("/sms/send", json={
            "to": "+15141234567", "message": "Votre reçu", "media_url": "https://example.com/r.png",
        })

    kwargs = twilio.return_value.messages.create.call_args.kwargs
    assert kwargs["media_url"] == ["https://example.com/r.png"]


def test_twilio_error_is_502(client, twilio_env):
    error = TwilioRestException(400, "/Messages", msg="Invalid 'To' Phone Number", code=21211)
    with patch("jmplan.sms.TwilioClient") as twilio:
        twilio.return_value.messages.create.side_effect = error
        resp = client.post("/sms/send", json={"to": "+15141234567", "message": "Bonjour"})

    assert resp.status_code == 502
    assert resp.json()["detail"] == "Invalid 'To' Phone Number"
