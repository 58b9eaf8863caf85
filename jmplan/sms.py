# jmplan/sms.py
import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient

from . import config
from .auth import current_user_id
from .models import SmsIn, SmsOut

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/sms", tags=["sms"])

E164 = re.compile(r"^\+[1-9]\d{6,14}$")


class SmsError(Exception):
    pass


class SmsNotConfigured(SmsError):
    pass


class InvalidPhoneNumber(SmsError):
    pass


def normalize_phone(phone: str) -> str:
    """Strip formatting ("514-123-4567" -> "+15141234567"); 10-digit numbers are North American."""
    digits = re.sub(r"[^\d+]", "", phone or "")
    if digits.startswith("+"):
        return digits
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return digits


def send_sms(to: str, message: str, media_url: Optional[str] = None) -> str:
    """Send one SMS/MMS through Twilio and return the message SID."""
    if not (config.TWILIO_SID and config.TWILIO_AUTH and config.TWILIO_PHONE):
        raise SmsNotConfigured("Twilio credentials missing")
    if not E164.match(to):
        raise InvalidPhoneNumber(f"Phone number must be in E.164 format (e.g. +15141234567): {to}")

    params = {"body": message, "from_": config.TWILIO_PHONE, "to": to}
    if media_url:
        params["media_url"] = [media_url]

    client = TwilioClient(config.TWILIO_SID, config.TWILIO_AUTH)
    try:
        msg = client.messages.create(**params)
    except TwilioRestException as e:
        log.error(f"Twilio error sending SMS to {to}: {e.msg} (code={e.code})")
        raise SmsError(e.msg) from e

    log.info(f"SMS {msg.sid} sent to {to}")
    return msg.sid


@router.post("/send", response_model=SmsOut)
def send(payload: SmsIn, user_id: str = Depends(current_user_id)):
    try:
        sid = send_sms(payload.to, payload.message, payload.media_url)
    except SmsNotConfigured as e:
        raise HTTPException(status_code=500, detail=str(e))
    except InvalidPhoneNumber as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SmsError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"success": True, "sid": sid}
