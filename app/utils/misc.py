import datetime
import secrets


def get_utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def get_utc_iso_now() -> str:
    return get_utc_now().isoformat()


def generate_upload_id() -> str:
    return secrets.token_urlsafe(16)
