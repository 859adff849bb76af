from contextvars import ContextVar
from typing import Optional

clinic_context: ContextVar[Optional[str]] = ContextVar("clinic_context", default=None)
request_id_context: ContextVar[Optional[str]] = ContextVar("request_id_context", default=None)


def get_clinic_id() -> Optional[str]:
    return clinic_context.get()


def set_clinic_id(clinic_id: Optional[str]):
    return clinic_context.set(clinic_id)


def get_request_id() -> Optional[str]:
    return request_id_context.get()


def set_request_id(request_id: Optional[str]):
    return request_id_context.set(request_id)
