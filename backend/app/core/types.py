"""Column types shared by every table. Identifiers are UUID strings."""
import uuid
from sqlalchemy import String, TypeDecorator


def generate_uuid() -> str:
    return str(uuid.uuid4())


class GUID(TypeDecorator):
    """UUID stored as a 36-character string on every backend"""
    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        # uuid.UUID and str ids compare equal once stored
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else str(value)
