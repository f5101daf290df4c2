"""Staff-facing dashboard over residents, vitals and chat history."""

from pathlib import Path

from dotenv import load_dotenv

from .session import decode_staff_cookie, encode_staff_cookie, require_staff_session
from .timeline import merge_timeline

__all__ = [
    "__version__",
    "decode_staff_cookie",
    "encode_staff_cookie",
    "merge_timeline",
    "require_staff_session",
]

__version__ = "0.1.0"

load_dotenv(Path(__file__).resolve().parents[2] / ".env", override=False)
