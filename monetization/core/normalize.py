from __future__ import annotations

from typing import Optional, Tuple

from fastapi import HTTPException

def normalize_email(s: str) -> str:
    s = (s or "").strip().lower()
    if "@" not in s or len(s) > 254:
        raise HTTPException(400, "Invalid email")
    return s

def normalize_optional_email(s: Optional[str]) -> Optional[str]:
    s = (s or "").strip().lower()
    return s or None

def safe_return_path(path: Optional[str], default: str) -> str:
    # Relative paths only; "//host" would be protocol-relative.
    if isinstance(path, str) and path.startswith("/") and not path.startswith("//") and "\\" not in path:
        return path
    return default

def split_target(target_id: str) -> Tuple[str, Optional[str]]:
    base, sep, sub = (target_id or "").partition("::")
    return base, (sub if sep and sub else None)
