from typing import Any


def ok(data: Any = None) -> dict:
    """Wrap *data* in the success envelope shared by every endpoint."""
    return {"success": True, "data": data}
