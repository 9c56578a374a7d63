import time

from fastapi import HTTPException

FAIL_MODES = ("none", "error", "timeout")


def init_faults(state) -> None:
    state.delay_ms = 0
    state.fail_mode = "none"
    state.fail_code = 503


def apply_faults(state) -> None:
    # Injection points used by the latency and failure tests.
    if state.delay_ms > 0:
        time.sleep(state.delay_ms / 1000)

    if state.fail_mode == "error":
        raise HTTPException(status_code=state.fail_code, detail="Injected failure")

    if state.fail_mode == "timeout":
        time.sleep(10)


def update_faults(state, delay_ms: int | None, fail_mode: str | None, fail_code: int | None) -> dict:
    if delay_ms is not None:
        state.delay_ms = delay_ms
    if fail_mode is not None:
        if fail_mode not in FAIL_MODES:
            raise HTTPException(status_code=400, detail=f"fail_mode must be one of {FAIL_MODES}")
        state.fail_mode = fail_mode
    if fail_code is not None:
        state.fail_code = fail_code
    return {
        "delay_ms": state.delay_ms,
        "fail_mode": state.fail_mode,
        "fail_code": state.fail_code,
    }
