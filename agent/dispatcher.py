import asyncio
import json
import time

from pydantic import ValidationError

from agent.capabilities import CapabilityRegistry, DispatchContext
from config import DISPATCH_TIMEOUT_SECONDS


def _format_validation_error(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {e.get('msg')}")
    return "; ".join(parts)


class Dispatcher:
    """
    Turns a (name, arguments) pair from the routing model into a result.
    Never raises: every failure is folded into {"error": ...} so the
    narration step always has something to talk about.
    """

    def __init__(self, registry: CapabilityRegistry, context: DispatchContext, timeout: float = DISPATCH_TIMEOUT_SECONDS):
        self.registry = registry
        self.context = context
        self.timeout = timeout

    async def dispatch(self, name: str, raw_arguments=None):
        capability = self.registry.get(name)
        if capability is None:
            print(f"[DISPATCH] unknown function={name}")
            return {"error": "Function not supported"}

        if isinstance(raw_arguments, str):
            try:
                raw_arguments = json.loads(raw_arguments) if raw_arguments.strip() else {}
            except json.JSONDecodeError:
                raw_arguments = {}
        if not isinstance(raw_arguments, dict):
            raw_arguments = {}

        try:
            args = capability.args_model.model_validate(raw_arguments)
        except ValidationError as ve:
            detail = _format_validation_error(ve)
            print(f"[DISPATCH] invalid args function={name}: {detail}")
            return {"error": f"Invalid arguments for {name}: {detail}"}

        start = time.time()
        try:
            result = await asyncio.wait_for(capability.handler(args, self.context), timeout=self.timeout)
        except asyncio.TimeoutError:
            print(f"[DISPATCH] timeout function={name} after={self.timeout:.0f}s")
            return {"error": f"{name} timed out"}
        except Exception as e:
            print(f"[DISPATCH] handler failed function={name}: {type(e).__name__}: {e}")
            return {"error": f"Unable to complete {name}: {e}"}

        elapsed = time.time() - start
        size = len(result) if isinstance(result, list) else 1
        status = "error" if isinstance(result, dict) and "error" in result else "ok"
        print(f"[DISPATCH] function={name} status={status} items={size} elapsed={elapsed:.2f}s")
        return result
